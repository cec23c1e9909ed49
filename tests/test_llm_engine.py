"""Unit tests for LLM circuit extraction (Ollama calls are mocked)."""

import json
import unittest
from unittest import mock

import requests

from circuit_backend.engines import llm_engine
from circuit_backend.engines.llm_engine import (
    LLMEngine,
    _extract_json,
    _repair_json,
    _validate_extraction,
    build_extraction_prompt,
    load_llm,
)

NIGHT_LIGHT = {
    "hasCircuit": True,
    "circuitName": "Night Light",
    "components": ["Arduino Nano", "LED (Red)"],
    "connections": ["Arduino D13 → LED Anode", "LED Cathode → Arduino GND"],
}


def _response(payload):
    resp = mock.MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def _ollama_reply(text):
    return _response({"response": text})


class TestJsonHelpers(unittest.TestCase):

    def test_fenced_json(self):
        text = 'Sure!\n```json\n{"hasCircuit": true, "circuitName": "X"}\n```\nHope that helps.'
        self.assertEqual(_extract_json(text), {"hasCircuit": True, "circuitName": "X"})

    def test_first_complete_object_wins(self):
        text = '{"a": 1} and then {"b": 2}'
        self.assertEqual(_extract_json(text), {"a": 1})

    def test_nothing_to_extract(self):
        self.assertEqual(_extract_json(""), {})
        self.assertEqual(_extract_json("no braces here"), {})

    def test_repair(self):
        broken = "{circuitName: 'Blink', components: ['LED (Red)',],}"
        self.assertEqual(
            _repair_json(broken),
            {"circuitName": "Blink", "components": ["LED (Red)"]},
        )

    def test_repair_gives_up(self):
        self.assertEqual(_repair_json("{{{"), {})


class TestValidateExtraction(unittest.TestCase):

    def test_valid(self):
        self.assertEqual(_validate_extraction(NIGHT_LIGHT), [])

    def test_missing_fields(self):
        errors = _validate_extraction({"hasCircuit": True})
        self.assertEqual(len(errors), 3)

    def test_no_arrow(self):
        data = {**NIGHT_LIGHT, "connections": ["Arduino D13 to LED Anode"]}
        errors = _validate_extraction(data)
        self.assertEqual(len(errors), 1)
        self.assertIn("separator", errors[0])

    def test_non_string_entries(self):
        data = {**NIGHT_LIGHT, "components": ["Arduino Nano", 3]}
        self.assertIn("'components' must contain only strings", _validate_extraction(data))


class TestPrompt(unittest.TestCase):

    def test_prompt_lists_canonical_names(self):
        prompt = build_extraction_prompt("blink an led")
        for name in llm_engine.CANONICAL_COMPONENTS:
            self.assertIn(f'"{name}"', prompt)
        self.assertTrue(prompt.rstrip().endswith('Now extract from: "blink an led"'))


class TestModelDetection(unittest.TestCase):

    @mock.patch("circuit_backend.engines.llm_engine.requests.get")
    def test_prefix_match(self, mock_get):
        mock_get.return_value = _response({"models": [{"name": "phi3:mini"}, {"name": "mistral:7b"}]})
        engine = LLMEngine()
        self.assertTrue(engine.load())
        self.assertEqual(engine.backend, "ollama")
        self.assertEqual(engine.ollama_model, "mistral:7b")

    @mock.patch("circuit_backend.engines.llm_engine.requests.get")
    def test_requested_model_preferred(self, mock_get):
        mock_get.return_value = _response({"models": [{"name": "mistral:7b"}, {"name": "phi3:mini"}]})
        engine = LLMEngine(model="phi3:mini")
        self.assertTrue(engine.load())
        self.assertEqual(engine.ollama_model, "phi3:mini")

    @mock.patch("circuit_backend.engines.llm_engine.requests.get")
    def test_unreachable(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        self.assertIsNone(load_llm())

    @mock.patch("circuit_backend.engines.llm_engine.requests.get")
    def test_no_models(self, mock_get):
        mock_get.return_value = _response({"models": []})
        engine = LLMEngine()
        self.assertFalse(engine.load())
        self.assertIsNone(engine.backend)


class TestExtraction(unittest.TestCase):

    def setUp(self):
        self.engine = LLMEngine(model="mistral:latest")
        self.engine.backend = "ollama"

    def test_requires_backend(self):
        with self.assertRaises(RuntimeError):
            LLMEngine()._generate_sync("hello")

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_timeout_returns_empty(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout()
        with self.assertLogs("circuit_backend.engines.llm_engine", level="ERROR"):
            self.assertEqual(self.engine._generate_sync("hello"), "")

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_extracts_request(self, mock_post):
        mock_post.return_value = _ollama_reply(json.dumps(NIGHT_LIGHT, ensure_ascii=False))
        request = self.engine.extract_circuit_sync("make a night light")

        self.assertEqual(request.circuit_name, "Night Light")
        self.assertEqual(request.components_used, ["Arduino Nano", "LED (Red)"])
        self.assertEqual(len(request.connections), 2)

        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(payload["model"], "mistral:latest")
        self.assertFalse(payload["stream"])
        self.assertIn("make a night light", payload["prompt"])

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_retries_with_rising_temperature(self, mock_post):
        mock_post.side_effect = [
            _ollama_reply("I cannot answer in JSON, sorry."),
            _ollama_reply(json.dumps(NIGHT_LIGHT)),
        ]
        request = self.engine.extract_circuit_sync("make a night light", retries=2)

        self.assertIsNotNone(request)
        self.assertEqual(mock_post.call_count, 2)
        temps = [c.kwargs["json"]["options"]["temperature"] for c in mock_post.call_args_list]
        self.assertAlmostEqual(temps[0], llm_engine.LLM_BASE_TEMP)
        self.assertAlmostEqual(temps[1], llm_engine.LLM_BASE_TEMP + llm_engine.LLM_TEMP_STEP)

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_no_circuit_stops_early(self, mock_post):
        mock_post.return_value = _ollama_reply(
            '{"hasCircuit": false, "circuitName": "", "components": [], "connections": []}'
        )
        self.assertIsNone(self.engine.extract_circuit_sync("what is ohm's law", retries=2))
        self.assertEqual(mock_post.call_count, 1)

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_all_attempts_fail(self, mock_post):
        mock_post.return_value = _ollama_reply("garbage")
        with self.assertLogs("circuit_backend.engines.llm_engine", level="ERROR"):
            self.assertIsNone(self.engine.extract_circuit_sync("blink", retries=1))
        self.assertEqual(mock_post.call_count, 2)

    @mock.patch("circuit_backend.engines.llm_engine.requests.post")
    def test_empty_question(self, mock_post):
        self.assertIsNone(self.engine.extract_circuit_sync("   "))
        mock_post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
