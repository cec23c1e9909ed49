"""
LLM Engine — extracts a wiring request from a free-form circuit question.

Backend: a local Ollama server over its HTTP API, model auto-selected from
the models it has pulled.

The model is asked for one JSON object::

    {"hasCircuit": true,
     "circuitName": "Arduino LED Blink",
     "components": ["Arduino Nano", "LED (Red)", "Resistor (220Ω)"],
     "connections": ["Arduino D13 → Resistor A", ...]}

which is validated and turned into a ``DiagramRequest``.  Component names
are steered toward the canonical labels the artwork store knows about.

Blocking HTTP calls run in a small thread pool so the FastAPI event loop is
never stalled.  Extraction never raises: total failure returns None.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from ..circuit_schema import CONNECTION_ARROW, DiagramRequest

logger = logging.getLogger(__name__)

# ── Ollama configuration ──────────────────────────────────────────────────────
OLLAMA_API_URL  = os.environ.get("OLLAMA_API_URL",  "http://localhost:11434/api/generate")
OLLAMA_TAGS_URL = os.environ.get("OLLAMA_TAGS_URL", "http://localhost:11434/api/tags")
OLLAMA_TIMEOUT  = int(os.environ.get("OLLAMA_TIMEOUT_S", "120"))

# Preferred models tried in order; env-var override goes first (if set)
_env_model = os.environ.get("OLLAMA_MODEL", "").strip()
OLLAMA_MODEL_CANDIDATES: List[str] = (
    [_env_model] if _env_model else []
) + [
    "llama3.1:latest",
    "llama3:latest",
    "mistral:latest",
    "qwen2.5:latest",
    "gemma2:latest",
]

# ── Generation parameters ─────────────────────────────────────────────────────
LLM_MAX_TOKENS = int(os.environ.get("LLM_MAX_TOKENS", "1024"))
LLM_RETRIES    = int(os.environ.get("LLM_RETRIES", "2"))
LLM_BASE_TEMP  = float(os.environ.get("LLM_BASE_TEMP", "0.0"))
LLM_TEMP_STEP  = float(os.environ.get("LLM_TEMP_STEP", "0.15"))

_THREAD_POOL = ThreadPoolExecutor(max_workers=2, thread_name_prefix="llm_worker")

# Labels the artwork store resolves without help
CANONICAL_COMPONENTS: Dict[str, str] = {
    "Arduino Nano":              "for any Arduino",
    "LED (Red)":                 "for red LED",
    "LED (Green)":               "for green LED",
    "Resistor (220Ω)":           "for resistor",
    "HC-SR04 Ultrasonic Sensor": "for ultrasonic sensor",
    "9V Battery":                "for battery",
}

# ── Prompt ────────────────────────────────────────────────────────────────────
_COMPONENT_LINES = "\n".join(f'- "{name}" ({hint})' for name, hint in CANONICAL_COMPONENTS.items())

EXTRACTION_PROMPT = f"""\
Extract circuit information from what the USER ASKED FOR.

Identify:
1. Which components the user wants to connect.
2. Which pin-to-pin connections are needed.

EXACT component names to use:
{_COMPONENT_LINES}

Write every connection as "Component Pin {CONNECTION_ARROW} Component Pin".

Respond ONLY with valid JSON (no markdown, no backticks):
{{
  "hasCircuit": true/false,
  "circuitName": "Simple descriptive name based on the request",
  "components": ["Component1", "Component2"],
  "connections": ["Component1 Pin {CONNECTION_ARROW} Component2 Pin"]
}}\
"""

_FEW_SHOT_RAW = """\
User asks: "connect arduino with led and resistor"
→ {"hasCircuit": true, "circuitName": "Arduino LED Circuit", "components": ["Arduino Nano", "LED (Red)", "Resistor (220Ω)"], "connections": ["Arduino D13 → Resistor A", "Resistor B → LED Anode", "LED Cathode → Arduino GND"]}

User asks: "what is ohm's law"
→ {"hasCircuit": false, "circuitName": "", "components": [], "connections": []}"""


def _validate_few_shot() -> str:
    """Parse every JSON line of the few-shot block; raise on error."""
    found = re.findall(r"\{.*\}", _FEW_SHOT_RAW)
    if not found:
        raise ValueError("few-shot block contains no JSON object")
    for chunk in found:
        try:
            json.loads(chunk)
        except json.JSONDecodeError as exc:
            raise ValueError(f"few-shot JSON is invalid: {exc}") from exc
    return _FEW_SHOT_RAW


FEW_SHOT_EXAMPLE: str = _validate_few_shot()


# ── LLMEngine ────────────────────────────────────────────────────────────────

class LLMEngine:
    """Ollama-backed extractor of ``DiagramRequest`` objects."""

    def __init__(self, model: str = "") -> None:
        self.backend:      Optional[str] = None   # 'ollama'
        self.ollama_model: str           = model

    # ── Loading ───────────────────────────────────────────────────────────────

    def load(self) -> bool:
        """Detect a usable Ollama model. Returns True on success."""
        model = self._detect_ollama_model()
        if not model:
            return False
        self.ollama_model = model
        self.backend = "ollama"
        logger.info("LLM backend: Ollama — model=%s", self.ollama_model)
        return True

    def _detect_ollama_model(self) -> Optional[str]:
        """
        Query Ollama for available models and return the best candidate.
        Returns None if Ollama is not reachable or has no models.
        """
        try:
            resp = requests.get(OLLAMA_TAGS_URL, timeout=3)
            resp.raise_for_status()
            available: List[str] = [m["name"] for m in resp.json().get("models", [])]
        except requests.exceptions.ConnectionError:
            logger.info("Ollama not reachable at %s", OLLAMA_TAGS_URL)
            return None
        except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ollama detection failed: %s", exc)
            return None

        logger.info("Ollama models available: %s", available)
        candidates = ([self.ollama_model] if self.ollama_model else []) + OLLAMA_MODEL_CANDIDATES
        for candidate in candidates:
            if candidate in available:
                return candidate
            prefix = candidate.split(":")[0].lower()
            for avail in available:
                if avail.lower().startswith(prefix):
                    return avail

        if available:
            logger.warning("No preferred Ollama model; using first available: %s", available[0])
            return available[0]
        return None

    # ── Raw generation ────────────────────────────────────────────────────────

    def _generate_sync(self, prompt: str, temperature: float = LLM_BASE_TEMP) -> str:
        """Blocking call; use generate_async() from async code."""
        if self.backend != "ollama":
            raise RuntimeError("No LLM backend loaded — call load() first")

        payload = {
            "model":  self.ollama_model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": LLM_MAX_TOKENS,
                "temperature": temperature,
                "stop":        ["User asks:"],
            },
        }
        try:
            resp = requests.post(OLLAMA_API_URL, json=payload, timeout=OLLAMA_TIMEOUT)
            resp.raise_for_status()
            return resp.json().get("response", "").strip()
        except requests.exceptions.Timeout:
            logger.error("Ollama request timed out after %d s", OLLAMA_TIMEOUT)
            return ""
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.error("Ollama generation failed: %s", exc)
            return ""

    async def generate_async(self, prompt: str, temperature: float = LLM_BASE_TEMP) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            _THREAD_POOL, lambda: self._generate_sync(prompt, temperature),
        )

    # ── Extraction ────────────────────────────────────────────────────────────

    async def extract_circuit(
        self,
        question: str,
        retries:  int = LLM_RETRIES,
    ) -> Optional[DiagramRequest]:
        """
        Ask the model which circuit *question* describes.

        Retries with a rising temperature.  Returns None when the question
        describes no circuit or every attempt fails.
        """
        question = (question or "").strip()
        if not question:
            return None
        prompt = build_extraction_prompt(question)

        for attempt in range(retries + 1):
            temp = LLM_BASE_TEMP + attempt * LLM_TEMP_STEP
            logger.info("Extraction attempt %d/%d (temp=%.2f)", attempt + 1, retries + 1, temp)

            t0  = time.perf_counter()
            raw = await self.generate_async(prompt, temperature=temp)
            logger.info("LLM responded in %.1f s (%d chars)", time.perf_counter() - t0, len(raw))

            parsed = _extract_json(raw)
            if not parsed:
                logger.warning("Attempt %d: no JSON found in response", attempt + 1)
                continue
            if parsed.get("hasCircuit") is False:
                logger.info("Model reports no circuit in the question")
                return None

            errors = _validate_extraction(parsed)
            if errors:
                logger.warning("Attempt %d: validation errors: %s", attempt + 1, errors)
                continue

            try:
                request = DiagramRequest.model_validate(parsed)
            except ValidationError as exc:
                logger.warning("Attempt %d: rejected by schema: %s", attempt + 1, exc)
                continue

            logger.info(
                "Extracted circuit %r: %d components, %d connections",
                request.circuit_name, len(request.components_used), len(request.connections),
            )
            return request

        logger.error("All %d extraction attempts failed", retries + 1)
        return None

    def extract_circuit_sync(self, question: str, retries: int = LLM_RETRIES) -> Optional[DiagramRequest]:
        """Synchronous wrapper for the CLI and tests."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.extract_circuit(question, retries))

        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as ex:
            future = ex.submit(asyncio.run, self.extract_circuit(question, retries))
            return future.result(timeout=OLLAMA_TIMEOUT * (retries + 1) + 10)


# ── Module-level helpers (pure functions, no self) ────────────────────────────

def build_extraction_prompt(question: str) -> str:
    return (
        f"{EXTRACTION_PROMPT}\n\n"
        f"Examples:\n{FEW_SHOT_EXAMPLE}\n\n"
        f'Now extract from: "{question}"\n'
    )


def _extract_json(text: str) -> Dict[str, Any]:
    """
    Extract the outermost complete JSON object from noisy model output.

    Markdown fences are stripped, then characters are walked tracking brace
    depth; each complete top-level object is tried in turn.
    """
    if not text:
        return {}

    text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).strip()

    depth = 0
    start = -1
    for i, ch in enumerate(text):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start != -1:
                result = _try_parse(text[start : i + 1])
                if result:
                    return result

    return _try_parse(text)


def _try_parse(text: str) -> Dict[str, Any]:
    try:
        obj = json.loads(text)
        return obj if isinstance(obj, dict) else {}
    except json.JSONDecodeError:
        return _repair_json(text)


def _repair_json(text: str) -> Dict[str, Any]:
    """
    Fix the JSON slips models commonly make:
      - trailing commas before } or ]
      - // and /* */ comments
      - unquoted object keys
      - single-quoted strings (simple cases)
    """
    fixed = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    fixed = re.sub(r"(?m)^\s*//[^\n]*", "", fixed)
    fixed = re.sub(r",\s*([}\]])", r"\1", fixed)
    fixed = re.sub(r'(?<=[{,\s])([A-Za-z_][A-Za-z0-9_]*)\s*:', r'"\1":', fixed)
    fixed = re.sub(r"'([^']*)'", r'"\1"', fixed)
    try:
        obj = json.loads(fixed)
        return obj if isinstance(obj, dict) else {}
    except json.JSONDecodeError:
        return {}


def _validate_extraction(data: Dict[str, Any]) -> List[str]:
    """Return structural error strings (empty = valid)."""
    errors: List[str] = []
    if not data.get("hasCircuit"):
        errors.append("'hasCircuit' is not true")

    name = data.get("circuitName")
    if not isinstance(name, str) or not name.strip():
        errors.append("'circuitName' missing or empty")

    for key in ("components", "connections"):
        value = data.get(key)
        if not isinstance(value, list) or not value:
            errors.append(f"'{key}' missing or empty")
        elif not all(isinstance(v, str) for v in value):
            errors.append(f"'{key}' must contain only strings")

    connections = data.get("connections")
    if isinstance(connections, list) and connections:
        if not any(isinstance(c, str) and CONNECTION_ARROW in c for c in connections):
            errors.append(f"no connection uses the '{CONNECTION_ARROW}' separator")
    return errors


# ── Factory ───────────────────────────────────────────────────────────────────

def load_llm() -> Optional[LLMEngine]:
    """Load and return an LLMEngine, or None if Ollama is unavailable."""
    engine = LLMEngine()
    return engine if engine.load() else None
