"""Unit tests for the stored circuit and component library."""

import json
import tempfile
import unittest
from pathlib import Path

from circuit_backend.engines.library_loader import CircuitLibrary

from ._fixtures import CIRCUITS_DIR, COMPONENTS_DIR


class TestShippedLibrary(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.library = CircuitLibrary(CIRCUITS_DIR, COMPONENTS_DIR).load()

    def test_counts(self):
        self.assertEqual(len(self.library.circuits), 3)
        self.assertEqual(len(self.library.components), 6)

    def test_get_circuit_by_substring(self):
        circuit = self.library.get_circuit("blink")
        self.assertEqual(circuit.name, "Arduino LED Blink")
        self.assertIn("Jumper Wires", circuit.components_used)
        self.assertIsNone(self.library.get_circuit("theremin"))
        self.assertIsNone(self.library.get_circuit(""))

    def test_get_component(self):
        nano = self.library.get_component("NANO")
        self.assertEqual(nano.folder, "arduino_nano")
        self.assertEqual(nano.svg_path, "arduino_nano/arduino_nano.svg")
        self.assertIn("D13", nano.pin_names)

    def test_categories_in_first_seen_order(self):
        self.assertEqual(self.library.categories(), ["Beginner", "Sensors"])

    def test_search(self):
        self.assertEqual([c.name for c in self.library.search("SENSOR")], ["Ultrasonic Distance Meter"])
        self.assertEqual(len(self.library.search("beginner")), 2)
        self.assertEqual(self.library.search("  "), [])

    def test_stored_circuit_to_request(self):
        request = self.library.get_circuit("Battery Powered").to_diagram_request()
        self.assertEqual(request.circuit_name, "Battery Powered LED")
        self.assertEqual(len(request.connections), 5)


class TestLoadingFailures(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def _write(self, name, payload):
        path = self.root / "circuits" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        text = payload if isinstance(payload, str) else json.dumps(payload)
        path.write_text(text, encoding="utf-8")

    def test_bad_records_skipped(self):
        self._write("a_good.json", {
            "name": "Good", "description": "Works", "componentsUsed": ["Arduino Nano"],
        })
        self._write("b_missing.json", {"name": "No components", "description": "x"})
        self._write("c_broken.json", "{not json")
        self._write("d_list.json", [1, 2, 3])

        library = CircuitLibrary(self.root / "circuits", self.root / "components")
        with self.assertLogs("circuit_backend.engines.library_loader", level="WARNING"):
            circuits = library.load_circuits()
        self.assertEqual([c.name for c in circuits], ["Good"])

    def test_missing_directories(self):
        circuits_dir = self.root / "new" / "circuits"
        library = CircuitLibrary(circuits_dir, self.root / "absent").load()
        self.assertTrue(circuits_dir.is_dir())
        self.assertEqual(library.circuits, [])
        self.assertEqual(library.components, [])

    def test_component_metadata_rules(self):
        comps = self.root / "components"
        (comps / "no_json").mkdir(parents=True)
        (comps / "nameless").mkdir()
        (comps / "nameless" / "meta.json").write_text('{"description": "x"}', encoding="utf-8")
        (comps / "buzzer").mkdir()
        (comps / "buzzer" / "buzzer.json").write_text(
            json.dumps({"name": "Buzzer", "description": "Piezo buzzer", "operatingVoltage": "5V"}),
            encoding="utf-8",
        )

        components = CircuitLibrary(self.root / "circuits", comps).load_components()
        self.assertEqual([c.name for c in components], ["Buzzer"])
        self.assertEqual(components[0].operating_voltage, "5V")
        self.assertIsNone(components[0].svg_path)


if __name__ == "__main__":
    unittest.main()
