"""Unit tests for the per-class pin tables."""

import unittest

from circuit_backend.engines.pin_table import GENERIC_CLASS, classify, pins_for

W, H = 120.0, 80.0

EXPECTED = {
    "Arduino Nano":              ("board", ["VIN", "GND", "5V", "3.3V", "D13", "D12", "D11", "D10", "A0", "A1"]),
    "LED (Red)":                 ("led", ["Anode", "+", "Cathode", "-"]),
    "Resistor (220Ω)":           ("resistor", ["A", "B", "1", "2"]),
    "9V Battery":                ("battery", ["+", "positive", "-", "negative"]),
    "HC-SR04 Ultrasonic Sensor": ("ultrasonic", ["VCC", "TRIG", "ECHO", "GND"]),
    "Push Button":               ("switch", ["1", "2", "A", "B"]),
    "Piezo Buzzer":              (GENERIC_CLASS, ["TOP", "BOTTOM", "LEFT", "RIGHT"]),
}


class TestPinTable(unittest.TestCase):

    def test_every_class_has_its_pins_in_order(self):
        for label, (cls, names) in EXPECTED.items():
            with self.subTest(label=label):
                self.assertEqual(classify(label), cls)
                self.assertEqual(list(pins_for(label, W, H)), names)

    def test_pins_inside_bounds(self):
        for label in EXPECTED:
            for name, (x, y) in pins_for(label, W, H).items():
                with self.subTest(label=label, pin=name):
                    self.assertTrue(0 <= x <= W)
                    self.assertTrue(0 <= y <= H)

    def test_rule_order(self):
        self.assertEqual(classify("Arduino LED shield"), "board")
        self.assertEqual(classify("Tactile switch"), "switch")

    def test_board_geometry(self):
        pins = pins_for("Arduino Nano", 200, 100)
        self.assertEqual(pins["VIN"], (0.0, 20.0))
        self.assertEqual(pins["D13"], (200.0, 30.0))
        self.assertEqual(pins["A1"], (200.0, 80.0))

    def test_led_aliases_share_position(self):
        pins = pins_for("Green LED", 60, 100)
        self.assertEqual(pins["Anode"], pins["+"])
        self.assertEqual(pins["Cathode"], (30.0, 100.0))


if __name__ == "__main__":
    unittest.main()
