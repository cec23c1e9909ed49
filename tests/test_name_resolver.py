"""
Unit tests for the name resolver: alias table, normalisation and the
ranked matching strategies.
"""

import unittest

from circuit_backend.engines.name_resolver import (
    MatchTier,
    is_skipped,
    list_all_component_aliases,
    match_substring,
    normalize_name,
    rank_match,
    resolve_component,
)

FOLDERS = ["arduino_nano", "battery_9v", "hc_sr04", "led_green", "led_red", "resistor_220"]


class TestNormalizeName(unittest.TestCase):

    def test_parentheses_and_ohm_removed(self):
        self.assertEqual(normalize_name("Resistor (220Ω)"), "resistor_220")

    def test_hyphens_and_whitespace_collapse(self):
        self.assertEqual(normalize_name("HC-SR04 Ultrasonic  Sensor"), "hc_sr04_ultrasonic_sensor")

    def test_edges_trimmed(self):
        self.assertEqual(normalize_name(" (LED) "), "led")


class TestAliases(unittest.TestCase):

    def test_alias_is_deterministic(self):
        results = {resolve_component("LED (Red)", FOLDERS) for _ in range(5)}
        self.assertEqual(results, {"led_red"})

    def test_alias_tier_reported(self):
        found = rank_match("Arduino", FOLDERS)
        self.assertEqual(found.key, "arduino_nano")
        self.assertEqual(found.tier, MatchTier.ALIAS)

    def test_skipped_labels(self):
        for label in ("Jumper Wires", "Wires", "Connecting Wires"):
            self.assertTrue(is_skipped(label))
            self.assertIsNone(resolve_component(label, FOLDERS))
        self.assertFalse(is_skipped("LED (Red)"))

    def test_alias_with_missing_folder_falls_back_to_label(self):
        self.assertIsNone(resolve_component("Arduino Uno", FOLDERS))
        self.assertEqual(resolve_component("Arduino Uno", FOLDERS + ["arduino_uno"]), "arduino_uno")

    def test_alias_listing(self):
        aliases = list_all_component_aliases()
        labels = [a["label"] for a in aliases]
        self.assertIn("9V Battery", labels)
        self.assertIn({"label": "Wires", "key": None, "description": "Drawn automatically"}, aliases)


class TestStrategies(unittest.TestCase):

    def test_equal_normalised_name(self):
        found = rank_match("Battery 9V", FOLDERS)
        self.assertEqual((found.key, found.tier), ("battery_9v", MatchTier.SUBSTRING))

    def test_earlier_folder_wins_over_equal_name(self):
        self.assertEqual(resolve_component("red", ["led_red", "red"]), "led_red")
        self.assertEqual(resolve_component("red", ["red", "led_red"]), "red")

    def test_substring_either_direction(self):
        self.assertEqual(match_substring("led_green_5mm", FOLDERS).key, "led_green")
        self.assertEqual(match_substring("sr04", FOLDERS).key, "hc_sr04")

    def test_first_folder_in_order_wins(self):
        self.assertEqual(resolve_component("led", FOLDERS), "led_green")

    def test_no_match(self):
        self.assertIsNone(resolve_component("Flux Capacitor", FOLDERS))
        self.assertIsNone(resolve_component("", FOLDERS))

    def test_custom_strategy_order(self):
        found = rank_match("Arduino", FOLDERS, strategies=(match_substring,))
        self.assertEqual(found.tier, MatchTier.SUBSTRING)
        self.assertEqual(found.key, "arduino_nano")


if __name__ == "__main__":
    unittest.main()
