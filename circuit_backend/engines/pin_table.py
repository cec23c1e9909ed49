"""
Pin Table — named, component-local connection points per component class.

Classification is an ordered list of ``(keywords, class, builder)`` rules
tested against the lowercased label; the first rule with a matching keyword
wins.  The order is load-bearing: "arduino" must beat "led" for a label such
as "Arduino LED shield".  All coordinates are fractions of the supplied
width/height so they survive later rescaling.

Pin insertion order is preserved and matters: the connection resolver falls
back to the *first* pin when a description names no known pin.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Tuple

PinMap = Dict[str, Tuple[float, float]]

__all__ = ["PIN_RULES", "PinMap", "classify", "pins_for"]


def _board_pins(w: float, h: float) -> PinMap:
    # Power on the left edge, I/O on the right edge
    return {
        "VIN":  (0.0, h * 0.2),
        "GND":  (0.0, h * 0.4),
        "5V":   (0.0, h * 0.3),
        "3.3V": (0.0, h * 0.35),
        "D13":  (w,   h * 0.3),
        "D12":  (w,   h * 0.4),
        "D11":  (w,   h * 0.5),
        "D10":  (w,   h * 0.6),
        "A0":   (w,   h * 0.7),
        "A1":   (w,   h * 0.8),
    }


def _led_pins(w: float, h: float) -> PinMap:
    return {
        "Anode":   (w / 2, 0.0),
        "+":       (w / 2, 0.0),
        "Cathode": (w / 2, h),
        "-":       (w / 2, h),
    }


def _resistor_pins(w: float, h: float) -> PinMap:
    return {
        "A": (0.0, h / 2),
        "B": (w,   h / 2),
        "1": (0.0, h / 2),
        "2": (w,   h / 2),
    }


def _battery_pins(w: float, h: float) -> PinMap:
    return {
        "+":        (w / 2, 0.0),
        "positive": (w / 2, 0.0),
        "-":        (w / 2, h),
        "negative": (w / 2, h),
    }


def _ultrasonic_pins(w: float, h: float) -> PinMap:
    return {
        "VCC":  (0.0, h * 0.2),
        "TRIG": (0.0, h * 0.4),
        "ECHO": (0.0, h * 0.6),
        "GND":  (0.0, h * 0.8),
    }


def _switch_pins(w: float, h: float) -> PinMap:
    return {
        "1": (0.0, h / 2),
        "2": (w,   h / 2),
        "A": (0.0, h / 2),
        "B": (w,   h / 2),
    }


def _generic_pins(w: float, h: float) -> PinMap:
    return {
        "TOP":    (w / 2, 0.0),
        "BOTTOM": (w / 2, h),
        "LEFT":   (0.0,   h / 2),
        "RIGHT":  (w,     h / 2),
    }


# Priority-ordered; first match wins.
PIN_RULES: List[Tuple[Tuple[str, ...], str, Callable[[float, float], PinMap]]] = [
    (("arduino",),                "board",      _board_pins),
    (("led",),                    "led",        _led_pins),
    (("resistor",),               "resistor",   _resistor_pins),
    (("battery",),                "battery",    _battery_pins),
    (("hc-sr04", "ultrasonic"),   "ultrasonic", _ultrasonic_pins),
    (("switch", "button"),        "switch",     _switch_pins),
]

GENERIC_CLASS = "generic"


def _rule_for(label: str) -> Tuple[str, Callable[[float, float], PinMap]]:
    name = label.lower()
    for keywords, cls, builder in PIN_RULES:
        if any(kw in name for kw in keywords):
            return cls, builder
    return GENERIC_CLASS, _generic_pins


def classify(label: str) -> str:
    """Component class name for *label* ('board', 'led', … or 'generic')."""
    return _rule_for(label)[0]


def pins_for(label: str, width: float, height: float) -> PinMap:
    """Return ``{pin name: (x, y)}`` in component-local coordinates."""
    return _rule_for(label)[1](float(width), float(height))
