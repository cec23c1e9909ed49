"""
Connection Resolver — turns "Battery + → Arduino VIN" into drawable wires.

Each endpoint description is resolved against the placed components in
three stages:

  1. component — ranked strategies (literal name, significant keyword,
     first word); the first strategy with any hit wins, layout order breaks
     ties inside a strategy;
  2. pin candidate — the description minus the component name and a few
     qualifier words;
  3. pin — exact/substring name match, then equal digit groups, then the
     component's first pin.

Stage 3 always produces *some* valid point once a component matched: a
plausible guess is preferred over dropping the wire.  A wire is dropped only
when one of its endpoints matches no component at all.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..circuit_schema import CONNECTION_ARROW, WireColor
from .artwork_loader import Pin
from .layout_engine import PlacedComponent
from .name_resolver import Match, MatchTier

logger = logging.getLogger(__name__)

__all__ = [
    "ANNOTATION_KEYWORDS",
    "SIGNIFICANT_WORDS",
    "WIRE_COLOR_RULES",
    "Endpoint",
    "Wire",
    "extract_pin_candidate",
    "find_connection_point",
    "is_annotation",
    "match_component",
    "match_pin",
    "parse_connection",
    "resolve_connections",
    "split_connection",
    "wire_color",
]

# Lines mentioning these are instructions, not wiring
ANNOTATION_KEYWORDS: Tuple[str, ...] = ("upload", "code", "program")

SIGNIFICANT_WORDS: Tuple[str, ...] = (
    "arduino", "nano", "led", "resistor", "battery", "sensor", "hc-sr04", "ultrasonic",
)

# Stripped from a description after the component name, in this order
_QUALIFIER_PATTERNS: Tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (r"arduino\s*", r"nano\s*", r"led\s*", r"\(red\)\s*", r"\(green\)\s*",
              r"red\s*", r"green\s*")
)

_DIGITS_RE = re.compile(r"\d+")


# ── Data Structures ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Endpoint:
    component: str
    pin:       str
    x:         float
    y:         float


@dataclass(frozen=True)
class Wire:
    start: Endpoint
    end:   Endpoint
    color: WireColor
    label: str


# ── Line parsing ──────────────────────────────────────────────────────────────

def is_annotation(line: str) -> bool:
    lower = line.lower()
    return any(kw in lower for kw in ANNOTATION_KEYWORDS)


def split_connection(line: str) -> Optional[Tuple[str, str]]:
    """``(from, to)`` when *line* holds exactly one arrow, else None."""
    parts = [p.strip() for p in line.split(CONNECTION_ARROW)]
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


# ── Wire colour ───────────────────────────────────────────────────────────────

def _has_any(*keywords: str) -> Callable[[str], bool]:
    return lambda text: any(kw in text for kw in keywords)


def _has_pattern(pattern: str) -> Callable[[str], bool]:
    rx = re.compile(pattern, re.IGNORECASE)
    return lambda text: rx.search(text) is not None


# Priority-ordered; first match wins.  A line with both "-" and "D13" is
# ground, not digital.
WIRE_COLOR_RULES: List[Tuple[str, Callable[[str], bool], WireColor]] = [
    ("power",   _has_any("vin", "5v", "3.3v", "vcc", "power", "+"), WireColor.POWER),
    ("ground",  _has_any("gnd", "ground", "-"),                      WireColor.GROUND),
    ("signal",  _has_any("signal", "trig", "echo"),                  WireColor.SIGNAL),
    ("digital", _has_pattern(r"d\d+"),                               WireColor.DIGITAL),
    ("analog",  _has_pattern(r"a\d+"),                               WireColor.ANALOG),
]


def wire_color(line: str) -> WireColor:
    """Colour for a connection, judged on the raw connection text."""
    text = line.lower()
    for _name, predicate, color in WIRE_COLOR_RULES:
        if predicate(text):
            return color
    return WireColor.OTHER


# ── Component matching ────────────────────────────────────────────────────────
# Each strategy: (description_lower, label_lower) -> bool.  Pure functions.

def _literal_name(desc: str, label: str) -> bool:
    return label in desc


def _significant_word(desc: str, label: str) -> bool:
    return any(w in desc and w in label for w in SIGNIFICANT_WORDS)


def _first_word(desc: str, label: str) -> bool:
    clean_desc  = desc.replace("(", "").replace(")", "")
    clean_label = label.replace("(", "").replace(")", "")
    return (clean_label.split(" ")[0] in clean_desc
            or clean_desc.split(" ")[0] in clean_label)


COMPONENT_STRATEGIES: Tuple[Tuple[str, MatchTier, Callable[[str, str], bool]], ...] = (
    ("literal",    MatchTier.EXACT,      _literal_name),
    ("keyword",    MatchTier.KEYWORD,    _significant_word),
    ("first_word", MatchTier.FIRST_WORD, _first_word),
)


def match_component(description: str, labels: Sequence[str]) -> Optional[Match]:
    """Best-ranked component label for *description*, or None."""
    desc = description.strip().lower()
    if not desc:
        return None
    for name, tier, strategy in COMPONENT_STRATEGIES:
        for label in labels:
            if strategy(desc, label.lower()):
                return Match(label, tier, name)
    return None


# ── Pin matching ──────────────────────────────────────────────────────────────

def extract_pin_candidate(description: str, label: str) -> str:
    """Strip the component name and qualifier words, leaving the pin part."""
    candidate = re.sub(re.escape(label), "", description, flags=re.IGNORECASE).strip()
    for pattern in _QUALIFIER_PATTERNS:
        candidate = pattern.sub("", candidate).strip()
    return candidate


def match_pin(candidate: str, pins: Sequence[Pin]) -> Optional[Tuple[Pin, str]]:
    """
    Return ``(pin, how)`` where *how* is 'name', 'number' or 'fallback'.

    None only when the component has no pins at all.
    """
    if not pins:
        return None
    wanted = candidate.lower()

    for pin in pins:
        name = pin.name.lower()
        if wanted == name or name in wanted or wanted in name:
            return pin, "name"

    wanted_digits = _DIGITS_RE.search(wanted)
    if wanted_digits:
        for pin in pins:
            pin_digits = _DIGITS_RE.search(pin.name)
            if pin_digits and pin_digits.group() == wanted_digits.group():
                return pin, "number"

    return pins[0], "fallback"


def find_connection_point(
    description: str,
    placed:      Mapping[str, PlacedComponent],
) -> Optional[Endpoint]:
    """Resolve one endpoint description, or None if no component matches."""
    found = match_component(description, list(placed))
    if found is None:
        logger.info("No component matched for: %r", description)
        return None

    comp      = placed[found.key]
    candidate = extract_pin_candidate(description, found.key)
    hit       = match_pin(candidate, comp.pins)
    if hit is None:
        logger.warning("Component %s has no pins; cannot attach %r", found.key, description)
        return None

    pin, how = hit
    if how == "fallback":
        logger.info("Using default pin %s.%s for %r", found.key, pin.name, description)
    else:
        logger.debug(
            "Matched %r → %s.%s (component by %s, pin by %s)",
            description, found.key, pin.name, found.strategy, how,
        )
    return Endpoint(component=found.key, pin=pin.name, x=pin.x, y=pin.y)


# ── Wires ─────────────────────────────────────────────────────────────────────

def parse_connection(line: str, placed: Mapping[str, PlacedComponent]) -> Optional[Wire]:
    """One connection line → Wire, or None when it is skipped or unresolved."""
    if is_annotation(line):
        logger.debug("Skipping non-connection: %s", line)
        return None
    parts = split_connection(line)
    if parts is None:
        logger.debug("Invalid format (need exactly one %s): %s", CONNECTION_ARROW, line)
        return None

    start = find_connection_point(parts[0], placed)
    end   = find_connection_point(parts[1], placed)
    if start is None or end is None:
        logger.info("Skipped wire, missing connection point(s): %s", line)
        return None
    return Wire(start=start, end=end, color=wire_color(line), label=line)


def resolve_connections(
    lines:  Iterable[str],
    placed: Mapping[str, PlacedComponent],
) -> List[Wire]:
    wires = [w for w in (parse_connection(line, placed) for line in lines) if w is not None]
    logger.info("Total wires created: %d", len(wires))
    return wires
