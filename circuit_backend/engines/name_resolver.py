"""
Name Resolver — maps free-text component labels to artwork folders.

Resolution is a ranked pipeline of pure matching strategies:

    alias table → normalised name (equal, contains or contained by)

The first strategy yielding a match wins; within a strategy the first folder
in enumeration order wins.  Labels the alias table maps to ``None`` (loose
wires and the like) are skipped rather than reported as misses.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "COMPONENT_ALIASES",
    "Match",
    "MatchTier",
    "is_skipped",
    "list_all_component_aliases",
    "match_alias",
    "match_substring",
    "normalize_name",
    "rank_match",
    "resolve_component",
]


class MatchTier(IntEnum):
    """Confidence of a match; higher is more certain."""
    FIRST_WORD = 1
    KEYWORD = 2
    SUBSTRING = 3
    EXACT = 4
    ALIAS = 5


@dataclass(frozen=True)
class Match:
    key: str
    tier: MatchTier
    strategy: str


# ── Component alias table ─────────────────────────────────────────────────────

class _AliasEntry:
    """Single entry in the component alias table."""
    __slots__ = ("label", "key", "description")

    def __init__(self, label: str, key: Optional[str], description: str = "") -> None:
        self.label       = label
        self.key         = key
        self.description = description


# Keyed by exact label text.  key=None means "no artwork, skip silently".
COMPONENT_ALIASES: list[_AliasEntry] = [
    # ── Boards ───────────────────────────────────────────────────────────────
    _AliasEntry("Arduino Nano",              "arduino_nano", "Arduino Nano board"),
    _AliasEntry("Arduino",                   "arduino_nano", "Generic Arduino (Nano artwork)"),
    _AliasEntry("Arduino Uno",               "arduino_uno",  "Arduino Uno board"),
    # ── Sensors ──────────────────────────────────────────────────────────────
    _AliasEntry("HC-SR04 Ultrasonic Sensor", "hc_sr04",      "Ultrasonic distance sensor"),
    _AliasEntry("HC-SR04",                   "hc_sr04",      "Ultrasonic distance sensor"),
    _AliasEntry("Ultrasonic Sensor",         "hc_sr04",      "Ultrasonic distance sensor"),
    # ── LEDs ─────────────────────────────────────────────────────────────────
    _AliasEntry("LED (Red)",                 "led_red",      "Red LED"),
    _AliasEntry("Red LED",                   "led_red",      "Red LED"),
    _AliasEntry("LED Red",                   "led_red",      "Red LED"),
    _AliasEntry("LED (Green)",               "led_green",    "Green LED"),
    _AliasEntry("Green LED",                 "led_green",    "Green LED"),
    _AliasEntry("LED Green",                 "led_green",    "Green LED"),
    # ── Passives ─────────────────────────────────────────────────────────────
    _AliasEntry("Two 220Ω Resistors",        "resistor_220", "220 Ω resistor"),
    _AliasEntry("Resistor (220Ω)",           "resistor_220", "220 Ω resistor"),
    _AliasEntry("220Ω Resistor",             "resistor_220", "220 Ω resistor"),
    _AliasEntry("220 Ohm Resistor",          "resistor_220", "220 Ω resistor"),
    _AliasEntry("Resistor",                  "resistor_220", "Generic resistor (220 Ω artwork)"),
    # ── Power ────────────────────────────────────────────────────────────────
    _AliasEntry("9V Battery",                "battery_9v",   "9 V battery"),
    _AliasEntry("Battery",                   "battery_9v",   "9 V battery"),
    _AliasEntry("9V",                        "battery_9v",   "9 V battery"),
    # ── Drawn as wires, no artwork ───────────────────────────────────────────
    _AliasEntry("Jumper Wires",              None,           "Drawn automatically"),
    _AliasEntry("Wires",                     None,           "Drawn automatically"),
    _AliasEntry("Connecting Wires",          None,           "Drawn automatically"),
]

_ALIAS_INDEX: dict[str, _AliasEntry] = {e.label: e for e in COMPONENT_ALIASES}


def list_all_component_aliases() -> list[dict[str, Optional[str]]]:
    """Return every alias as a dict (label, key, description) for diagnostics."""
    return [
        {"label": e.label, "key": e.key, "description": e.description}
        for e in COMPONENT_ALIASES
    ]


def is_skipped(label: str) -> bool:
    """True when the alias table explicitly maps *label* to no artwork."""
    entry = _ALIAS_INDEX.get(label)
    return entry is not None and entry.key is None


# ── Normalisation ─────────────────────────────────────────────────────────────

_WS_RE         = re.compile(r"\s+")
_STRIP_RE      = re.compile(r"[()Ωω]")
_UNDERSCORE_RE = re.compile(r"_+")


def normalize_name(text: str) -> str:
    """
    Lowercase, whitespace/hyphens → ``_``, drop parentheses and Ω, collapse
    repeated underscores.

    >>> normalize_name("Resistor (220Ω)")
    'resistor_220'
    """
    text = _WS_RE.sub("_", text.lower()).replace("-", "_")
    text = _STRIP_RE.sub("", text)
    return _UNDERSCORE_RE.sub("_", text).strip("_")


# ── Strategies ────────────────────────────────────────────────────────────────
# Each strategy: (label, folders) -> Optional[Match].  Pure functions.

def match_alias(label: str, folders: Sequence[str]) -> Optional[Match]:
    """Alias table hit whose key names an existing folder."""
    entry = _ALIAS_INDEX.get(label)
    if entry is None or entry.key is None:
        return None
    found = match_substring(entry.key, folders)
    if found is None:
        return None
    return Match(found.key, MatchTier.ALIAS, "alias")


def match_substring(label: str, folders: Sequence[str]) -> Optional[Match]:
    """First folder whose normalised name equals, contains or is contained by the label's."""
    wanted = normalize_name(label)
    if not wanted:
        return None
    for folder in folders:
        norm = normalize_name(folder)
        if norm and (wanted in norm or norm in wanted):
            return Match(folder, MatchTier.SUBSTRING, "substring")
    return None


Strategy = Callable[[str, Sequence[str]], Optional[Match]]

DEFAULT_STRATEGIES: tuple[Strategy, ...] = (match_alias, match_substring)


def rank_match(
    label:      str,
    folders:    Iterable[str],
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Optional[Match]:
    """Run *strategies* in order; the first one that yields a match wins."""
    folders = list(folders)
    for strategy in strategies:
        found = strategy(label, folders)
        if found is not None:
            return found
    return None


def resolve_component(label: str, folders: Iterable[str]) -> Optional[str]:
    """
    Return the artwork folder for *label*, or None.

    None covers both "explicitly no artwork" (see :func:`is_skipped`) and a
    genuine miss; callers that need to tell them apart check is_skipped().
    An alias whose target folder is absent falls back to matching the raw
    label by normalised name.
    """
    if is_skipped(label):
        return None
    folders = list(folders)
    found = rank_match(label, folders)
    if found is None:
        logger.debug("No artwork folder matches %r", label)
        return None
    logger.debug("Resolved %r → %s (%s)", label, found.key, found.strategy)
    return found.key
