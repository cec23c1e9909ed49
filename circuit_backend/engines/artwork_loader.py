"""
Artwork Loader — reads component SVGs from the artwork store.

Layout on disk::

    components/
        arduino_nano/
            arduino_nano.svg
            arduino_nano.json      (optional metadata, see library_loader)
        led_red/
            led_red.svg
        ...

Each artwork is parsed once for its intrinsic size, clamped to
MAX_ARTWORK_WIDTH × MAX_ARTWORK_HEIGHT with one uniform scale factor, and
given the pin table of its label.  Read/parse failures are logged and the
component is omitted; they never abort loading of the others.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .name_resolver import is_skipped, resolve_component
from .pin_table import pins_for

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

DEFAULT_ARTWORK_SIZE = 150.0
MAX_ARTWORK_WIDTH    = 200.0
MAX_ARTWORK_HEIGHT   = 200.0

_LEADING_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")
_VIEWBOX_SPLIT_RE  = re.compile(r"[\s,]+")


# ── Data Structures ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Pin:
    name: str
    x:    float
    y:    float


@dataclass(frozen=True)
class RawArtwork:
    """Label-independent part of an artwork: what the cache holds."""
    folder: str
    markup: str
    width:  float
    height: float
    min_x:  float = 0.0
    min_y:  float = 0.0


@dataclass(frozen=True)
class Artwork:
    """A component's artwork bound to the label it was requested under."""
    label:            str
    folder:           str
    markup:           str
    intrinsic_width:  float
    intrinsic_height: float
    width:            float
    height:           float
    pins:             Tuple[Pin, ...] = field(default_factory=tuple)
    min_x:            float = 0.0
    min_y:            float = 0.0

    @property
    def scale(self) -> float:
        """Uniform factor applied to the intrinsic size (1.0 = unscaled)."""
        if self.intrinsic_width <= 0:
            return 1.0
        return self.width / self.intrinsic_width

    def pin_map(self) -> Dict[str, Tuple[float, float]]:
        return {p.name: (p.x, p.y) for p in self.pins}


# ── Parsing ───────────────────────────────────────────────────────────────────

def _leading_number(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    m = _LEADING_NUMBER_RE.match(value)
    return float(m.group(1)) if m else None


def parse_dimensions(root: ET.Element) -> Tuple[float, float, float, float]:
    """
    Return ``(min_x, min_y, width, height)`` of an SVG root element.

    viewBox wins over width/height; width/height are used only when both are
    present; zero or unparsable sizes fall back to DEFAULT_ARTWORK_SIZE.
    """
    view_box = root.get("viewBox")
    if view_box:
        parts = _VIEWBOX_SPLIT_RE.split(view_box.strip())
        if len(parts) == 4:
            try:
                min_x, min_y, w, h = (float(p) for p in parts)
            except ValueError:
                logger.debug("Unparsable viewBox %r", view_box)
            else:
                return (
                    min_x,
                    min_y,
                    w if w > 0 else DEFAULT_ARTWORK_SIZE,
                    h if h > 0 else DEFAULT_ARTWORK_SIZE,
                )

    w = _leading_number(root.get("width"))
    h = _leading_number(root.get("height"))
    if w is not None and h is not None:
        return 0.0, 0.0, w or DEFAULT_ARTWORK_SIZE, h or DEFAULT_ARTWORK_SIZE
    return 0.0, 0.0, DEFAULT_ARTWORK_SIZE, DEFAULT_ARTWORK_SIZE


def clamp_scale(width: float, height: float,
                max_width: float = MAX_ARTWORK_WIDTH,
                max_height: float = MAX_ARTWORK_HEIGHT) -> float:
    """Uniform scale factor bringing (width, height) within the bounds."""
    sx = max_width / width if width > max_width else 1.0
    sy = max_height / height if height > max_height else 1.0
    return min(sx, sy)


def parse_raw_artwork(folder: str, markup: str) -> RawArtwork:
    """Parse SVG markup; raises ``ET.ParseError`` on malformed documents."""
    root = ET.fromstring(markup)
    min_x, min_y, width, height = parse_dimensions(root)
    return RawArtwork(folder, markup, width, height, min_x, min_y)


def bind_artwork(label: str, raw: RawArtwork) -> Artwork:
    """Attach the pin table for *label* and clamp oversized artwork."""
    pins  = pins_for(label, raw.width, raw.height)
    scale = clamp_scale(raw.width, raw.height)
    if scale < 1.0:
        logger.info(
            "Scaling %s from %.0fx%.0f to %.0fx%.0f",
            label, raw.width, raw.height, raw.width * scale, raw.height * scale,
        )
    return Artwork(
        label=label,
        folder=raw.folder,
        markup=raw.markup,
        intrinsic_width=raw.width,
        intrinsic_height=raw.height,
        width=raw.width * scale,
        height=raw.height * scale,
        pins=tuple(Pin(name, x * scale, y * scale) for name, (x, y) in pins.items()),
        min_x=raw.min_x,
        min_y=raw.min_y,
    )


def artwork_children(markup: str) -> List[ET.Element]:
    """
    Parse *markup* and return the children of its outer ``<svg>`` element.

    The XML declaration, DOCTYPE and wrapper disappear with the parse.
    Un-namespaced elements are moved into the SVG namespace so they nest
    cleanly inside the assembled document.
    """
    root = ET.fromstring(markup)
    for el in root.iter():
        if isinstance(el.tag, str) and not el.tag.startswith("{"):
            el.tag = f"{{{SVG_NS}}}{el.tag}"
    return list(root)


# ── Cache ─────────────────────────────────────────────────────────────────────

class ArtworkCache:
    """
    Folder → RawArtwork memo.  Never evicts.

    Purely an optimisation: dropping it (or using a fresh one per request)
    changes nothing but the number of file reads.
    """

    def __init__(self) -> None:
        self._items: Dict[str, RawArtwork] = {}

    def get(self, folder: str) -> Optional[RawArtwork]:
        return self._items.get(folder)

    def put(self, raw: RawArtwork) -> None:
        self._items[raw.folder] = raw

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, folder: object) -> bool:
        return folder in self._items

    def __len__(self) -> int:
        return len(self._items)


# ── Loader ────────────────────────────────────────────────────────────────────

class ArtworkLoader:
    """Resolves labels to folders and loads their artwork."""

    def __init__(self, components_dir: Path, cache: Optional[ArtworkCache] = None) -> None:
        self.components_dir = Path(components_dir)
        self.cache          = cache if cache is not None else ArtworkCache()

    def list_folders(self) -> List[str]:
        """Artwork folder names, sorted so resolution is deterministic."""
        try:
            return sorted(p.name for p in self.components_dir.iterdir() if p.is_dir())
        except OSError as exc:
            logger.warning("Cannot list artwork store %s: %s", self.components_dir, exc)
            return []

    def _read_raw(self, folder: str) -> Optional[RawArtwork]:
        cached = self.cache.get(folder)
        if cached is not None:
            return cached

        folder_path = self.components_dir / folder
        svg_files = sorted(folder_path.glob("*.svg"))
        if not svg_files:
            logger.warning("No SVG file found in: %s", folder)
            return None

        try:
            markup = svg_files[0].read_text(encoding="utf-8")
            raw = parse_raw_artwork(folder, markup)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error reading artwork %s: %s", svg_files[0], exc)
            return None
        except ET.ParseError as exc:
            logger.error("Malformed SVG %s: %s", svg_files[0], exc)
            return None

        self.cache.put(raw)
        return raw

    def load(self, label: str, folders: Optional[List[str]] = None) -> Optional[Artwork]:
        """Load the artwork for one label, or None (already logged)."""
        if folders is None:
            folders = self.list_folders()
        folder = resolve_component(label, folders)
        if folder is None:
            logger.warning("Component folder not found for: %s", label)
            return None
        raw = self._read_raw(folder)
        if raw is None:
            return None
        art = bind_artwork(label, raw)
        logger.info("Loaded: %s (%.0fx%.0f)", label, art.width, art.height)
        return art

    def load_all(self, labels: Iterable[str]) -> Dict[str, Artwork]:
        """
        Load every distinct label; result order follows first occurrence.

        Labels the alias table marks as "no artwork" are skipped silently.
        """
        folders = self.list_folders()
        loaded: Dict[str, Artwork] = {}
        for label in labels:
            if label in loaded:
                continue
            if is_skipped(label):
                logger.info("Skipping: %s (wires drawn automatically)", label)
                continue
            art = self.load(label, folders)
            if art is not None:
                loaded[label] = art
        return loaded
