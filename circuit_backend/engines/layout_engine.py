"""
Layout Engine — static grid packer for diagram components.

The first Arduino-class component is the anchor and sits at a fixed origin;
everything else is packed into columns of ROWS_PER_COLUMN to its right.
This is deliberately not a bin packer: there is no collision detection
beyond the spacing constants, so artwork larger than the spacing may
overlap its neighbours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .artwork_loader import Artwork, Pin

logger = logging.getLogger(__name__)

__all__ = [
    "CONFIG",
    "LayoutConfig",
    "PlacedComponent",
    "canvas_size",
    "find_anchor",
    "layout_components",
]


# ── Configuration ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LayoutConfig:
    """Canvas geometry constants (SVG user units)."""
    ANCHOR_X:        float = 150.0
    ANCHOR_Y:        float = 200.0
    SPACING_X:       float = 250.0
    SPACING_Y:       float = 200.0
    ROWS_PER_COLUMN: int   = 3

    # Canvas = bounding box of placements + padding, clamped
    PADDING_X:         float = 200.0
    PADDING_Y:         float = 250.0
    MAX_CANVAS_WIDTH:  float = 2000.0
    MAX_CANVAS_HEIGHT: float = 1500.0

    ANCHOR_KEYWORD: str = "arduino"


CONFIG = LayoutConfig()


# ── Data Structures ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlacedComponent:
    """Artwork positioned on the canvas, with pins in absolute coordinates."""
    artwork:  Artwork
    x:        float
    y:        float
    pins:     Tuple[Pin, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return self.artwork.label

    @property
    def width(self) -> float:
        return self.artwork.width

    @property
    def height(self) -> float:
        return self.artwork.height

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y)."""
        return self.x, self.y, self.x + self.width, self.y + self.height

    def pin(self, name: str) -> Optional[Pin]:
        for p in self.pins:
            if p.name == name:
                return p
        return None


def _place(artwork: Artwork, x: float, y: float) -> PlacedComponent:
    pins = tuple(Pin(p.name, x + p.x, y + p.y) for p in artwork.pins)
    return PlacedComponent(artwork=artwork, x=x, y=y, pins=pins)


# ── Layout ────────────────────────────────────────────────────────────────────

def find_anchor(labels: Iterable[str], keyword: str = CONFIG.ANCHOR_KEYWORD) -> Optional[str]:
    """First label containing *keyword* (case-insensitive), or None."""
    for label in labels:
        if keyword in label.lower():
            return label
    return None


def layout_components(
    labels:   Iterable[str],
    artworks: Mapping[str, Artwork],
    config:   LayoutConfig = CONFIG,
) -> Dict[str, PlacedComponent]:
    """
    Assign every loaded label an absolute canvas position.

    Labels without artwork are ignored; duplicates keep their first slot.
    The returned dict is ordered anchor first, then packing order.
    """
    ordered = list(dict.fromkeys(labels))
    layout: Dict[str, PlacedComponent] = {}

    cursor_x = config.ANCHOR_X
    base_y   = config.ANCHOR_Y

    anchor = find_anchor(ordered, config.ANCHOR_KEYWORD)
    if anchor is not None and anchor in artworks:
        layout[anchor] = _place(artworks[anchor], cursor_x, base_y)
        cursor_x += config.SPACING_X

    row = 0
    for label in ordered:
        if label == anchor:
            continue
        art = artworks.get(label)
        if art is None:
            continue
        layout[label] = _place(art, cursor_x, base_y + row * config.SPACING_Y)
        row += 1
        if row >= config.ROWS_PER_COLUMN:
            row = 0
            cursor_x += config.SPACING_X

    logger.debug("Laid out %d components", len(layout))
    return layout


def canvas_size(
    placed: Mapping[str, PlacedComponent],
    config: LayoutConfig = CONFIG,
) -> Tuple[float, float]:
    """Bounding box of all placements plus padding, clamped to the maximum."""
    max_x = 0.0
    max_y = 0.0
    for comp in placed.values():
        max_x = max(max_x, comp.x + comp.width)
        max_y = max(max_y, comp.y + comp.height)
    return (
        min(max_x + config.PADDING_X, config.MAX_CANVAS_WIDTH),
        min(max_y + config.PADDING_Y, config.MAX_CANVAS_HEIGHT),
    )
