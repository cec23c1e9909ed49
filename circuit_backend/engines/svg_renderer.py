"""
SVG Renderer — assembles the final wiring diagram document.

Builds an ElementTree in the SVG namespace and serialises it once, so every
attribute and text node is escaped by the serialiser.  Output is a pure
function of its inputs: the same layout and wires always produce
byte-identical text.

Document layers, bottom to top::

    background + grid → title → components → wires → pin labels → legend
"""

from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..circuit_schema import WireColor, slugify_label
from .artwork_loader import SVG_NS, artwork_children
from .connection_resolver import Endpoint, Wire
from .layout_engine import CONFIG, LayoutConfig, PlacedComponent, canvas_size

logger = logging.getLogger(__name__)

XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

# Wires whose endpoints differ by less than this on one axis are drawn as a
# curve along that axis; everything else is routed orthogonally.
STRAIGHT_THRESHOLD = 50.0
CURVATURE_FACTOR   = 0.25

FONT_FAMILY = "Arial, sans-serif"

# (colour, x, y) inside the legend box
LEGEND_LAYOUT: Tuple[Tuple[WireColor, float, float], ...] = (
    (WireColor.POWER,   0.0,   25.0),
    (WireColor.GROUND,  0.0,   45.0),
    (WireColor.DIGITAL, 200.0, 25.0),
    (WireColor.ANALOG,  200.0, 45.0),
    (WireColor.SIGNAL,  0.0,   65.0),
    (WireColor.OTHER,   200.0, 65.0),
)
LEGEND_HEIGHT = 120.0

# Code points XML 1.0 cannot carry, even escaped
_INVALID_XML_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
_URL_REF_RE     = re.compile(r"url\(#([^)\s]+)\)")
_HREF_KEYS      = ("href", f"{{{XLINK_NS}}}href")


# =============================================================================
# Element helpers
# =============================================================================

def _fmt(value: float) -> str:
    """Format a coordinate: two decimals at most, no trailing zeros, no -0."""
    v = round(float(value), 2)
    if v == 0:
        v = 0.0
    return f"{v:.2f}".rstrip("0").rstrip(".")


def _tag(name: str) -> str:
    return f"{{{SVG_NS}}}{name}"


def _sub(parent: ET.Element, name: str, attrs: Optional[Dict[str, str]] = None,
         text: Optional[str] = None) -> ET.Element:
    el = ET.SubElement(parent, _tag(name), attrs or {})
    if text is not None:
        el.text = xml_text(text)
    return el


def xml_text(text: str) -> str:
    """Drop characters that would leave the document ill-formed."""
    return _INVALID_XML_RE.sub("", text)


def prefix_ids(root: ET.Element, prefix: str) -> None:
    """Rename every id under *root* to ``<prefix>-<id>`` and repoint local references."""
    renamed: Dict[str, str] = {}
    for el in root.iter():
        old = el.get("id")
        if old:
            renamed[old] = f"{prefix}-{old}"
            el.set("id", renamed[old])
    if not renamed:
        return

    def _url(m: re.Match) -> str:
        return f"url(#{renamed.get(m.group(1), m.group(1))})"

    for el in root.iter():
        for key, value in list(el.attrib.items()):
            if key in _HREF_KEYS and value.startswith("#") and value[1:] in renamed:
                el.set(key, "#" + renamed[value[1:]])
            elif "url(#" in value:
                el.set(key, _URL_REF_RE.sub(_url, value))


def _translate(x: float, y: float) -> str:
    return f"translate({_fmt(x)}, {_fmt(y)})"


def wire_path(start: Endpoint, end: Endpoint,
              threshold: float = STRAIGHT_THRESHOLD) -> str:
    """
    SVG path data for a wire.

    Nearly horizontal or vertical runs get a gentle cubic bezier; diagonal
    runs are routed with right angles through the vertical midpoint.
    """
    dx = end.x - start.x
    dy = end.y - start.y
    distance = math.hypot(dx, dy)

    if abs(dy) < threshold:
        c = distance * CURVATURE_FACTOR
        return (f"M {_fmt(start.x)} {_fmt(start.y)} "
                f"C {_fmt(start.x + c)} {_fmt(start.y)}, "
                f"{_fmt(end.x - c)} {_fmt(end.y)}, {_fmt(end.x)} {_fmt(end.y)}")
    if abs(dx) < threshold:
        c = distance * CURVATURE_FACTOR
        return (f"M {_fmt(start.x)} {_fmt(start.y)} "
                f"C {_fmt(start.x)} {_fmt(start.y + c)}, "
                f"{_fmt(end.x)} {_fmt(end.y - c)}, {_fmt(end.x)} {_fmt(end.y)}")

    mid_y = (start.y + end.y) / 2
    return (f"M {_fmt(start.x)} {_fmt(start.y)} "
            f"L {_fmt(start.x)} {_fmt(mid_y)} "
            f"L {_fmt(end.x)} {_fmt(mid_y)} "
            f"L {_fmt(end.x)} {_fmt(end.y)}")


# =============================================================================
# Writer
# =============================================================================

class SvgDiagramWriter:
    """
    Converts a layout and wire list into a standalone SVG document string.

    Usage:
        writer = SvgDiagramWriter()
        svg = writer.export("Arduino LED Blink", placed, wires)
    """

    def __init__(self, config: LayoutConfig = CONFIG) -> None:
        self.config = config

    def export(self, title: str, placed: Mapping[str, PlacedComponent],
               wires: Sequence[Wire]) -> str:
        root = self.build(title, placed, wires)
        return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"

    def build(self, title: str, placed: Mapping[str, PlacedComponent],
              wires: Sequence[Wire]) -> ET.Element:
        """The document tree, before serialisation."""
        width, height = canvas_size(placed, self.config)
        root = ET.Element(_tag("svg"), {
            "version": "1.1",
            "width":   _fmt(width),
            "height":  _fmt(height),
            "viewBox": f"0 0 {_fmt(width)} {_fmt(height)}",
        })

        self._build_background(root)
        self._build_title(root, title, width)

        layer = _sub(root, "g", {"id": "components"})
        used_ids: set = set()
        for comp in placed.values():
            layer.append(self.component_group(comp, used_ids))

        layer = _sub(root, "g", {"id": "wires"})
        for wire in wires:
            layer.append(self.wire_group(wire))

        self._build_pin_labels(root, placed.values())
        root.append(self.legend_group(height))

        _sub(root, "text", {
            "x": _fmt(width / 2), "y": _fmt(height - 10),
            "font-size": "10", "font-family": FONT_FAMILY,
            "text-anchor": "middle", "fill": "#999",
        }, "Generated by Circuit Diagram Assistant")

        logger.debug("Rendered %d components, %d wires (%sx%s)",
                     len(placed), len(wires), _fmt(width), _fmt(height))
        return root

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def _build_background(self, root: ET.Element) -> None:
        _sub(root, "rect", {"width": "100%", "height": "100%", "fill": "#FAFAFA"})
        defs = _sub(root, "defs")
        pattern = _sub(defs, "pattern", {
            "id": "grid", "width": "20", "height": "20", "patternUnits": "userSpaceOnUse",
        })
        _sub(pattern, "path", {
            "d": "M 20 0 L 0 0 0 20", "fill": "none",
            "stroke": "#E0E0E0", "stroke-width": "0.5",
        })
        _sub(root, "rect", {"width": "100%", "height": "100%", "fill": "url(#grid)"})

    def _build_title(self, root: ET.Element, title: str, width: float) -> None:
        group = _sub(root, "g", {"id": "title"})
        _sub(group, "rect", {
            "x": "10", "y": "10", "width": _fmt(max(width - 20, 0)), "height": "60",
            "fill": "#FFFFFF", "stroke": "#333", "stroke-width": "2", "rx": "10",
        })
        _sub(group, "text", {
            "x": _fmt(width / 2), "y": "45", "font-size": "28",
            "font-family": FONT_FAMILY, "font-weight": "bold",
            "text-anchor": "middle", "fill": "#333",
        }, title)

    def component_group(self, comp: PlacedComponent,
                        used_ids: Optional[set] = None) -> ET.Element:
        """``<g class="component">`` holding the re-embedded artwork."""
        art = comp.artwork
        group_id = slugify_label(comp.label) or "component"
        if used_ids is not None:
            base, n = group_id, 2
            while group_id in used_ids:
                group_id = f"{base}_{n}"
                n += 1
            used_ids.add(group_id)

        group = ET.Element(_tag("g"), {
            "id": group_id, "class": "component",
            "transform": _translate(comp.x, comp.y),
        })
        _sub(group, "title", text=comp.label)
        _sub(group, "rect", {
            "x": "-5", "y": "-5",
            "width": _fmt(art.width + 10), "height": _fmt(art.height + 10),
            "fill": "#FFFFFF", "stroke": "#DDD", "stroke-width": "1",
            "rx": "5", "opacity": "0.5",
        })

        transforms: List[str] = []
        if art.scale != 1.0:
            transforms.append(f"scale({art.scale:.6g})")
        if art.min_x or art.min_y:
            transforms.append(_translate(-art.min_x, -art.min_y))
        inner = _sub(group, "g", {"class": "artwork"})
        if transforms:
            inner.set("transform", " ".join(transforms))
        for child in artwork_children(art.markup):
            inner.append(child)
        prefix_ids(inner, group_id)

        _sub(group, "text", {
            "x": _fmt(art.width / 2), "y": _fmt(art.height + 20),
            "font-size": "12", "font-family": FONT_FAMILY, "font-weight": "bold",
            "text-anchor": "middle", "fill": "#333",
        }, comp.label)
        return group

    def wire_group(self, wire: Wire) -> ET.Element:
        """``<g class="wire">``: glow, shadow, main path and endpoint markers."""
        d = wire_path(wire.start, wire.end)
        color = wire.color.value

        group = ET.Element(_tag("g"), {"class": "wire"})
        _sub(group, "title", text=wire.label)
        _sub(group, "path", {
            "class": "wire-glow", "d": d, "stroke": color, "stroke-width": "8",
            "fill": "none", "stroke-linecap": "round", "opacity": "0.15",
        })
        _sub(group, "path", {
            "class": "wire-shadow", "d": d, "stroke": "#000000", "stroke-opacity": "0.125",
            "stroke-width": "5", "fill": "none", "stroke-linecap": "round",
            "transform": "translate(2, 2)",
        })
        _sub(group, "path", {
            "class": "wire-path", "d": d, "stroke": color, "stroke-width": "4",
            "fill": "none", "stroke-linecap": "round", "stroke-linejoin": "round",
        })
        for end in (wire.start, wire.end):
            cx, cy = _fmt(end.x), _fmt(end.y)
            _sub(group, "circle", {"cx": cx, "cy": cy, "r": "8", "fill": color, "opacity": "0.3"})
            _sub(group, "circle", {
                "class": "wire-end", "cx": cx, "cy": cy, "r": "5",
                "fill": color, "stroke": "#FFF", "stroke-width": "2",
            })
        return group

    def _build_pin_labels(self, root: ET.Element,
                          placed: Iterable[PlacedComponent]) -> None:
        layer = _sub(root, "g", {"id": "pin-labels"})
        for comp in placed:
            for pin in comp.pins:
                _sub(layer, "circle", {
                    "cx": _fmt(pin.x), "cy": _fmt(pin.y), "r": "4",
                    "fill": "#FF6B6B", "stroke": "#FFF", "stroke-width": "1.5",
                })
                _sub(layer, "text", {
                    "x": _fmt(pin.x + 10), "y": _fmt(pin.y - 5),
                    "font-size": "10", "fill": "#666",
                }, pin.name)

    def legend_group(self, canvas_height: float) -> ET.Element:
        group = ET.Element(_tag("g"), {
            "id": "legend", "transform": _translate(20, canvas_height - LEGEND_HEIGHT),
        })
        _sub(group, "rect", {
            "x": "-10", "y": "-10", "width": "400", "height": "110",
            "fill": "#FFFFFF", "stroke": "#333", "stroke-width": "2", "rx": "5",
        })
        _sub(group, "text", {
            "x": "0", "y": "5", "font-size": "14", "font-weight": "bold", "fill": "#333",
        }, "Wire Color Guide:")
        for color, x, y in LEGEND_LAYOUT:
            _sub(group, "line", {
                "class": "legend-swatch",
                "x1": _fmt(x), "y1": _fmt(y), "x2": _fmt(x + 50), "y2": _fmt(y),
                "stroke": color.value, "stroke-width": "4",
            })
            _sub(group, "text", {
                "x": _fmt(x + 60), "y": _fmt(y + 5), "font-size": "12", "fill": "#333",
            }, color.legend_label)
        return group


def render_svg(title: str, placed: Mapping[str, PlacedComponent],
               wires: Sequence[Wire], config: LayoutConfig = CONFIG) -> str:
    """Convenience wrapper: one-shot render with a fresh writer."""
    return SvgDiagramWriter(config).export(title, placed, wires)
