"""
Diagram Engine — the assembler pipeline.

    labels ─► ArtworkLoader ─► layout_components ─► parse_connection ─► render_svg ─► disk

The pipeline itself never fails on bad input: unknown components, malformed
connection lines and unreadable artwork are logged and left out, and the
caller learns about them from ``DiagramResult.skipped`` / ``.unresolved``.
Only persisting the document can fail, with ``DiagramOutputError``.

``generate_diagram()`` is the async entry point used by the HTTP service; it
returns a plain result dict the way the rest of the backend does.
``generate_diagram_sync()`` is the shim for the CLI and tests.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..circuit_schema import DiagramRequest, slugify_label
from .artwork_loader import ArtworkCache, ArtworkLoader
from .connection_resolver import Wire, is_annotation, parse_connection
from .layout_engine import CONFIG, LayoutConfig, layout_components
from .svg_renderer import render_svg

logger = logging.getLogger(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
# circuit_backend/engines/diagram_engine.py → parents[2] = project root
_PROJECT_ROOT  = Path(__file__).resolve().parents[2]
DATA_DIR       = Path(os.environ.get("DATA_DIR", str(_PROJECT_ROOT / "data")))
COMPONENTS_DIR = Path(os.environ.get("COMPONENTS_DIR", str(DATA_DIR / "components")))
OUTPUT_DIR     = Path(os.environ.get("OUTPUT_DIR", str(_PROJECT_ROOT / "output")))

# Long titles are kept in the document but cut short in the filename
MAX_FILENAME_STEM = 120

__all__ = [
    "COMPONENTS_DIR",
    "DATA_DIR",
    "OUTPUT_DIR",
    "CircuitAssembler",
    "DiagramOutputError",
    "DiagramResult",
    "diagram_filename",
    "generate_diagram",
    "generate_diagram_sync",
]


class DiagramOutputError(OSError):
    """The rendered diagram could not be written to its destination."""


@dataclass
class DiagramResult:
    circuit_name: str
    svg:          str
    output_path:  Optional[Path]   = None
    components:   List[str]        = field(default_factory=list)
    wires:        List[Wire]       = field(default_factory=list)
    skipped:      List[str]        = field(default_factory=list)
    unresolved:   List[str]        = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        path = self.output_path
        return {
            "success":                True,
            "circuit_name":           self.circuit_name,
            "component_count":        len(self.components),
            "wire_count":             len(self.wires),
            "components":             list(self.components),
            "wires": [
                {
                    "from":  f"{w.start.component}.{w.start.pin}",
                    "to":    f"{w.end.component}.{w.end.pin}",
                    "color": w.color.value,
                    "label": w.label,
                }
                for w in self.wires
            ],
            "skipped_components":     list(self.skipped),
            "unresolved_connections": list(self.unresolved),
            "output_file":            str(path) if path else None,
            "download_url":           f"/download/{path.name}" if path else None,
            "error":                  None,
        }


def diagram_filename(circuit_name: str) -> str:
    """``'Arduino LED Blink'`` → ``'Arduino_LED_Blink.svg'``."""
    stem = slugify_label(circuit_name)[:MAX_FILENAME_STEM]
    return f"{stem or 'circuit'}.svg"


# ── Assembler ─────────────────────────────────────────────────────────────────

class CircuitAssembler:
    """
    Builds wiring diagrams from component artwork on disk.

    One assembler can serve many requests; pass a shared ``ArtworkCache``
    to avoid re-reading artwork between them.
    """

    def __init__(
        self,
        components_dir: Optional[Path]         = None,
        cache:          Optional[ArtworkCache] = None,
        config:         LayoutConfig           = CONFIG,
    ) -> None:
        self.loader = ArtworkLoader(components_dir or COMPONENTS_DIR, cache)
        self.config = config

    @property
    def components_dir(self) -> Path:
        return self.loader.components_dir

    def build(self, request: DiagramRequest) -> DiagramResult:
        """Run the pipeline in memory; nothing is written."""
        logger.info("Generating circuit: %s", request.circuit_name)
        labels   = request.components_used
        artworks = self.loader.load_all(labels)
        placed   = layout_components(labels, artworks, self.config)

        wires:      List[Wire] = []
        unresolved: List[str]  = []
        for line in request.connections:
            wire = parse_connection(line, placed)
            if wire is not None:
                wires.append(wire)
            elif not is_annotation(line):
                unresolved.append(line)
        logger.info("Total wires created: %d", len(wires))

        skipped = [label for label in dict.fromkeys(labels) if label not in placed]
        svg = render_svg(request.circuit_name, placed, wires, self.config)
        return DiagramResult(
            circuit_name=request.circuit_name,
            svg=svg,
            components=list(placed),
            wires=wires,
            skipped=skipped,
            unresolved=unresolved,
        )

    def generate(self, request: DiagramRequest, output_path: Path) -> DiagramResult:
        """Build and persist; raises DiagramOutputError if the write fails."""
        result = self.build(request)
        result.output_path = self._write(result.svg, Path(output_path))
        return result

    def generate_circuit(
        self,
        circuit_name:    str,
        components_used: Sequence[str],
        connections:     Sequence[str],
        output_path:     Path,
    ) -> str:
        """Write the diagram for the given circuit and return the SVG text."""
        request = DiagramRequest(
            circuit_name=circuit_name,
            components_used=list(components_used),
            connections=list(connections),
        )
        return self.generate(request, output_path).svg

    @staticmethod
    def _write(svg: str, output_path: Path) -> Path:
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(svg, encoding="utf-8")
        except OSError as exc:
            raise DiagramOutputError(f"Cannot write diagram to {output_path}: {exc}") from exc
        logger.info("Circuit diagram saved: %s", output_path)
        return output_path


# ── Async entry point ─────────────────────────────────────────────────────────

def _failure(circuit_name: str, error: str, error_type: str) -> Dict[str, Any]:
    return {
        "success":         False,
        "circuit_name":    circuit_name,
        "component_count": 0,
        "wire_count":      0,
        "output_file":     None,
        "download_url":    None,
        "error":           error,
        "error_type":      error_type,
    }


async def generate_diagram(
    request:    DiagramRequest,
    assembler:  Optional[CircuitAssembler] = None,
    output_dir: Optional[Path]             = None,
) -> Dict[str, Any]:
    """
    Render *request* into ``output_dir/<slug>.svg`` without blocking the loop.

    Returns:
        ``DiagramResult.to_dict()`` on success, otherwise a dict with
        ``success=False``, ``error`` and ``error_type`` ('output_error' for
        write failures, 'internal_error' for anything unexpected).
    """
    assembler  = assembler or CircuitAssembler()
    output_dir = Path(output_dir or OUTPUT_DIR)
    out_path   = output_dir / diagram_filename(request.circuit_name)

    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(None, assembler.generate, request, out_path)
    except DiagramOutputError as exc:
        logger.error("Diagram output failed: %s", exc)
        return _failure(request.circuit_name, str(exc), "output_error")
    except Exception as exc:
        logger.exception("Diagram generation failed for %s", request.circuit_name)
        return _failure(request.circuit_name, str(exc), "internal_error")
    return result.to_dict()


def generate_diagram_sync(
    request:    DiagramRequest,
    assembler:  Optional[CircuitAssembler] = None,
    output_dir: Optional[Path]             = None,
) -> Dict[str, Any]:
    """
    Synchronous shim around generate_diagram() for the CLI and tests.

    Inside a running event loop the coroutine is run on a worker thread
    with its own loop.
    """
    try:
        asyncio.get_running_loop()
        _loop_running = True
    except RuntimeError:
        _loop_running = False

    coro = generate_diagram(request, assembler, output_dir)
    if _loop_running:
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as ex:
            return ex.submit(asyncio.run, coro).result(timeout=120)
    return asyncio.run(coro)
