"""
Command-line front-end for the diagram assembler.

    python -m circuit_backend.cli list
    python -m circuit_backend.cli render --circuit "LED Blink"
    python -m circuit_backend.cli render --name "Night Light" \\
        --component "Arduino Nano" --component "LED (Red)" \\
        --connection "Arduino D13 → LED Anode" --output night_light.svg
    python -m circuit_backend.cli extract "blink an led with arduino"
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .circuit_schema import DiagramRequest
from .engines.diagram_engine import (
    COMPONENTS_DIR,
    OUTPUT_DIR,
    CircuitAssembler,
    DiagramOutputError,
    diagram_filename,
)
from .engines.library_loader import CIRCUITS_DIR, CircuitLibrary
from .engines.llm_engine import load_llm

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="circuit_backend.cli",
        description="Render Arduino wiring diagrams as SVG",
    )
    parser.add_argument("--components-dir", type=Path, default=COMPONENTS_DIR,
                        help="Component artwork directory (default: %(default)s)")
    parser.add_argument("--circuits-dir", type=Path, default=CIRCUITS_DIR,
                        help="Stored circuit JSON directory (default: %(default)s)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List stored circuits")

    render = sub.add_parser("render", help="Render a stored or ad-hoc circuit")
    source = render.add_mutually_exclusive_group(required=True)
    source.add_argument("--circuit", help="Name (or part of the name) of a stored circuit")
    source.add_argument("--name", help="Title of an ad-hoc circuit")
    render.add_argument("--component", action="append", default=[],
                        help="Component label (repeatable)")
    render.add_argument("--connection", action="append", default=[],
                        help="Connection line such as 'Battery + → Arduino VIN' (repeatable)")
    render.add_argument("--output", type=Path,
                        help="Destination .svg (default: output/<circuit name>.svg)")

    extract = sub.add_parser("extract", help="Extract a circuit from a question with the local LLM")
    extract.add_argument("question")
    extract.add_argument("--output", type=Path)
    return parser


def _render(assembler: CircuitAssembler, request: DiagramRequest, output: Optional[Path]) -> int:
    out_path = output or OUTPUT_DIR / diagram_filename(request.circuit_name)
    try:
        result = assembler.generate(request, out_path)
    except DiagramOutputError as exc:
        logger.error("%s", exc)
        return 1

    print(f"Wrote {result.output_path} ({len(result.components)} components, {len(result.wires)} wires)")
    for label in result.skipped:
        print(f"  skipped component: {label}")
    for line in result.unresolved:
        print(f"  unresolved connection: {line}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    assembler = CircuitAssembler(args.components_dir)

    if args.command == "list":
        library = CircuitLibrary(args.circuits_dir, args.components_dir)
        for circuit in library.load_circuits():
            category = f" [{circuit.category}]" if circuit.category else ""
            print(f"{circuit.name}{category}: {circuit.description}")
        return 0

    if args.command == "extract":
        llm = load_llm()
        if llm is None:
            logger.error("No LLM backend available (is Ollama running?)")
            return 2
        request = llm.extract_circuit_sync(args.question)
        if request is None:
            logger.error("No circuit could be extracted from the question")
            return 1
        return _render(assembler, request, args.output)

    if args.circuit:
        library = CircuitLibrary(args.circuits_dir, args.components_dir)
        library.load_circuits()
        circuit = library.get_circuit(args.circuit)
        if circuit is None:
            logger.error("Circuit not found: %s", args.circuit)
            return 1
        request = circuit.to_diagram_request()
    else:
        request = DiagramRequest(
            circuit_name=args.name,
            components_used=args.component,
            connections=args.connection,
        )

    return _render(assembler, request, args.output)


if __name__ == "__main__":
    sys.exit(main())
