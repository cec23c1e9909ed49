"""
Library Loader — stored circuit projects and component metadata.

    data/circuits/*.json                 → CircuitRecord
    data/components/<folder>/*.json      → ComponentRecord

Files that cannot be read or fail validation are logged and skipped; a bad
record never hides the good ones.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..circuit_schema import CircuitRecord, ComponentRecord
from .diagram_engine import COMPONENTS_DIR, DATA_DIR

logger = logging.getLogger(__name__)

CIRCUITS_DIR = Path(os.environ.get("CIRCUITS_DIR", str(DATA_DIR / "circuits")))

__all__ = ["CIRCUITS_DIR", "CircuitLibrary"]


def _read_json(path: Path) -> Optional[dict]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None
    except json.JSONDecodeError as exc:
        logger.warning("Invalid JSON in %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping %s: top-level value is not an object", path.name)
        return None
    return data


class CircuitLibrary:
    """In-memory index of stored circuits and component metadata."""

    def __init__(
        self,
        circuits_dir:   Optional[Path] = None,
        components_dir: Optional[Path] = None,
    ) -> None:
        self.circuits_dir   = Path(circuits_dir or CIRCUITS_DIR)
        self.components_dir = Path(components_dir or COMPONENTS_DIR)
        self.circuits:   List[CircuitRecord]   = []
        self.components: List[ComponentRecord] = []

    def load(self) -> "CircuitLibrary":
        self.load_circuits()
        self.load_components()
        return self

    # ── Loading ───────────────────────────────────────────────────────────────

    def load_circuits(self) -> List[CircuitRecord]:
        try:
            self.circuits_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Cannot create circuits directory %s: %s", self.circuits_dir, exc)

        records: List[CircuitRecord] = []
        for path in sorted(self.circuits_dir.glob("*.json")):
            data = _read_json(path)
            if data is None:
                continue
            try:
                records.append(CircuitRecord.model_validate(data))
            except ValidationError as exc:
                logger.warning(
                    "Skipping %s: missing required fields (name, description, componentsUsed): %d error(s)",
                    path.name, exc.error_count(),
                )
                continue
            logger.debug("Loaded circuit: %s", records[-1].name)

        if not records:
            logger.warning("No circuits found in %s", self.circuits_dir)
        else:
            logger.info("Loaded %d circuit documents", len(records))
        self.circuits = records
        return records

    def load_components(self) -> List[ComponentRecord]:
        records: List[ComponentRecord] = []
        try:
            folders = sorted(p for p in self.components_dir.iterdir() if p.is_dir())
        except OSError as exc:
            logger.warning("Cannot list components directory %s: %s", self.components_dir, exc)
            folders = []

        for folder in folders:
            json_files = sorted(folder.glob("*.json"))
            if not json_files:
                logger.debug("No metadata JSON in %s", folder.name)
                continue
            data = _read_json(json_files[0])
            if data is None:
                continue
            try:
                record = ComponentRecord.model_validate({**data, "folder": folder.name})
            except ValidationError as exc:
                logger.warning("Skipping %s: invalid component metadata: %s", folder.name, exc)
                continue
            if not record.svg_path:
                svg_files = sorted(folder.glob("*.svg"))
                if svg_files:
                    record.svg_path = f"{folder.name}/{svg_files[0].name}"
            records.append(record)

        logger.info("Loaded %d component documents", len(records))
        self.components = records
        return records

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_circuit(self, name: str) -> Optional[CircuitRecord]:
        """First circuit whose name contains *name* (case-insensitive)."""
        needle = name.strip().lower()
        if not needle:
            return None
        return next((c for c in self.circuits if needle in c.name.lower()), None)

    def get_component(self, name: str) -> Optional[ComponentRecord]:
        needle = name.strip().lower()
        if not needle:
            return None
        return next((c for c in self.components if needle in c.name.lower()), None)

    def categories(self) -> List[str]:
        seen: Dict[str, None] = {}
        for c in self.circuits:
            if c.category:
                seen.setdefault(c.category, None)
        return list(seen)

    def search(self, query: str) -> List[CircuitRecord]:
        """Circuits whose name, description or category contains *query*."""
        q = query.strip().lower()
        if not q:
            return []
        return [
            c for c in self.circuits
            if q in c.name.lower() or q in c.description.lower() or q in c.category.lower()
        ]
