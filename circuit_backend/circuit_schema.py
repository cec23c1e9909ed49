"""
Circuit JSON Schema — data structures shared by the diagram assembler,
the circuit library and the HTTP service.

Stored circuit and component files use camelCase keys (``componentsUsed``,
``operatingVoltage``); every model accepts both the camelCase alias and the
snake_case field name.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# ─── Enums and Constants ─────────────────────────────────────────────────────

class WireColor(str, Enum):
    """Wire colour code, keyed by the electrical role inferred from text."""
    POWER = "#FF0000"
    GROUND = "#000000"
    SIGNAL = "#FFFF00"
    DIGITAL = "#00FF00"
    ANALOG = "#0088FF"
    OTHER = "#888888"

    @property
    def legend_label(self) -> str:
        return _LEGEND_LABELS[self]


_LEGEND_LABELS: Dict[WireColor, str] = {
    WireColor.POWER: "Power (VIN, 5V, VCC)",
    WireColor.GROUND: "Ground (GND)",
    WireColor.DIGITAL: "Digital Pins",
    WireColor.ANALOG: "Analog Pins",
    WireColor.SIGNAL: "Signal",
    WireColor.OTHER: "Other",
}

# Arrow separating the two endpoint descriptions of a connection line
CONNECTION_ARROW = "→"

# Title used when a request carries a blank circuit name
DEFAULT_CIRCUIT_NAME = "Circuit Diagram"


# ─── Diagram Request ─────────────────────────────────────────────────────────

class DiagramRequest(BaseModel):
    """
    Everything the assembler needs to draw one circuit.

    Lists are kept verbatim: duplicate labels, labels without artwork and
    annotation lines are dealt with by the assembler, not rejected here.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    circuit_name: str = Field(
        ...,
        alias="circuitName",
        description="Document title and output filename stem",
    )
    components_used: List[str] = Field(
        default_factory=list,
        alias="componentsUsed",
        description="Free-text component labels (e.g. 'LED (Red)')",
    )
    connections: List[str] = Field(
        default_factory=list,
        description="Lines like 'Battery + → Arduino VIN'",
    )

    @model_validator(mode="before")
    @classmethod
    def accept_components_key(cls, values: Any) -> Any:
        """The LLM extraction format names the list ``components``."""
        if isinstance(values, dict) and "components" in values:
            if "componentsUsed" not in values and "components_used" not in values:
                values = {**values, "componentsUsed": values["components"]}
        return values

    @field_validator("circuit_name")
    @classmethod
    def default_blank_name(cls, v: str) -> str:
        return v if v.strip() else DEFAULT_CIRCUIT_NAME

    @field_validator("components_used", "connections")
    @classmethod
    def drop_blank_lines(cls, v: List[str]) -> List[str]:
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]


# ─── Stored Circuits ─────────────────────────────────────────────────────────

class CircuitRecord(BaseModel):
    """A circuit project stored as JSON under the circuits directory."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(default="")
    components_used: List[str] = Field(..., alias="componentsUsed")
    connections: List[str] = Field(default_factory=list)
    how_it_works: str = Field(default="", alias="howItWorks")
    power_notes: Optional[str] = Field(default=None, alias="powerNotes")
    safety_notes: List[str] = Field(default_factory=list, alias="safetyNotes")
    svg_path: Optional[str] = Field(default=None, alias="svgPath")

    def to_diagram_request(self) -> DiagramRequest:
        return DiagramRequest(
            circuit_name=self.name,
            components_used=self.components_used,
            connections=self.connections,
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "componentsUsed": self.components_used,
            "svgPath": self.svg_path,
        }


# ─── Component Metadata ──────────────────────────────────────────────────────

class PinoutEntry(BaseModel):
    """One row of a component pinout table."""
    model_config = ConfigDict(frozen=True)

    pin: str = Field(..., min_length=1, max_length=32)
    type: str = Field(default="unspecified", max_length=50)
    voltage: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)


class ComponentRecord(BaseModel):
    """Metadata JSON stored next to a component's artwork."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(default="")
    folder: str = Field(default="", description="Artwork folder (filled by the loader)")
    pinout: List[PinoutEntry] = Field(default_factory=list)
    technical_specifications: Dict[str, Any] = Field(
        default_factory=dict, alias="technicalSpecifications"
    )
    operating_voltage: str = Field(default="", alias="operatingVoltage")
    operating_temperature: str = Field(default="", alias="operatingTemperature")
    applications: List[str] = Field(default_factory=list)
    safety_notes: List[str] = Field(default_factory=list, alias="safetyNotes")
    svg_path: Optional[str] = Field(default=None, alias="svgPath")

    @property
    def pin_names(self) -> List[str]:
        return [p.pin for p in self.pinout]

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "folder": self.folder,
            "svgPath": self.svg_path,
            "technicalSpecifications": self.technical_specifications,
        }


def slugify_label(text: str) -> str:
    """Whitespace → underscore, then drop every non-ASCII-word character."""
    return re.sub(r"[^A-Za-z0-9_]", "", re.sub(r"\s+", "_", text))
