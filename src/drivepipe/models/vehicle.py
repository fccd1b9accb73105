"""Vehicle and maintenance document models."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import field_validator

from drivepipe.models._base import DocumentModel, IsoTimestamp, NestedModel

DEFAULT_ENGINE = "6.7L Cummins"

# vPIC "Variable" name for each decoded field.
_VPIC_VARIABLES = {
    "make": "Make",
    "model": "Model",
    "year": "Model Year",
    "engine_displacement": "Displacement (L)",
    "engine_cylinders": "Engine Number of Cylinders",
    "fuel_type": "Fuel Type - Primary",
    "drive_type": "Drive Type",
    "body_class": "Body Class",
    "gvwr": "Gross Vehicle Weight Rating From",
    "transmission_style": "Transmission Style",
    "plant": "Plant City",
}


class VinDetails(NestedModel):
    """Manufacturer data decoded from a VIN.

    Every value is kept as the string the lookup service returned.
    """

    make: str | None = None
    model: str | None = None
    year: str | None = None
    engine_displacement: str | None = None
    engine_cylinders: str | None = None
    fuel_type: str | None = None
    drive_type: str | None = None
    body_class: str | None = None
    gvwr: str | None = None
    transmission_style: str | None = None
    plant: str | None = None

    @classmethod
    def from_vpic_results(cls, results: Iterable[Mapping[str, Any]]) -> VinDetails:
        """Build from the ``Results`` list of a vPIC ``decodevin`` response.

        Entries with a blank ``Value`` are ignored; the last non-blank entry
        for a variable wins.
        """
        values: dict[str, str] = {}
        for item in results:
            value = item.get("Value")
            if isinstance(value, str) and value.strip():
                values[str(item.get("Variable"))] = value.strip()
        return cls(**{field: values.get(variable) for field, variable in _VPIC_VARIABLES.items()})

    def to_document(self) -> dict[str, Any]:
        """Dump with explicit nulls for fields the VIN did not yield."""
        return self.model_dump(by_alias=True, mode="json")


class Vehicle(DocumentModel):
    """A vehicle owned by a user.

    Only the fields the prompts and sweeps read are typed; everything else
    stays available through ``raw``.
    """

    vin: str | None = None
    year: str | None = None
    make: str | None = None
    model: str | None = None
    trim: str | None = None
    engine: str | None = None
    current_odometer: float | None = None
    baseline_data: dict[str, Any] | None = None
    vin_decoded: VinDetails | None = None
    vin_decoded_at: IsoTimestamp = None
    vin_error: str | None = None

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @property
    def description(self) -> str:
        parts = [p for p in (self.year, self.make, self.model, self.trim) if p]
        return " ".join(parts) if parts else "Unknown vehicle"

    @property
    def engine_description(self) -> str:
        return self.engine or DEFAULT_ENGINE


class MaintenanceRecord(DocumentModel):
    """A logged or predicted maintenance event."""

    date: IsoTimestamp = None
    type: str | None = None
    description: str | None = None
    cost: float | None = None
    source: str | None = None
    status: str | None = None
    urgency: str | None = None
    estimated_date: str | None = None
    estimated_miles: float | None = None
    confidence: float | None = None
    reasoning: str | None = None
    created_at: IsoTimestamp = None


class MaintenancePrediction(DocumentModel):
    """One entry of an oracle ``predictions`` list."""

    type: str | None = None
    urgency: str | None = None
    estimated_date: str | None = None
    estimated_miles: float | None = None
    confidence: float | None = None
    reasoning: str | None = None

    def to_maintenance_record(self, *, created_at: str) -> MaintenanceRecord:
        return MaintenanceRecord(
            type=self.type,
            source="ai_prediction",
            urgency=self.urgency,
            estimated_date=self.estimated_date,
            estimated_miles=self.estimated_miles,
            confidence=self.confidence,
            reasoning=self.reasoning,
            status="predicted",
            created_at=created_at,
        )
