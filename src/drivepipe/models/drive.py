"""Drive document model.

A drive is created by the mobile client at trip start and completed when the
client flips ``timeseriesUploaded``. After that only pipeline components
write to it, each owning its own output fields.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from drivepipe.models._base import DocumentModel, IsoTimestamp, NestedModel, strip_placeholders

# Drive-level peak readings may be written at top level by older clients.
_MAXIMUM_KEYS = ("maxBoostPsi", "maxEgtF", "maxTransTempF")


class ParameterStat(NestedModel):
    """Per-parameter aggregate computed by the client."""

    min: float | None = None
    max: float | None = None
    avg: float | None = None
    count: int | None = None


class DriveMaximums(NestedModel):
    """Peak readings for the drive."""

    max_boost_psi: float | None = None
    max_egt_f: float | None = None
    max_trans_temp_f: float | None = None


class Drive(DocumentModel):
    """One recorded vehicle trip.

    Parameters
    ----------
    start_time : str or None
        ISO-8601 trip start.
    duration_seconds : float or None
        Trip duration.
    distance_miles : float or None
        Trip distance.
    average_mpg : float or None
        Average fuel economy over the trip.
    parameter_stats : dict
        ``{parameter: ParameterStat}`` summary written by the client.
    maximums : DriveMaximums
        Peak boost / EGT / transmission temperature.
    start_latitude, start_longitude, end_latitude, end_longitude : float or None
        GPS endpoints used for route matching.
    timeseries_uploaded : bool
        Upload-completion flag; its false→true transition triggers the
        pipeline.
    timeseries_path : str or None
        Blob path of the compressed column-oriented payload.
    """

    start_time: IsoTimestamp = None
    duration_seconds: float | None = None
    distance_miles: float | None = None
    average_mpg: float | None = Field(default=None, alias="averageMPG")
    datapoint_count: int | None = None
    sensor_list: list[str] = Field(default_factory=list)
    parameter_stats: dict[str, ParameterStat] = Field(default_factory=dict)
    maximums: DriveMaximums = Field(default_factory=DriveMaximums)

    start_latitude: float | None = None
    start_longitude: float | None = None
    end_latitude: float | None = None
    end_longitude: float | None = None

    timeseries_uploaded: bool = False
    timeseries_path: str | None = None
    status: str | None = None
    dpf_regen_occurred: bool | None = None

    # Pipeline outputs
    ai_summary: str | None = None
    ai_anomalies: list[Any] | None = None
    ai_health_score: float | None = None
    ai_recommendations: list[Any] | None = None
    auto_tags: list[str] | None = None
    ai_analyzed_at: IsoTimestamp = None
    ai_error: str | None = None
    route_id: str | None = None
    route_name: str | None = None
    route_error: str | None = None
    parquet_path: str | None = None
    parquet_row_count: int | None = None
    parquet_converted_at: IsoTimestamp = None
    parquet_error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_top_level_maximums(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        top_level = strip_placeholders({k: values[k] for k in _MAXIMUM_KEYS if k in values})
        if not top_level:
            return values
        merged = dict(values)
        nested = merged.get("maximums")
        maximums = dict(nested) if isinstance(nested, dict) else {}
        for key, value in top_level.items():
            maximums.setdefault(key, value)
        merged["maximums"] = maximums
        return merged

    @property
    def has_endpoints(self) -> bool:
        """Whether all four GPS endpoint coordinates are present."""
        return None not in (
            self.start_latitude,
            self.start_longitude,
            self.end_latitude,
            self.end_longitude,
        )

    @property
    def peak_egt(self) -> float | None:
        return self.maximums.max_egt_f

    @property
    def peak_boost(self) -> float | None:
        return self.maximums.max_boost_psi

    @property
    def peak_trans_temp(self) -> float | None:
        return self.maximums.max_trans_temp_f
