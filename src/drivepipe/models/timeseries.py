"""Column-oriented timeseries payload model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIMESTAMP_COLUMN = "timestamp"


class TimeseriesPayload(BaseModel):
    """Decompressed column-oriented sensor data for one drive.

    ``columns`` maps a parameter name to a dense array of length ``count``
    (shorter arrays are tolerated; missing tail entries read as null). The
    ``timestamp`` column holds epoch milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    count: int = 0
    columns: dict[str, list[Any]] = Field(default_factory=dict)

    @field_validator("count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        if value is None:
            return 0
        return int(value)

    @field_validator("columns", mode="before")
    @classmethod
    def _drop_non_array_columns(cls, value: Any) -> dict[str, list[Any]]:
        if not isinstance(value, dict):
            return {}
        return {str(k): v for k, v in value.items() if isinstance(v, list)}

    @property
    def sensor_names(self) -> list[str]:
        return [name for name in self.columns if name != TIMESTAMP_COLUMN]

    def value_at(self, name: str, index: int) -> Any:
        """Return the value of column *name* at *index*, or ``None``."""
        column = self.columns.get(name)
        if column is None or index >= len(column):
            return None
        return column[index]
