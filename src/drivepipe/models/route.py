"""Route document model."""

from __future__ import annotations

from pydantic import Field

from drivepipe.models._base import DocumentModel, IsoTimestamp


class Route(DocumentModel):
    """A recurring start→end geography for one vehicle.

    Identified by ``(start_geohash, end_geohash)``. ``drive_count`` is the
    number of drives matched so far and is the weight of every running
    average below.
    """

    name: str = ""
    start_geohash: str
    end_geohash: str
    start_latitude: float | None = None
    start_longitude: float | None = None
    end_latitude: float | None = None
    end_longitude: float | None = None

    drive_count: int = 0
    avg_mpg: float | None = Field(default=None, alias="avgMPG")
    avg_duration_seconds: float | None = None
    avg_max_egt_f: float | None = None
    avg_max_boost_psi: float | None = None
    avg_max_trans_temp_f: float | None = None

    best_mpg: float | None = Field(default=None, alias="bestMPG")
    best_mpg_drive_id: str | None = Field(default=None, alias="bestMPGDriveId")
    worst_mpg: float | None = Field(default=None, alias="worstMPG")
    worst_mpg_drive_id: str | None = Field(default=None, alias="worstMPGDriveId")

    last_drive_date: IsoTimestamp = None
    created_at: IsoTimestamp = None
