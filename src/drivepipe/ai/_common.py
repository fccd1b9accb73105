"""Shared helpers for AI job processors and sweeps.

This module centralizes the repeated patterns:
- loading a vehicle and its drives / maintenance history as models
- writing job status and progress checkpoints

It is internal to drivepipe and may change at any time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from drivepipe import paths
from drivepipe._constants import PROGRESS_DONE
from drivepipe.models import AiJob, Drive, JobStatus, MaintenanceRecord, Vehicle
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore, Filter, OrderBy

_logger = logging.getLogger(__name__)


def require_vehicle_id(job: AiJob) -> str:
    if not job.vehicle_id:
        raise ValueError(f"AI job {job.id} has no vehicleId")
    return job.vehicle_id


class VehicleData:
    """Read-side access to a vehicle and the documents under it."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def vehicle(self, uid: str, vid: str) -> Vehicle:
        """Load a vehicle; a missing document yields an empty model."""
        snapshot = await self._store.get(paths.vehicle(uid, vid))
        return Vehicle.from_document(vid, snapshot.to_dict())

    async def recent_drives(self, uid: str, vid: str, limit: int) -> list[Drive]:
        snapshots = await self._store.query(
            paths.drives(uid, vid),
            order_by=OrderBy("startTime", descending=True),
            limit=limit,
        )
        return [Drive.from_document(s.id, s.to_dict()) for s in snapshots]

    async def drives_between(self, uid: str, vid: str, start: str, end: str) -> list[Drive]:
        """Drives with ``start <= startTime <= end``, oldest first."""
        snapshots = await self._store.query(
            paths.drives(uid, vid),
            where=[Filter("startTime", ">=", start), Filter("startTime", "<=", end)],
            order_by=OrderBy("startTime"),
        )
        return [Drive.from_document(s.id, s.to_dict()) for s in snapshots]

    async def drives_since(self, uid: str, vid: str, since: str) -> list[Drive]:
        snapshots = await self._store.query(
            paths.drives(uid, vid),
            where=[Filter("startTime", ">=", since)],
            order_by=OrderBy("startTime"),
        )
        return [Drive.from_document(s.id, s.to_dict()) for s in snapshots]

    async def maintenance_history(self, uid: str, vid: str) -> list[MaintenanceRecord]:
        """Maintenance records, newest first."""
        snapshots = await self._store.query(
            paths.maintenance(uid, vid),
            order_by=OrderBy("date", descending=True),
        )
        return [MaintenanceRecord.from_document(s.id, s.to_dict()) for s in snapshots]


class JobProgress:
    """Writes status/progress/result for one AI job document.

    Progress only moves forward; a lower checkpoint than the last one
    written is ignored.
    """

    def __init__(
        self,
        store: DocumentStore,
        job_path: str,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._path = job_path
        self._clock = clock
        self._progress = 0.0

    @property
    def progress(self) -> float:
        return self._progress

    async def start(self, progress: float) -> None:
        self._progress = progress
        await self._store.update(self._path, {"status": JobStatus.PROCESSING.value, "progress": progress})

    async def advance(self, progress: float) -> None:
        if progress <= self._progress:
            return
        self._progress = progress
        await self._store.update(self._path, {"progress": progress})

    async def complete(self, result: dict[str, Any]) -> None:
        self._progress = PROGRESS_DONE
        await self._store.update(
            self._path,
            {
                "status": JobStatus.COMPLETED.value,
                "progress": PROGRESS_DONE,
                "result": result,
                "completedAt": self._clock().isoformat(),
            },
        )
        _logger.info("AI job %s completed", self._path)

    async def fail(self, message: str) -> None:
        await self._store.update(
            self._path,
            {
                "status": JobStatus.ERROR.value,
                "error": message,
                "completedAt": self._clock().isoformat(),
            },
        )
