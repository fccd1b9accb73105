"""Per-drive AI analysis, run once a drive's upload completes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from drivepipe import paths
from drivepipe.ai import prompts
from drivepipe.ai._common import VehicleData
from drivepipe.ai.oracle import Oracle, Priority
from drivepipe.models import Drive
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)


def aggregate_drive_stats(drive: Drive) -> dict[str, Any]:
    """Flatten ``parameterStats`` into ``avg_``/``min_``/``max_``/``count_`` keys."""
    stats: dict[str, Any] = {
        "datapointCount": drive.datapoint_count or 0,
        "durationSeconds": drive.duration_seconds or 0,
        "distanceMiles": drive.distance_miles or 0,
        "sensorList": list(drive.sensor_list),
    }
    for name, stat in drive.parameter_stats.items():
        for prefix, value in (("avg", stat.avg), ("min", stat.min), ("max", stat.max), ("count", stat.count)):
            if value is not None:
                stats[f"{prefix}_{name}"] = value
    return stats


class DriveAnalyzer:
    """Writes the oracle's verdict onto a drive.

    Output marker on the drive is ``aiSummary``; failures are recorded in
    ``aiError`` and never raised to the caller.
    """

    marker = "aiSummary"
    error_field = "aiError"

    def __init__(
        self,
        store: DocumentStore,
        oracle: Oracle,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._clock = clock
        self._data = VehicleData(store)

    async def analyze(self, drive_path: paths.DrivePath, drive: Drive) -> dict[str, Any]:
        vehicle = await self._data.vehicle(drive_path.uid, drive_path.vid)
        if drive.id is None:
            drive = drive.model_copy(update={"id": drive_path.did})
        prompt = prompts.build_drive_analysis_prompt(vehicle, drive, aggregate_drive_stats(drive))
        analysis = await self._oracle.invoke(prompt, Priority.LOW)

        patch = {
            "aiSummary": analysis.get("summary") or "",
            "aiAnomalies": analysis.get("anomalies") or [],
            "aiHealthScore": analysis.get("healthScore") or 0,
            "aiRecommendations": analysis.get("recommendations") or [],
            "autoTags": analysis.get("autoTags") or [],
            "aiAnalyzedAt": self._clock().isoformat(),
            "status": "analysisComplete",
        }
        await self._store.update(paths.drive(drive_path.uid, drive_path.vid, drive_path.did), patch)
        _logger.info("Drive %s analyzed (healthScore=%s)", drive_path.did, patch["aiHealthScore"])
        return patch

    async def handle(self, drive_path: paths.DrivePath, drive: Drive) -> dict[str, Any] | None:
        try:
            return await self.analyze(drive_path, drive)
        except Exception as exc:
            _logger.exception("Drive analysis failed for %s", drive_path.did)
            await self._store.update(
                paths.drive(drive_path.uid, drive_path.vid, drive_path.did),
                {self.error_field: str(exc), "aiAnalyzedAt": self._clock().isoformat()},
            )
            return None
