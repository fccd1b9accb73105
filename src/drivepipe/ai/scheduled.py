"""Time-triggered sweeps over every user's vehicles.

* :meth:`ScheduledSweeps.predictive_maintenance` runs daily at 03:00 UTC
  and stores each prediction as a maintenance record.
* :meth:`ScheduledSweeps.compute_baselines` runs weekly on Sunday at
  04:00 UTC and stores baseline ranges on the vehicle.

Vehicles without qualifying drives are skipped. One vehicle failing is
logged and the sweep moves on.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydantic import ValidationError

from drivepipe import paths
from drivepipe._constants import USERS
from drivepipe.ai import prompts
from drivepipe.ai._common import VehicleData
from drivepipe.ai.oracle import Oracle, Priority
from drivepipe.config import PipelineConfig
from drivepipe.models import MaintenancePrediction, Vehicle
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)

# cron expressions for the host scheduler
DAILY_MAINTENANCE_SCHEDULE = "0 3 * * *"
WEEKLY_BASELINE_SCHEDULE = "0 4 * * 0"


@dataclass
class SweepReport:
    """Per-run counters."""

    processed: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
    written: int = 0


class ScheduledSweeps:
    """Runs the daily maintenance and weekly baseline sweeps.

    Parameters
    ----------
    store : DocumentStore
        Holds users, vehicles, drives and maintenance.
    oracle : Oracle
        Called once per qualifying vehicle.
    config : PipelineConfig
        Supplies the maintenance drive limit and baseline window.
    """

    def __init__(
        self,
        store: DocumentStore,
        oracle: Oracle,
        config: PipelineConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._config = config
        self._clock = clock
        self._data = VehicleData(store)

    async def _for_each_vehicle(
        self,
        name: str,
        visit: Callable[[str, str, Vehicle], Awaitable[int | None]],
    ) -> SweepReport:
        report = SweepReport()
        for uid in await self._store.list_ids(USERS):
            for vid in await self._store.list_ids(paths.vehicles(uid)):
                try:
                    vehicle = await self._data.vehicle(uid, vid)
                    written = await visit(uid, vid, vehicle)
                except Exception:
                    _logger.exception("%s failed for vehicle %s/%s", name, uid, vid)
                    report.failed.append(paths.vehicle(uid, vid))
                    continue
                if written is None:
                    report.skipped += 1
                else:
                    report.processed += 1
                    report.written += written
        _logger.info(
            "%s finished: processed=%d skipped=%d failed=%d written=%d",
            name,
            report.processed,
            report.skipped,
            len(report.failed),
            report.written,
        )
        return report

    async def predictive_maintenance(self) -> SweepReport:
        """Predict upcoming maintenance for every vehicle with drives."""
        return await self._for_each_vehicle("Predictive maintenance sweep", self._predict_vehicle)

    async def _predict_vehicle(self, uid: str, vid: str, vehicle: Vehicle) -> int | None:
        drives = await self._data.recent_drives(uid, vid, self._config.maintenance_drive_limit)
        if not drives:
            return None
        history = await self._data.maintenance_history(uid, vid)
        result = await self._oracle.invoke(
            prompts.build_maintenance_prediction_prompt(vehicle, drives, history),
            Priority.HIGH,
        )

        predictions = result.get("predictions")
        if not isinstance(predictions, list):
            return 0
        created_at = self._clock().isoformat()
        written = 0
        for raw in predictions:
            if not isinstance(raw, dict):
                continue
            try:
                prediction = MaintenancePrediction.model_validate(raw)
            except ValidationError:
                _logger.warning("Skipping malformed prediction for %s/%s: %s", uid, vid, raw)
                continue
            record = prediction.to_maintenance_record(created_at=created_at)
            await self._store.add(paths.maintenance(uid, vid), record.to_document())
            written += 1
        return written

    async def compute_baselines(self) -> SweepReport:
        """Recompute baseline ranges from the recent drive window."""
        return await self._for_each_vehicle("Baseline sweep", self._baseline_vehicle)

    async def _baseline_vehicle(self, uid: str, vid: str, vehicle: Vehicle) -> int | None:
        now = self._clock()
        since = (now - timedelta(days=self._config.baseline_window_days)).isoformat()
        drives = await self._data.drives_since(uid, vid, since)
        if not drives:
            return None
        baselines = await self._oracle.invoke_light(
            prompts.build_baseline_prompt(vehicle, drives),
            max_output_tokens=self._config.oracle_flash_max_output_tokens,
        )
        await self._store.update(
            paths.vehicle(uid, vid),
            {"baselineData": baselines, "baselineUpdatedAt": now.isoformat()},
        )
        return 1
