"""Generic AI job state machine.

Handles ``range_analysis``, ``predictive_maintenance`` and
``custom_query`` jobs::

    pending -> processing (0.1) -> 0.3 -> 0.5 -> completed (1.0)
           \\-> error

Dashboard and export jobs belong to their own processors and are skipped
here. Any other type is a hard ``error``. Nothing is retried; a failed job
has to be resubmitted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, assert_never

from drivepipe import paths
from drivepipe._constants import PROGRESS_ENTITIES_RESOLVED, PROGRESS_PROMPT_READY, PROGRESS_STARTED
from drivepipe.ai import prompts
from drivepipe.ai._common import JobProgress, VehicleData, require_vehicle_id
from drivepipe.ai.oracle import Oracle, Priority
from drivepipe.config import PipelineConfig
from drivepipe.models import (
    AiJob,
    CustomQueryParams,
    DashboardGenerationParams,
    ExportParams,
    JobParams,
    JobType,
    PredictiveMaintenanceParams,
    RangeAnalysisParams,
    Vehicle,
)
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)

DEDICATED_JOB_TYPES: frozenset[str] = frozenset({JobType.DASHBOARD_GENERATION, JobType.EXPORT})


class AnalysisJobProcessor:
    """Runs analysis-type AI jobs to a terminal state.

    Parameters
    ----------
    store : DocumentStore
        Holds jobs, vehicles, drives and maintenance records.
    oracle : Oracle
        Called exactly once per job.
    config : PipelineConfig
        Supplies the per-type drive limits.
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

    def handles(self, job: AiJob) -> bool:
        return job.type not in DEDICATED_JOB_TYPES

    async def process(self, job_path: paths.JobPath, job: AiJob) -> None:
        if not self.handles(job):
            _logger.debug("Job %s (%s) has a dedicated processor; skipping", job_path.job_id, job.type)
            return

        progress = JobProgress(
            self._store,
            paths.ai_job(job_path.uid, job_path.job_id),
            clock=self._clock,
        )
        try:
            await progress.start(PROGRESS_STARTED)
            vid = require_vehicle_id(job)
            vehicle = await self._data.vehicle(job_path.uid, vid)
            params = job.typed_params()
            result = await self._run(job_path.uid, vid, vehicle, params, progress)
            await progress.complete(result)
        except Exception as exc:
            _logger.exception("AI job %s (%s) failed", job_path.job_id, job.type)
            await progress.fail(str(exc))

    async def _run(
        self,
        uid: str,
        vid: str,
        vehicle: Vehicle,
        params: JobParams,
        progress: JobProgress,
    ) -> dict[str, Any]:
        match params:
            case RangeAnalysisParams(start_date=start, end_date=end, focus=focus):
                await progress.advance(PROGRESS_ENTITIES_RESOLVED)
                drives = await self._data.drives_between(uid, vid, start, end)
                await progress.advance(PROGRESS_PROMPT_READY)
                prompt = prompts.build_range_analysis_prompt(
                    vehicle,
                    drives,
                    start_date=start,
                    end_date=end,
                    focus=focus,
                )
                return await self._oracle.invoke(prompt, Priority.HIGH)

            case PredictiveMaintenanceParams():
                await progress.advance(PROGRESS_ENTITIES_RESOLVED)
                drives = await self._data.recent_drives(uid, vid, self._config.maintenance_drive_limit)
                history = await self._data.maintenance_history(uid, vid)
                await progress.advance(PROGRESS_PROMPT_READY)
                prompt = prompts.build_maintenance_prediction_prompt(vehicle, drives, history)
                return await self._oracle.invoke(prompt, Priority.HIGH)

            case CustomQueryParams():
                await progress.advance(PROGRESS_ENTITIES_RESOLVED)
                drives = await self._data.recent_drives(uid, vid, self._config.custom_query_drive_limit)
                await progress.advance(PROGRESS_PROMPT_READY)
                prompt = prompts.build_custom_query_prompt(vehicle, drives, params.question)
                return await self._oracle.invoke(prompt, Priority.HIGH)

            case DashboardGenerationParams() | ExportParams():
                raise ValueError(f"{params.type} jobs are not handled by the analysis processor")

            case _:
                assert_never(params)
