"""Dashboard generation jobs.

``processing`` (0.2) -> vehicle resolved (0.5) -> oracle -> dashboard
document written -> ``completed`` with ``{dashboardId, ...dashboard}``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from drivepipe import paths
from drivepipe._constants import PROGRESS_DASHBOARD_STARTED, PROGRESS_PROMPT_READY
from drivepipe.ai import prompts
from drivepipe.ai._common import JobProgress, VehicleData, require_vehicle_id
from drivepipe.ai.oracle import Oracle, Priority
from drivepipe.models import AiJob, DashboardGenerationParams, JobType
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)


class DashboardJobProcessor:
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

    def handles(self, job: AiJob) -> bool:
        return job.type == JobType.DASHBOARD_GENERATION

    async def process(self, job_path: paths.JobPath, job: AiJob) -> None:
        if not self.handles(job):
            return

        progress = JobProgress(self._store, paths.ai_job(job_path.uid, job_path.job_id), clock=self._clock)
        try:
            await progress.start(PROGRESS_DASHBOARD_STARTED)
            params = job.typed_params()
            assert isinstance(params, DashboardGenerationParams)
            vid = require_vehicle_id(job)
            vehicle = await self._data.vehicle(job_path.uid, vid)
            await progress.advance(PROGRESS_PROMPT_READY)

            dashboard = await self._oracle.invoke(
                prompts.build_dashboard_prompt(vehicle, params.prompt),
                Priority.MEDIUM,
            )
            dashboard_path = await self._store.add(
                paths.dashboards(job_path.uid),
                {
                    **dashboard,
                    "vehicleId": vid,
                    "createdAt": self._clock().isoformat(),
                    "source": "ai_generated",
                    "aiJobId": job_path.job_id,
                },
            )
            dashboard_id = dashboard_path.rsplit("/", 1)[-1]
            _logger.info("Dashboard %s generated for job %s", dashboard_id, job_path.job_id)
            await progress.complete({"dashboardId": dashboard_id, **dashboard})
        except Exception as exc:
            _logger.exception("Dashboard job %s failed", job_path.job_id)
            await progress.fail(str(exc))
