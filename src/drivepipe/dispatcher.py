"""Routing of document changes to pipeline components.

:class:`DriveDispatcher` decides per component whether a drive update
should trigger it::

    run = not before.timeseriesUploaded
          and after.timeseriesUploaded
          and not current[<component marker>]

The marker is read from the drive as currently stored, so a redelivered
event for work that already finished is a no-op. Components run
concurrently and record their own failures, so one failing never blocks
the others.

:class:`JobDispatcher` routes newly created AI jobs to the processor for
their type.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from drivepipe import paths
from drivepipe.feed.events import ChangeEvent
from drivepipe.models import AiJob, Drive, JobStatus, JobType
from drivepipe.models._base import utcnow
from drivepipe.store.documents import DocumentStore

_logger = logging.getLogger(__name__)

UPLOAD_FLAG = "timeseriesUploaded"


class DriveComponent(Protocol):
    """A component triggered by a drive's upload completing."""

    marker: str
    error_field: str

    async def handle(self, drive_path: paths.DrivePath, drive: Drive) -> Any: ...


class JobProcessor(Protocol):
    def handles(self, job: AiJob) -> bool: ...

    async def process(self, job_path: paths.JobPath, job: AiJob) -> None: ...


def upload_completed(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None) -> bool:
    """Whether the upload flag flipped from unset to set."""
    if after is None:
        return False
    return not (before or {}).get(UPLOAD_FLAG) and bool(after.get(UPLOAD_FLAG))


def should_run(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None, marker: str) -> bool:
    """Guard for one component; pure over the two snapshots."""
    return upload_completed(before, after) and not (after or {}).get(marker)


class DriveDispatcher:
    """Fans a drive's upload-completed transition out to its components.

    Parameters
    ----------
    store : DocumentStore
        Used to re-read the drive so markers reflect completed work.
    components : sequence of DriveComponent
        Components to trigger, each guarded by its own marker.
    """

    def __init__(self, store: DocumentStore, components: Sequence[DriveComponent]) -> None:
        self._store = store
        self._components = tuple(components)

    @property
    def components(self) -> tuple[DriveComponent, ...]:
        return self._components

    async def on_drive_updated(self, event: ChangeEvent) -> list[str]:
        """Handle one drive change; returns the markers of components that ran."""
        drive_path = paths.parse_drive_path(event.path)
        if drive_path is None or event.after is None:
            return []
        if not upload_completed(event.before, event.after):
            return []

        current = await self._store.get(event.path)
        if not current.exists:
            _logger.debug("Drive %s deleted before dispatch", drive_path.did)
            return []
        current_data = current.to_dict()

        selected = [c for c in self._components if should_run(event.before, current_data, c.marker)]
        if not selected:
            _logger.debug("Drive %s: all components already done", drive_path.did)
            return []

        try:
            drive = Drive.from_document(drive_path.did, current_data)
        except ValidationError as exc:
            _logger.warning("Drive %s is malformed: %s", drive_path.did, exc)
            await self._store.update(event.path, {c.error_field: str(exc) for c in selected})
            return [component.marker for component in selected]

        results = await asyncio.gather(
            *(component.handle(drive_path, drive) for component in selected),
            return_exceptions=True,
        )
        for component, result in zip(selected, results):
            if isinstance(result, Exception):
                _logger.error(
                    "Component %s raised for drive %s",
                    type(component).__name__,
                    drive_path.did,
                    exc_info=result,
                )
        return [component.marker for component in selected]


class JobDispatcher:
    """Routes created AI jobs to the processor for their type.

    Dashboard and export jobs go to their dedicated processors; every
    other type, including unknown ones, goes to the analysis processor,
    which fails unknown types hard.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        analysis: JobProcessor,
        dashboards: JobProcessor,
        exports: JobProcessor,
    ) -> None:
        self._store = store
        self._analysis = analysis
        self._dashboards = dashboards
        self._exports = exports

    def processor_for(self, job: AiJob) -> JobProcessor:
        match job.job_type:
            case JobType.DASHBOARD_GENERATION:
                return self._dashboards
            case JobType.EXPORT:
                return self._exports
            case _:
                return self._analysis

    async def on_job_created(self, event: ChangeEvent) -> bool:
        """Process a newly created job; returns whether a processor ran."""
        job_path = paths.parse_job_path(event.path)
        if job_path is None or event.after is None:
            return False

        current = await self._store.get(event.path)
        if not current.exists:
            return False

        try:
            job = AiJob.from_document(job_path.job_id, current.to_dict())
        except ValidationError as exc:
            _logger.warning("AI job %s is malformed: %s", job_path.job_id, exc)
            await self._store.update(
                event.path,
                {"status": JobStatus.ERROR.value, "error": str(exc), "completedAt": utcnow().isoformat()},
            )
            return False

        if job.status is not JobStatus.PENDING:
            _logger.debug("AI job %s already %s; skipping", job_path.job_id, job.status)
            return False

        await self.processor_for(job).process(job_path, job)
        return True
