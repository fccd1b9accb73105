"""Export jobs: drive rows rendered to CSV or JSON behind a signed link.

Row sources per drive, first available wins:

1. the drive's columnar file (``parquetPath``)
2. the uploaded timeseries payload (``timeseriesPath`` + ``timeseriesUploaded``)
3. legacy per-datapoint documents, ordered by ``timestamp``

Every row is prefixed with ``driveId``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from drivepipe import paths
from drivepipe._constants import (
    PROGRESS_ENTITIES_RESOLVED,
    PROGRESS_EXPORT_RENDERED,
    PROGRESS_EXPORT_ROWS_READ,
    PROGRESS_STARTED,
)
from drivepipe.ai._common import JobProgress, require_vehicle_id
from drivepipe.config import PipelineConfig
from drivepipe.exceptions import BlobNotFoundError, CodecError, ExportError
from drivepipe.models import AiJob, Drive, ExportParams, JobType
from drivepipe.models._base import utcnow
from drivepipe.store.blobs import BlobStore
from drivepipe.store.documents import DocumentStore, OrderBy
from drivepipe.timeseries.columnar import read_columnar_rows
from drivepipe.timeseries.export import CONTENT_TYPES, render
from drivepipe.timeseries.payload import read_timeseries

_logger = logging.getLogger(__name__)


class ExportJobProcessor:
    """Builds export artifacts for ``type="export"`` jobs.

    Parameters
    ----------
    store : DocumentStore
        Holds jobs, drives and legacy datapoints.
    blobs : BlobStore
        Source of columnar/timeseries files and destination of exports.
    config : PipelineConfig
        Supplies the signed-URL lifetime.
    """

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        config: PipelineConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._config = config
        self._clock = clock

    def handles(self, job: AiJob) -> bool:
        return job.type == JobType.EXPORT

    async def drive_rows(self, uid: str, vid: str, did: str) -> list[dict[str, Any]]:
        """Rows for one drive, each prefixed with ``driveId``."""
        snapshot = await self._store.get(paths.drive(uid, vid, did))
        drive = Drive.from_document(did, snapshot.to_dict())

        loop = asyncio.get_running_loop()
        try:
            if drive.parquet_path and await self._blobs.exists(drive.parquet_path):
                source = "parquet"
                data = await self._blobs.read(drive.parquet_path)
                rows = await loop.run_in_executor(None, read_columnar_rows, data)
            elif drive.timeseries_path and drive.timeseries_uploaded:
                source = "timeseries"
                expanded = await read_timeseries(self._blobs, drive.timeseries_path)
                rows = await loop.run_in_executor(None, list, expanded)
            else:
                source = "datapoints"
                rows = None
        except (CodecError, BlobNotFoundError) as exc:
            raise ExportError(f"Drive {did}: {exc}") from exc

        if rows is None:
            datapoints = await self._store.query(
                paths.datapoints(uid, vid, did),
                order_by=OrderBy("timestamp"),
            )
            rows = [dp.to_dict() for dp in datapoints]

        _logger.debug("Export drive %s: %d rows from %s", did, len(rows), source)
        return [{"driveId": did, **row} for row in rows]

    async def process(self, job_path: paths.JobPath, job: AiJob) -> None:
        if not self.handles(job):
            return

        progress = JobProgress(self._store, paths.ai_job(job_path.uid, job_path.job_id), clock=self._clock)
        try:
            await progress.start(PROGRESS_STARTED)
            params = job.typed_params()
            assert isinstance(params, ExportParams)
            vid = require_vehicle_id(job)

            await progress.advance(PROGRESS_ENTITIES_RESOLVED)
            all_rows: list[dict[str, Any]] = []
            for did in params.drive_ids:
                all_rows.extend(await self.drive_rows(job_path.uid, vid, did))

            await progress.advance(PROGRESS_EXPORT_ROWS_READ)
            content = render(all_rows, params.format)
            ext = params.format.value

            await progress.advance(PROGRESS_EXPORT_RENDERED)
            file_path = paths.export_blob(job_path.uid, vid, job_path.job_id, ext)
            await self._blobs.write(
                file_path,
                content.encode("utf-8"),
                content_type=CONTENT_TYPES[params.format],
            )
            download_url = self._blobs.signed_url(file_path, expires_in=self._config.signed_url_ttl)
            _logger.info("Export %s written (%d rows)", file_path, len(all_rows))

            await progress.complete(
                {
                    "downloadUrl": download_url,
                    "filePath": file_path,
                    "rowCount": len(all_rows),
                    "format": ext,
                }
            )
        except Exception as exc:
            _logger.exception("Export job %s failed", job_path.job_id)
            await progress.fail(str(exc))
