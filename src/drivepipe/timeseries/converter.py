"""Drive-upload component that writes the columnar file for a drive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from drivepipe import paths
from drivepipe._constants import COLUMNAR_SCHEMA_VERSION
from drivepipe.config import PipelineConfig
from drivepipe.models import Drive
from drivepipe.models._base import utcnow
from drivepipe.store.blobs import BlobStore
from drivepipe.store.documents import DocumentStore
from drivepipe.timeseries.columnar import ColumnarIdentity, encode_columnar
from drivepipe.timeseries.payload import read_timeseries_columns

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnarResult:
    path: str
    row_count: int


class ColumnarConverter:
    """Converts a drive's uploaded timeseries payload to parquet.

    Output marker on the drive is ``parquetPath``; failures are recorded in
    ``parquetError`` and never raised to the caller.
    """

    marker = "parquetPath"
    error_field = "parquetError"

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

    async def convert(self, drive_path: paths.DrivePath, drive: Drive) -> ColumnarResult | None:
        """Encode and store the columnar file; ``None`` when there is nothing to convert."""
        if not drive.timeseries_path:
            _logger.debug("Drive %s has no timeseriesPath; skipping parquet conversion", drive_path.did)
            return None

        payload = await read_timeseries_columns(self._blobs, drive.timeseries_path)
        if payload.count == 0:
            _logger.debug("Drive %s timeseries is empty; skipping parquet conversion", drive_path.did)
            return None

        identity = ColumnarIdentity(
            user_id=drive_path.uid,
            vehicle_id=drive_path.vid,
            drive_id=drive_path.did,
        )
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(
            None,
            lambda: encode_columnar(
                payload,
                identity,
                compression=self._config.parquet_compression,
                row_group_size=self._config.parquet_row_group_size,
            ),
        )

        target = paths.parquet_blob(drive_path.uid, drive_path.vid, drive_path.did)
        await self._blobs.write(
            target,
            data,
            metadata={
                "driveId": drive_path.did,
                "vehicleId": drive_path.vid,
                "userId": drive_path.uid,
                "format": "parquet",
                "schema_version": COLUMNAR_SCHEMA_VERSION,
            },
        )
        await self._store.update(
            paths.drive(drive_path.uid, drive_path.vid, drive_path.did),
            {
                "parquetPath": target,
                "parquetRowCount": payload.count,
                "parquetConvertedAt": self._clock().isoformat(),
            },
        )
        _logger.info("Parquet written: %s (%d rows)", target, payload.count)
        return ColumnarResult(path=target, row_count=payload.count)

    async def handle(self, drive_path: paths.DrivePath, drive: Drive) -> ColumnarResult | None:
        try:
            return await self.convert(drive_path, drive)
        except Exception as exc:
            _logger.exception("Parquet conversion failed for drive %s", drive_path.did)
            await self._store.update(
                paths.drive(drive_path.uid, drive_path.vid, drive_path.did),
                {self.error_field: str(exc)},
            )
            return None
