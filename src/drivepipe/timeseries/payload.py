"""Compressed column-oriented timeseries payloads.

The mobile client uploads one gzip'd JSON document per drive::

    {"count": 3, "columns": {"timestamp": [...], "rpm": [...], ...}}

Two read paths exist: :func:`expand_rows` produces row objects for export,
and :func:`read_timeseries_columns` hands the columns through untouched for
the columnar writer.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import zlib
from collections.abc import Iterator
from typing import Any

from pydantic import ValidationError

from drivepipe.exceptions import TimeseriesDecodeError
from drivepipe.models.timeseries import TIMESTAMP_COLUMN, TimeseriesPayload
from drivepipe.store.blobs import BlobStore

_GZIP_MAGIC = b"\x1f\x8b"


def decode_payload(data: bytes) -> TimeseriesPayload:
    """Decompress and parse a stored payload.

    Uncompressed JSON is accepted as well, which some older uploads use.

    Raises
    ------
    TimeseriesDecodeError
        If the bytes are not valid gzip'd JSON or not an object.
    """
    try:
        raw = gzip.decompress(data) if data[:2] == _GZIP_MAGIC else data
        parsed = json.loads(raw.decode("utf-8"))
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TimeseriesDecodeError(f"Timeseries payload is not gzip'd JSON: {exc}") from exc

    if not isinstance(parsed, dict):
        raise TimeseriesDecodeError("Timeseries payload is not a JSON object")
    try:
        return TimeseriesPayload.model_validate(parsed)
    except ValidationError as exc:
        raise TimeseriesDecodeError(f"Malformed timeseries payload: {exc}") from exc


def encode_payload(payload: TimeseriesPayload) -> bytes:
    """Serialize a payload the way the mobile client uploads it."""
    body = json.dumps({"count": payload.count, "columns": payload.columns}, separators=(",", ":"))
    return gzip.compress(body.encode("utf-8"))


class TimeseriesRows:
    """Lazy, restartable row view over a payload.

    Each iteration walks indices ``0..count-1`` again; nothing is
    materialized up front. A row holds ``timestamp`` plus every sensor
    column whose value at that index is not null.
    """

    def __init__(self, payload: TimeseriesPayload) -> None:
        self._payload = payload

    def __len__(self) -> int:
        return self._payload.count

    def __iter__(self) -> Iterator[dict[str, Any]]:
        payload = self._payload
        sensors = [(name, payload.columns[name]) for name in payload.sensor_names]
        for index in range(payload.count):
            row: dict[str, Any] = {TIMESTAMP_COLUMN: payload.value_at(TIMESTAMP_COLUMN, index)}
            for name, column in sensors:
                if index < len(column) and column[index] is not None:
                    row[name] = column[index]
            yield row


def expand_rows(payload: TimeseriesPayload) -> TimeseriesRows:
    return TimeseriesRows(payload)


async def read_timeseries(blobs: BlobStore, path: str) -> TimeseriesRows:
    """Read a stored payload as rows."""
    return expand_rows(await read_timeseries_columns(blobs, path))


async def read_timeseries_columns(blobs: BlobStore, path: str) -> TimeseriesPayload:
    """Read a stored payload as ``{count, columns}`` without expanding rows.

    Decompression and JSON parsing run in the default executor.
    """
    data = await blobs.read(path)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, decode_payload, data)
