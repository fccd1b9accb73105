from __future__ import annotations

import gzip
import json
import logging
import threading

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from drivepipe import paths
from drivepipe.config import PipelineConfig
from drivepipe.exceptions import ColumnarEncodeError, TimeseriesDecodeError
from drivepipe.models import Drive, TimeseriesPayload
from drivepipe.store.blobs import LocalBlobStore
from drivepipe.store.memory import InMemoryDocumentStore
from drivepipe.timeseries.columnar import (
    SCHEMA,
    SENSOR_COLUMNS,
    ColumnarIdentity,
    build_table,
    encode_columnar,
    read_columnar_rows,
    schema_version,
)
from drivepipe.timeseries.converter import ColumnarConverter
from drivepipe.timeseries.payload import decode_payload, encode_payload, expand_rows, read_timeseries_columns
from tests.conftest import fixed_clock

IDENTITY = ColumnarIdentity(user_id="u1", vehicle_id="v1", drive_id="d1")


def _payload() -> TimeseriesPayload:
    return TimeseriesPayload(
        count=3,
        columns={
            "timestamp": [1_700_000_000_000, 1_700_000_001_000, 1_700_000_002_000],
            "rpm": [1500, 1600, 1700],
            "boostPressure": [12.0, None, 15.0],
        },
    )


# ---- payload decoding -----------------------------------------------------


def test_decode_gzip_and_plain_json() -> None:
    body = {"count": 1, "columns": {"timestamp": [1], "rpm": [900]}}
    gz = gzip.compress(json.dumps(body).encode())
    assert decode_payload(gz).columns["rpm"] == [900]
    assert decode_payload(json.dumps(body).encode()).count == 1


def test_decode_rejects_garbage() -> None:
    with pytest.raises(TimeseriesDecodeError):
        decode_payload(b"\x1f\x8bnot really gzip")
    with pytest.raises(TimeseriesDecodeError):
        decode_payload(gzip.compress(b"[1, 2, 3]"))


def test_encode_payload_is_readable_by_decoder() -> None:
    assert decode_payload(encode_payload(_payload())) == _payload()


def test_rows_drop_null_sensors_and_are_restartable() -> None:
    rows = expand_rows(_payload())
    first = list(rows)
    second = list(rows)

    assert len(rows) == 3
    assert first == second
    assert first[1] == {"timestamp": 1_700_000_001_000, "rpm": 1600}
    assert first[2]["boostPressure"] == 15.0


def test_short_columns_read_as_missing() -> None:
    payload = TimeseriesPayload(count=2, columns={"timestamp": [1, 2], "egt": [800.0]})
    assert list(expand_rows(payload))[1] == {"timestamp": 2}


# ---- columnar encoding ----------------------------------------------------


def test_schema_layout() -> None:
    assert SCHEMA.names[:4] == ["userId", "vehicleId", "driveId", "timestamp"]
    assert SCHEMA.field("timestamp").type == pa.int64()
    assert not SCHEMA.field("timestamp").nullable
    assert SCHEMA.field("rpm").type == pa.float64()
    assert len(SCHEMA.names) == 4 + len(SENSOR_COLUMNS)


def test_sparse_column_keeps_nulls() -> None:
    data = encode_columnar(_payload(), IDENTITY)
    table = pq.read_table(pa.BufferReader(data))

    assert table.num_rows == 3
    assert table.column("boostPressure").to_pylist() == [12.0, None, 15.0]
    assert table.column("rpm").to_pylist() == [1500.0, 1600.0, 1700.0]
    assert table.column("driveId").to_pylist() == ["d1", "d1", "d1"]
    assert table.column("egt").null_count == 3
    assert schema_version(data) == "1"


def test_columnar_rows_omit_nulls_and_identity() -> None:
    rows = read_columnar_rows(encode_columnar(_payload(), IDENTITY))
    assert rows[1] == {"timestamp": 1_700_000_001_000, "rpm": 1600.0}
    assert "userId" not in rows[0]

    with_identity = read_columnar_rows(encode_columnar(_payload(), IDENTITY), include_identity=True)
    assert with_identity[0]["vehicleId"] == "v1"


def test_unknown_columns_are_dropped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    payload = TimeseriesPayload(count=1, columns={"timestamp": [5], "rpm": [700], "mysteryProbe": [1.0]})
    with caplog.at_level(logging.WARNING, logger="drivepipe.timeseries.columnar"):
        table = build_table(payload, IDENTITY)

    assert "mysteryProbe" not in table.column_names
    assert "mysteryProbe" in caplog.text


def test_missing_timestamp_written_as_zero() -> None:
    payload = TimeseriesPayload(count=2, columns={"timestamp": [10], "rpm": [700, 710]})
    assert build_table(payload, IDENTITY).column("timestamp").to_pylist() == [10, 0]


def test_non_numeric_sensor_value_rejected() -> None:
    payload = TimeseriesPayload(count=1, columns={"timestamp": [1], "rpm": ["fast"]})
    with pytest.raises(ColumnarEncodeError):
        build_table(payload, IDENTITY)


# ---- converter component --------------------------------------------------


async def _seed_drive(
    store: InMemoryDocumentStore,
    blobs: LocalBlobStore,
    payload: TimeseriesPayload,
) -> tuple[paths.DrivePath, Drive]:
    ts_path = paths.timeseries_blob("u1", "v1", "d1")
    await blobs.write(ts_path, encode_payload(payload), content_type="application/gzip")
    doc = {"timeseriesUploaded": True, "timeseriesPath": ts_path}
    await store.set(paths.drive("u1", "v1", "d1"), doc)
    return paths.DrivePath(uid="u1", vid="v1", did="d1"), Drive.from_document("d1", doc)


@pytest.mark.asyncio
async def test_converter_writes_parquet_and_marks_drive(
    store: InMemoryDocumentStore, blobs: LocalBlobStore, config: PipelineConfig
) -> None:
    converter = ColumnarConverter(store, blobs, config, clock=fixed_clock)
    drive_path, drive = await _seed_drive(store, blobs, _payload())

    result = await converter.convert(drive_path, drive)

    assert result is not None
    assert result.path == "parquet/u1/v1/d1.parquet"
    assert result.row_count == 3
    info = await blobs.info(result.path)
    assert info.metadata["schema_version"] == "1"
    assert info.metadata["driveId"] == "d1"

    stored = (await store.get(paths.drive("u1", "v1", "d1"))).to_dict()
    assert stored["parquetPath"] == result.path
    assert stored["parquetRowCount"] == 3
    assert stored["parquetConvertedAt"] == fixed_clock().isoformat()


@pytest.mark.asyncio
async def test_converter_skips_empty_payload(
    store: InMemoryDocumentStore, blobs: LocalBlobStore, config: PipelineConfig
) -> None:
    converter = ColumnarConverter(store, blobs, config, clock=fixed_clock)
    drive_path, drive = await _seed_drive(store, blobs, TimeseriesPayload(count=0, columns={}))

    assert await converter.convert(drive_path, drive) is None
    assert not await blobs.exists("parquet/u1/v1/d1.parquet")
    assert "parquetPath" not in (await store.get(paths.drive("u1", "v1", "d1"))).to_dict()


@pytest.mark.asyncio
async def test_converter_records_error_for_missing_blob(
    store: InMemoryDocumentStore, blobs: LocalBlobStore, config: PipelineConfig
) -> None:
    converter = ColumnarConverter(store, blobs, config, clock=fixed_clock)
    doc = {"timeseriesUploaded": True, "timeseriesPath": "drives/u1/v1/d1/timeseries.json.gz"}
    await store.set(paths.drive("u1", "v1", "d1"), doc)

    result = await converter.handle(paths.DrivePath("u1", "v1", "d1"), Drive.from_document("d1", doc))

    assert result is None
    stored = (await store.get(paths.drive("u1", "v1", "d1"))).to_dict()
    assert "Blob not found" in stored["parquetError"]
    assert "parquetPath" not in stored


@pytest.mark.asyncio
async def test_payload_is_decoded_off_the_event_loop(
    blobs: LocalBlobStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    threads: list[int] = []

    def _decode(data: bytes) -> TimeseriesPayload:
        threads.append(threading.get_ident())
        return decode_payload(data)

    monkeypatch.setattr("drivepipe.timeseries.payload.decode_payload", _decode)
    await blobs.write("drives/u1/v1/d1/timeseries.json.gz", encode_payload(_payload()))

    payload = await read_timeseries_columns(blobs, "drives/u1/v1/d1/timeseries.json.gz")

    assert payload == _payload()
    assert threads and threads[0] != threading.get_ident()
