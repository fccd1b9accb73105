"""Columnar (parquet) encoding of drive timeseries.

Every row carries the user, vehicle and drive identity so files can be
queried together without a partition-aware engine. The sensor schema is a
fixed, versioned list; input columns outside it are dropped and logged.
Adding a column means appending to :data:`SENSOR_COLUMNS` and bumping
:data:`~drivepipe._constants.COLUMNAR_SCHEMA_VERSION`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq

from drivepipe._constants import COLUMNAR_SCHEMA_VERSION
from drivepipe.exceptions import ColumnarEncodeError, TimeseriesDecodeError
from drivepipe.models.timeseries import TIMESTAMP_COLUMN, TimeseriesPayload

_logger = logging.getLogger(__name__)

IDENTITY_COLUMNS: tuple[str, ...] = ("userId", "vehicleId", "driveId")

SENSOR_COLUMNS: tuple[str, ...] = (
    # OBD2 / J1939
    "rpm",
    "speed",
    "coolantTemp",
    "intakeTemp",
    "maf",
    "throttlePos",
    "boostPressure",
    "egt",
    "egt2",
    "egt3",
    "egt4",
    "transTemp",
    "oilTemp",
    "oilPressure",
    "engineLoad",
    "turboSpeed",
    "vgtPosition",
    "egrPosition",
    "dpfSootLoad",
    "dpfRegenStatus",
    "dpfDiffPressure",
    "noxPreScr",
    "noxPostScr",
    "defLevel",
    "defTemp",
    "defDosingRate",
    "defQuality",
    "railPressure",
    "crankcasePressure",
    "coolantLevel",
    "intercoolerOutletTemp",
    "exhaustBackpressure",
    "fuelRate",
    "fuelLevel",
    "batteryVoltage",
    "ambientTemp",
    "barometric",
    "odometer",
    "engineHours",
    "gearRatio",
    # Diesel-specific OBD2
    "accelPedalD",
    "demandTorque",
    "actualTorque",
    "referenceTorque",
    "commandedEgr",
    "commandedThrottle",
    "boostPressureCtrl",
    "vgtControlObd",
    "turboInletPressure",
    "turboInletTemp",
    "chargeAirTemp",
    "egtObd2",
    "dpfTemp",
    "runtimeExtended",
    # GPS
    "lat",
    "lng",
    "altitude",
    "gpsSpeed",
    "heading",
    # Calculated
    "instantMPG",
    "estimatedGear",
    "estimatedHP",
    "estimatedTorque",
)

_SENSOR_SET = frozenset(SENSOR_COLUMNS)

SCHEMA = pa.schema(
    [
        *(pa.field(name, pa.string(), nullable=True) for name in IDENTITY_COLUMNS),
        pa.field(TIMESTAMP_COLUMN, pa.int64(), nullable=False),
        *(pa.field(name, pa.float64(), nullable=True) for name in SENSOR_COLUMNS),
    ],
    metadata={b"schema_version": COLUMNAR_SCHEMA_VERSION.encode("ascii")},
)


@dataclass(frozen=True)
class ColumnarIdentity:
    user_id: str
    vehicle_id: str
    drive_id: str


def dropped_columns(payload: TimeseriesPayload) -> list[str]:
    """Input columns that the schema has no slot for."""
    return sorted(name for name in payload.sensor_names if name not in _SENSOR_SET)


def _as_double(name: str, index: int, value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ColumnarEncodeError(f"Column {name!r} row {index}: expected a number, got {value!r}")
    number = float(value)
    return None if math.isnan(number) else number


def _as_timestamp(index: int, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ColumnarEncodeError(f"timestamp row {index}: expected epoch millis, got {value!r}")
    return int(value)


def build_table(payload: TimeseriesPayload, identity: ColumnarIdentity) -> pa.Table:
    """Build an Arrow table against :data:`SCHEMA`.

    Missing sensor values stay null rather than becoming zero. A missing
    timestamp is written as 0 because the column is required.
    """
    count = payload.count
    dropped = dropped_columns(payload)
    if dropped:
        _logger.warning(
            "Dropping %d column(s) not in columnar schema v%s for drive %s: %s",
            len(dropped),
            COLUMNAR_SCHEMA_VERSION,
            identity.drive_id,
            ", ".join(dropped),
        )

    data: dict[str, list[Any]] = {
        "userId": [identity.user_id] * count,
        "vehicleId": [identity.vehicle_id] * count,
        "driveId": [identity.drive_id] * count,
        TIMESTAMP_COLUMN: [_as_timestamp(i, payload.value_at(TIMESTAMP_COLUMN, i)) for i in range(count)],
    }
    for name in SENSOR_COLUMNS:
        if name not in payload.columns:
            data[name] = [None] * count
            continue
        data[name] = [_as_double(name, i, payload.value_at(name, i)) for i in range(count)]

    try:
        return pa.Table.from_pydict(data, schema=SCHEMA)
    except (pa.ArrowInvalid, pa.ArrowTypeError) as exc:
        raise ColumnarEncodeError(f"Could not build columnar table: {exc}") from exc


def encode_table(
    table: pa.Table,
    *,
    compression: str = "snappy",
    row_group_size: int = 10_000,
) -> bytes:
    """Serialize *table* as a parquet file."""
    sink = pa.BufferOutputStream()
    pq.write_table(table, sink, compression=compression, row_group_size=row_group_size)
    return sink.getvalue().to_pybytes()


def encode_columnar(
    payload: TimeseriesPayload,
    identity: ColumnarIdentity,
    *,
    compression: str = "snappy",
    row_group_size: int = 10_000,
) -> bytes:
    """Encode a column-oriented payload as a parquet file."""
    return encode_table(
        build_table(payload, identity),
        compression=compression,
        row_group_size=row_group_size,
    )


def read_columnar_rows(data: bytes, *, include_identity: bool = False) -> list[dict[str, Any]]:
    """Decode a parquet file back into row dicts.

    Null cells are omitted from each row, so a sparse column reads back
    absent rather than as ``None``.
    """
    try:
        table = pq.read_table(pa.BufferReader(data))
    except (pa.ArrowInvalid, OSError) as exc:
        raise TimeseriesDecodeError(f"Columnar file could not be read: {exc}") from exc

    skip = () if include_identity else IDENTITY_COLUMNS
    rows: list[dict[str, Any]] = []
    for record in table.to_pylist():
        rows.append({key: value for key, value in record.items() if value is not None and key not in skip})
    return rows


def schema_version(data: bytes) -> str | None:
    """Return the schema version recorded in a parquet file's metadata."""
    metadata = pq.read_schema(pa.BufferReader(data)).metadata or {}
    value = metadata.get(b"schema_version")
    return value.decode("ascii") if value is not None else None
