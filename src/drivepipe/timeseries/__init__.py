"""Timeseries payload decoding, columnar encoding and export rendering."""

from drivepipe.timeseries.columnar import (
    SCHEMA,
    SENSOR_COLUMNS,
    ColumnarIdentity,
    build_table,
    encode_columnar,
    read_columnar_rows,
)
from drivepipe.timeseries.converter import ColumnarConverter, ColumnarResult
from drivepipe.timeseries.payload import (
    TimeseriesRows,
    decode_payload,
    encode_payload,
    expand_rows,
    read_timeseries,
    read_timeseries_columns,
)

__all__ = [
    "SCHEMA",
    "SENSOR_COLUMNS",
    "ColumnarConverter",
    "ColumnarIdentity",
    "ColumnarResult",
    "TimeseriesRows",
    "build_table",
    "decode_payload",
    "encode_columnar",
    "encode_payload",
    "expand_rows",
    "read_columnar_rows",
    "read_timeseries",
    "read_timeseries_columns",
]
