"""Rendering of exported drive rows."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from typing import Any

from drivepipe.models.job import ExportFormat

CONTENT_TYPES: dict[ExportFormat, str] = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def render_csv(rows: Sequence[dict[str, Any]]) -> str:
    """Render rows as CSV.

    The header is the key order of the first row. Values containing a comma
    are wrapped in double quotes; nulls become empty cells. No rows renders
    as an empty string.
    """
    if not rows:
        return ""
    headers = list(rows[0])
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(header)) for header in headers])
    return buffer.getvalue().removesuffix("\n")


def render_json(rows: Sequence[dict[str, Any]]) -> str:
    return json.dumps(list(rows), indent=2)


def render(rows: Sequence[dict[str, Any]], export_format: ExportFormat) -> str:
    if export_format is ExportFormat.JSON:
        return render_json(rows)
    return render_csv(rows)
