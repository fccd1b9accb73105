"""Prompt builders for the AI oracle.

Every prompt starts with :data:`SYSTEM_CONTEXT` and ends with the JSON
shape the caller expects back.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from drivepipe.models import Drive, MaintenanceRecord, Vehicle

SYSTEM_CONTEXT = """You are an expert diesel engine analyst specialising in
the 6.7L Cummins turbo-diesel (2019-2026 Ram 2500/3500). You analyse OBD2 and
J1939 sensor data to detect anomalies, predict maintenance needs, and provide
clear recommendations. Always respond in valid JSON."""

AUTO_TAGS: dict[str, str] = {
    "towing": "high sustained load >60%, low speed, high EGT",
    "highway": "avg speed >45 mph, low throttle variance",
    "city": "avg speed <35 mph, high idle %, frequent speed changes",
    "mountain": "sustained high load with altitude/GPS changes",
    "cold_start": "coolant temp <140F at drive start",
    "dpf_regen": "DPF regen detected during drive",
    "hard_driving": "frequent >80% throttle, high RPM variance",
    "efficient": "MPG in top 20% for this vehicle's baseline",
}

DASHBOARD_PARAMETERS: tuple[str, ...] = (
    "rpm",
    "speed",
    "coolantTemp",
    "boostPressure",
    "egt",
    "egtObd2",
    "oilTemp",
    "oilPressure",
    "engineLoad",
    "transTemp",
    "turboSpeed",
    "fuelRate",
    "fuelLevel",
    "batteryVoltage",
    "dpfSootLoad",
    "dpfTemp",
    "defLevel",
    "railPressure",
    "ambientTemp",
    "instantMPG",
    "estimatedGear",
    "estimatedHP",
    "estimatedTorque",
    "accelPedalD",
    "demandTorque",
    "actualTorque",
    "commandedEgr",
    "commandedThrottle",
    "boostPressureCtrl",
    "vgtControlObd",
    "turboInletPressure",
    "turboInletTemp",
    "chargeAirTemp",
    "intercoolerOutletTemp",
    "exhaustBackpressure",
)

MAINTENANCE_PROMPT_DRIVES = 20
MAINTENANCE_PROMPT_RECORDS = 20
CUSTOM_QUERY_PROMPT_DRIVES = 15
BASELINE_PROMPT_DRIVES = 30


def _fmt(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _vehicle_header(vehicle: Vehicle, *, odometer: bool = False) -> str:
    lines = [
        f"Vehicle: {vehicle.description}",
        f"Engine: {vehicle.engine_description}",
    ]
    if odometer:
        reading = _fmt(vehicle.current_odometer) if vehicle.current_odometer else "unknown"
        lines.append(f"Odometer: {reading} mi")
    return "\n".join(lines)


def format_stats(stats: Mapping[str, Any] | None) -> str:
    if not stats:
        return "No stats available."
    lines = []
    for key, value in stats.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        lines.append(f"  {key}: {_fmt(value)}")
    return "\n".join(lines)


def drive_summary(drive: Drive) -> str:
    """One-line description of a drive for multi-drive prompts."""
    parts: list[str] = []
    if drive.start_time:
        parts.append(f"start={drive.start_time}")
    if drive.duration_seconds:
        parts.append(f"duration={_fmt(drive.duration_seconds)}s")
    if drive.distance_miles:
        parts.append(f"dist={_fmt(drive.distance_miles)}mi")
    if drive.average_mpg:
        parts.append(f"mpg={_fmt(drive.average_mpg)}")
    if drive.peak_boost:
        parts.append(f"maxBoost={_fmt(drive.peak_boost)}psi")
    if drive.peak_egt:
        parts.append(f"maxEGT={_fmt(drive.peak_egt)}F")
    if drive.dpf_regen_occurred:
        parts.append("DPF_REGEN")
    return ", ".join(parts)


def _drive_lines(drives: Sequence[Drive], limit: int | None = None) -> str:
    selected = drives if limit is None else drives[:limit]
    return "\n".join(f"  {i}. {drive_summary(d)}" for i, d in enumerate(selected, start=1))


def _maintenance_line(index: int, record: MaintenanceRecord) -> str:
    cost = f"${_fmt(record.cost)}" if record.cost else "no cost"
    what = record.type or record.description or "maintenance"
    return f"  {index}. {record.date or '?'}: {what} ({cost})"


def build_drive_analysis_prompt(vehicle: Vehicle, drive: Drive, stats: Mapping[str, Any]) -> str:
    tag_lines = "\n".join(f'- "{tag}" ({hint})' for tag, hint in AUTO_TAGS.items())
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle, odometer=True)}

Drive session {drive.id}:
  Duration: {_fmt(drive.duration_seconds or 0)}s
  Distance: {_fmt(drive.distance_miles or 0)} mi
  Avg MPG: {_fmt(drive.average_mpg) if drive.average_mpg else 'N/A'}
  Datapoints: {drive.datapoint_count or 0}
  Sensors: {', '.join(drive.sensor_list)}

Parameter Statistics:
{format_stats(stats)}

Also classify this drive with applicable tags from this list:
{tag_lines}

Analyse this drive and respond with JSON:
{{
  "summary": "2-3 sentence plain-English summary of the drive",
  "anomalies": ["list of any anomalous readings or patterns"],
  "healthScore": 0-100,
  "recommendations": ["actionable recommendations if any"],
  "autoTags": ["tag1", "tag2"]
}}"""


def build_range_analysis_prompt(
    vehicle: Vehicle,
    drives: Sequence[Drive],
    *,
    start_date: str,
    end_date: str,
    focus: str | None = None,
) -> str:
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle)}

Analyse {len(drives)} drives from {start_date or '?'} to {end_date or '?'}:
{_drive_lines(drives)}

Focus areas: {focus or 'general trends, fuel economy, engine health'}

Respond with JSON:
{{
  "summary": "Overall trend summary",
  "trends": ["identified trends"],
  "concerns": ["any concerning patterns"],
  "recommendations": ["actionable recommendations"],
  "healthScore": 0-100
}}"""


def build_maintenance_prediction_prompt(
    vehicle: Vehicle,
    drives: Sequence[Drive],
    maintenance: Sequence[MaintenanceRecord],
) -> str:
    maintenance_lines = "\n".join(
        _maintenance_line(i, record) for i, record in enumerate(maintenance[:MAINTENANCE_PROMPT_RECORDS], start=1)
    )
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle, odometer=True)}

Recent drives:
{_drive_lines(drives, MAINTENANCE_PROMPT_DRIVES) or '  None'}

Maintenance history:
{maintenance_lines or '  None'}

Based on driving patterns and maintenance history, predict upcoming maintenance needs.
Respond with JSON:
{{
  "predictions": [
    {{
      "type": "maintenance type (e.g. oil_change, fuel_filter, def_service)",
      "urgency": "low|medium|high|critical",
      "estimatedDate": "YYYY-MM-DD",
      "estimatedMiles": 0,
      "confidence": 0.0-1.0,
      "reasoning": "why this is predicted"
    }}
  ],
  "summary": "overall maintenance outlook"
}}"""


def build_custom_query_prompt(vehicle: Vehicle, drives: Sequence[Drive], question: str) -> str:
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle)}

Recent drives:
{_drive_lines(drives, CUSTOM_QUERY_PROMPT_DRIVES)}

User question: "{question}"

Respond with JSON:
{{
  "answer": "detailed answer to the user's question",
  "confidence": 0.0-1.0,
  "relatedMetrics": ["relevant sensor names"],
  "recommendations": ["if applicable"]
}}"""


def build_dashboard_prompt(vehicle: Vehicle, request: str) -> str:
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle)}

The user wants a custom dashboard: "{request}"

Generate a dashboard configuration. Available widget types:
- gauge: circular gauge for a single parameter
- line_chart: time-series line chart
- stat_card: single big number with label
- bar_chart: bar chart comparison

Available parameters: {', '.join(DASHBOARD_PARAMETERS)}.

Respond with JSON:
{{
  "name": "dashboard name",
  "description": "what this dashboard monitors",
  "widgets": [
    {{
      "type": "gauge|line_chart|stat_card|bar_chart",
      "title": "widget title",
      "parameter": "parameter_name",
      "position": {{"row": 0, "col": 0}},
      "size": {{"rows": 1, "cols": 1}},
      "thresholds": {{"warning": 0, "critical": 0}}
    }}
  ]
}}"""


def build_baseline_prompt(vehicle: Vehicle, drives: Sequence[Drive]) -> str:
    return f"""{SYSTEM_CONTEXT}

{_vehicle_header(vehicle, odometer=True)}

Last 30 days of drives:
{_drive_lines(drives, BASELINE_PROMPT_DRIVES)}

Compute baseline ranges for this vehicle's normal operating parameters.
These baselines will be used to detect anomalies in future drives.

Respond with JSON:
{{
  "baselines": {{
    "parameterName": {{"low": 0, "high": 0, "typical": 0}},
    ...
  }},
  "notes": "any observations about this vehicle's patterns"
}}"""
