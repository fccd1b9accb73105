"""AI oracle, prompts, job processors and scheduled sweeps."""

from drivepipe.ai.analysis import DriveAnalyzer, aggregate_drive_stats
from drivepipe.ai.dashboards import DashboardJobProcessor
from drivepipe.ai.exports import ExportJobProcessor
from drivepipe.ai.jobs import DEDICATED_JOB_TYPES, AnalysisJobProcessor
from drivepipe.ai.oracle import GeminiOracle, Oracle, Priority, parse_oracle_text
from drivepipe.ai.scheduled import ScheduledSweeps, SweepReport

__all__ = [
    "DEDICATED_JOB_TYPES",
    "AnalysisJobProcessor",
    "DashboardJobProcessor",
    "DriveAnalyzer",
    "ExportJobProcessor",
    "GeminiOracle",
    "Oracle",
    "Priority",
    "ScheduledSweeps",
    "SweepReport",
    "aggregate_drive_stats",
    "parse_oracle_text",
]
