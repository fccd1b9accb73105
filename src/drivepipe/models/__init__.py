"""Document models for drivepipe."""

from drivepipe.models._base import DocumentModel
from drivepipe.models.drive import Drive, DriveMaximums, ParameterStat
from drivepipe.models.job import (
    AiJob,
    CustomQueryParams,
    DashboardGenerationParams,
    ExportFormat,
    ExportParams,
    JobParams,
    JobStatus,
    JobType,
    PredictiveMaintenanceParams,
    RangeAnalysisParams,
    parse_job_params,
)
from drivepipe.models.route import Route
from drivepipe.models.timeseries import TimeseriesPayload
from drivepipe.models.vehicle import MaintenancePrediction, MaintenanceRecord, Vehicle, VinDetails

__all__ = [
    "AiJob",
    "CustomQueryParams",
    "DashboardGenerationParams",
    "DocumentModel",
    "Drive",
    "DriveMaximums",
    "ExportFormat",
    "ExportParams",
    "JobParams",
    "JobStatus",
    "JobType",
    "MaintenancePrediction",
    "MaintenanceRecord",
    "ParameterStat",
    "PredictiveMaintenanceParams",
    "RangeAnalysisParams",
    "Route",
    "TimeseriesPayload",
    "Vehicle",
    "VinDetails",
    "parse_job_params",
]
