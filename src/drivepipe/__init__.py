"""drivepipe - Async pipeline for vehicle drive telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("drivepipe")
except PackageNotFoundError:
    __version__ = "0+local"
from drivepipe.config import ChangeFeedProfile, PipelineConfig
from drivepipe.exceptions import (
    BlobNotFoundError,
    ChangeMessageError,
    CodecError,
    ColumnarEncodeError,
    ConfigError,
    DocumentNotFoundError,
    DrivePipeError,
    ExportError,
    OracleError,
    OracleTransportError,
    StoreError,
    TimeseriesDecodeError,
    TransactionConflictError,
    UnknownJobTypeError,
    VinDecodeError,
)
from drivepipe.models import (
    AiJob,
    Drive,
    ExportFormat,
    JobStatus,
    JobType,
    Route,
    TimeseriesPayload,
    Vehicle,
)
from drivepipe.pipeline import Pipeline

__all__ = [
    "__version__",
    "AiJob",
    "BlobNotFoundError",
    "ChangeFeedProfile",
    "ChangeMessageError",
    "CodecError",
    "ColumnarEncodeError",
    "ConfigError",
    "DocumentNotFoundError",
    "Drive",
    "DrivePipeError",
    "ExportError",
    "ExportFormat",
    "JobStatus",
    "JobType",
    "OracleError",
    "OracleTransportError",
    "Pipeline",
    "PipelineConfig",
    "Route",
    "StoreError",
    "TimeseriesDecodeError",
    "TransactionConflictError",
    "UnknownJobTypeError",
    "Vehicle",
    "VinDecodeError",
]
