"""AI job document model and typed job parameters.

Job parameters arrive as an untyped ``params`` mapping next to the job's
``type``. :func:`parse_job_params` resolves them into one variant of the
:data:`JobParams` tagged union; dispatchers then ``match`` on the variant.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from drivepipe.exceptions import UnknownJobTypeError
from drivepipe.models._base import DocumentModel, IsoTimestamp


class JobType(StrEnum):
    RANGE_ANALYSIS = "range_analysis"
    PREDICTIVE_MAINTENANCE = "predictive_maintenance"
    CUSTOM_QUERY = "custom_query"
    DASHBOARD_GENERATION = "dashboard_generation"
    EXPORT = "export"


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


class ExportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"


class _JobParamsBase(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class RangeAnalysisParams(_JobParamsBase):
    type: Literal[JobType.RANGE_ANALYSIS] = JobType.RANGE_ANALYSIS
    start_date: str = ""
    end_date: str = ""
    focus: str | None = None


class PredictiveMaintenanceParams(_JobParamsBase):
    type: Literal[JobType.PREDICTIVE_MAINTENANCE] = JobType.PREDICTIVE_MAINTENANCE


class CustomQueryParams(_JobParamsBase):
    type: Literal[JobType.CUSTOM_QUERY] = JobType.CUSTOM_QUERY
    query: str | None = None
    prompt: str | None = None

    @property
    def question(self) -> str:
        return self.query or self.prompt or "How is my truck doing?"


class DashboardGenerationParams(_JobParamsBase):
    type: Literal[JobType.DASHBOARD_GENERATION] = JobType.DASHBOARD_GENERATION
    prompt: str = "general monitoring"


class ExportParams(_JobParamsBase):
    type: Literal[JobType.EXPORT] = JobType.EXPORT
    drive_ids: list[str] = Field(default_factory=list)
    format: ExportFormat = ExportFormat.CSV

    @field_validator("format", mode="before")
    @classmethod
    def _default_format(cls, value: Any) -> Any:
        # Anything that is not explicitly JSON exports as CSV.
        if isinstance(value, str) and value.strip().lower() == ExportFormat.JSON:
            return ExportFormat.JSON
        return ExportFormat.CSV


JobParams = Annotated[
    RangeAnalysisParams
    | PredictiveMaintenanceParams
    | CustomQueryParams
    | DashboardGenerationParams
    | ExportParams,
    Field(discriminator="type"),
]

_JOB_PARAMS_ADAPTER: TypeAdapter[JobParams] = TypeAdapter(JobParams)


def parse_job_params(job_type: str, params: dict[str, Any] | None) -> JobParams:
    """Resolve a raw ``params`` bag into the variant for *job_type*.

    Raises
    ------
    UnknownJobTypeError
        If *job_type* is not a :class:`JobType`.
    pydantic.ValidationError
        If the parameters do not fit the variant.
    """
    try:
        kind = JobType(job_type)
    except ValueError as exc:
        raise UnknownJobTypeError(job_type) from exc
    payload = {k: v for k, v in (params or {}).items() if v is not None}
    payload["type"] = kind
    return _JOB_PARAMS_ADAPTER.validate_python(payload)


class AiJob(DocumentModel):
    """A unit of requested AI analysis.

    ``type`` stays a plain string so a job with an unrecognized type can
    still be loaded and marked ``error``.
    """

    type: str = ""
    vehicle_id: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: IsoTimestamp = None
    completed_at: IsoTimestamp = None

    @property
    def job_type(self) -> JobType | None:
        try:
            return JobType(self.type)
        except ValueError:
            return None

    def typed_params(self) -> JobParams:
        return parse_job_params(self.type, self.params)
