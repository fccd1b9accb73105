"""Custom exception hierarchy for drivepipe."""

from __future__ import annotations


class DrivePipeError(Exception):
    """Base exception for all drivepipe errors."""


class ConfigError(DrivePipeError):
    """Invalid or missing configuration."""


class StoreError(DrivePipeError):
    """Document store failure."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No document to update: {path}")


class TransactionConflictError(StoreError):
    """A transaction's read set changed before it could commit.

    Raised by :meth:`InMemoryDocumentStore.run_transaction` once the retry
    budget is exhausted.
    """

    def __init__(self, message: str, *, paths: tuple[str, ...] = ()) -> None:
        self.paths = paths
        super().__init__(message)


class BlobNotFoundError(DrivePipeError):
    """Requested blob does not exist in the blob store."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Blob not found: {path}")


class OracleError(DrivePipeError):
    """AI oracle invocation failed."""


class OracleTransportError(OracleError):
    """HTTP-level oracle failure (network, non-200, malformed envelope)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        model: str = "",
    ) -> None:
        self.status_code = status_code
        self.model = model
        super().__init__(message)


class CodecError(DrivePipeError):
    """Timeseries decode or columnar encode failure."""


class TimeseriesDecodeError(CodecError):
    """Compressed timeseries payload could not be decompressed or parsed."""


class ColumnarEncodeError(CodecError):
    """Column data could not be encoded against the columnar schema."""


class UnknownJobTypeError(DrivePipeError):
    """An AI job carried a type no dispatcher handles.

    Unlike most input problems this is a hard failure: the job is marked
    ``error`` rather than ignored.
    """

    def __init__(self, job_type: str) -> None:
        self.job_type = job_type
        super().__init__(f"Unknown AI job type: {job_type}")


class ExportError(DrivePipeError):
    """Export rendering or upload failure."""


class ChangeMessageError(DrivePipeError):
    """A change-feed message could not be decoded into a change event."""


class VinDecodeError(DrivePipeError):
    """The VIN lookup service failed or returned an unusable response."""

    def __init__(self, message: str, *, vin: str = "", status_code: int | None = None) -> None:
        self.vin = vin
        self.status_code = status_code
        super().__init__(message)
