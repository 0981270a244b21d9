"""
Custom exception classes for the import engine.

Stage operations return structured results for expected conditions
(low confidence, validation failures). These exceptions are reserved
for programmer errors and fatal per-call conditions.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BATCH_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with the current state of a resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# BATCH ERRORS
# ===================

class BatchNotFoundError(NotFoundError):
    """Import batch not found."""

    def __init__(self, batch_id: str):
        super().__init__(
            resource="Import batch",
            identifier=batch_id,
            code="BATCH_NOT_FOUND"
        )


class BatchCommitInProgressError(ConflictError):
    """Commit requested while the batch is already committing."""

    def __init__(self, batch_id: str):
        super().__init__(
            code="BATCH_COMMIT_IN_PROGRESS",
            message="Batch is already being committed",
            details={"batch_id": batch_id}
        )


class BatchAlreadyUploadedError(ConflictError):
    """Raw data can only be uploaded once per batch."""

    def __init__(self, batch_id: str):
        super().__init__(
            code="BATCH_ALREADY_UPLOADED",
            message="Batch already has uploaded data; create a new batch to re-upload",
            details={"batch_id": batch_id}
        )


class BatchNotUploadedError(ConflictError):
    """Stage needs raw data that has not been uploaded yet."""

    def __init__(self, batch_id: str):
        super().__init__(
            code="BATCH_NOT_UPLOADED",
            message="Batch has no uploaded data",
            details={"batch_id": batch_id}
        )


class BatchNotPreviewedError(ConflictError):
    """Commit requires a current preview snapshot."""

    def __init__(self, batch_id: str):
        super().__init__(
            code="BATCH_NOT_PREVIEWED",
            message="Run preview before committing this batch",
            details={"batch_id": batch_id}
        )


class InvalidBatchStatusError(ConflictError):
    """Operation not allowed in the batch's current status."""

    def __init__(self, batch_id: str, operation: str, status: str, allowed: list[str]):
        super().__init__(
            code="INVALID_BATCH_STATUS",
            message=f"Cannot {operation} batch in status {status}",
            details={"batch_id": batch_id, "status": status, "allowed": allowed}
        )


class BatchNotRevertibleError(InvalidBatchStatusError):
    """Only completed or partial batches can be reverted."""

    def __init__(self, batch_id: str, status: str):
        super().__init__(batch_id, "revert", status, ["completed", "partial"])
        self.code = "BATCH_NOT_REVERTIBLE"


class BatchNotDeletableError(InvalidBatchStatusError):
    """Batches are deleted only once they reach a terminal status."""

    def __init__(self, batch_id: str, status: str):
        super().__init__(
            batch_id, "delete", status,
            ["completed", "partial", "failed", "reverted"]
        )
        self.code = "BATCH_NOT_DELETABLE"


# ===================
# MAPPING / PARSE ERRORS
# ===================

class DuplicateSourceFieldError(ValidationError):
    """A mapping set lists the same source field more than once."""

    def __init__(self, source_fields: list[str]):
        super().__init__(
            code="DUPLICATE_SOURCE_FIELD",
            message="Each source field may be mapped at most once",
            details={"source_fields": source_fields}
        )


class ImportParseError(ValidationError):
    """Uploaded content could not be parsed in the declared format."""

    def __init__(
        self,
        source_format: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_PARSE_ERROR",
            message=message,
            details={"source_format": source_format, **(details or {})}
        )


# ===================
# RECORD STORE ERRORS
# ===================

class RecordStoreError(ExternalServiceError):
    """Record store rejected or failed an operation."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(
            service="record_store",
            message=f"Record store {operation} failed: {message}",
            details={"operation": operation, **(details or {})}
        )


class RecordStoreUnavailableError(RecordStoreError):
    """Record store cannot be reached."""

    def __init__(self, message: str = "store unreachable"):
        super().__init__(operation="connect", message=message)
