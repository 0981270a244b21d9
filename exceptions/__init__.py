"""
Custom exceptions module.

Error payloads follow AppError.to_dict().
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Batches
    BatchNotFoundError,
    BatchCommitInProgressError,
    BatchAlreadyUploadedError,
    BatchNotUploadedError,
    BatchNotPreviewedError,
    InvalidBatchStatusError,
    BatchNotRevertibleError,
    BatchNotDeletableError,

    # Mapping / parsing
    DuplicateSourceFieldError,
    ImportParseError,

    # Record store
    RecordStoreError,
    RecordStoreUnavailableError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Batches
    "BatchNotFoundError",
    "BatchCommitInProgressError",
    "BatchAlreadyUploadedError",
    "BatchNotUploadedError",
    "BatchNotPreviewedError",
    "InvalidBatchStatusError",
    "BatchNotRevertibleError",
    "BatchNotDeletableError",

    # Mapping / parsing
    "DuplicateSourceFieldError",
    "ImportParseError",

    # Record store
    "RecordStoreError",
    "RecordStoreUnavailableError",
]
