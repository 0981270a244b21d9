"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    RawSchema,
    TimestampMixin,
)
from models.import_batch import (
    SourceFormat,
    MergeStrategy,
    BatchStatus,
    FieldTransform,
    TERMINAL_STATUSES,
    REVERTIBLE_STATUSES,
    FormatDetectionResult,
    AutoMatchResult,
    FieldMappingInput,
    FieldMapping,
    BatchCreate,
    ImportBatch,
    BatchSummary,
    ImportHistory,
    DetectFormatRequest,
    UploadRequest,
    AutoMatchRequest,
    BatchAutoMatchRequest,
    SaveMappingsRequest,
)
from models.validation import (
    RuleType,
    ErrorSeverity,
    ValidationRule,
    ImportRowError,
    ValidationSummary,
    ValidateRequest,
)
from models.preview import (
    PreviewAction,
    Resolution,
    CommitStatus,
    RowOutcome,
    ConflictField,
    PreviewRow,
    PreviewResult,
    CommitRequest,
    CommitProgress,
    CommitResult,
    RevertResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "RawSchema",
    "TimestampMixin",

    # Batches
    "SourceFormat",
    "MergeStrategy",
    "BatchStatus",
    "FieldTransform",
    "TERMINAL_STATUSES",
    "REVERTIBLE_STATUSES",
    "FormatDetectionResult",
    "AutoMatchResult",
    "FieldMappingInput",
    "FieldMapping",
    "BatchCreate",
    "ImportBatch",
    "BatchSummary",
    "ImportHistory",
    "DetectFormatRequest",
    "UploadRequest",
    "AutoMatchRequest",
    "BatchAutoMatchRequest",
    "SaveMappingsRequest",

    # Validation
    "RuleType",
    "ErrorSeverity",
    "ValidationRule",
    "ImportRowError",
    "ValidationSummary",
    "ValidateRequest",

    # Preview / commit
    "PreviewAction",
    "Resolution",
    "CommitStatus",
    "RowOutcome",
    "ConflictField",
    "PreviewRow",
    "PreviewResult",
    "CommitRequest",
    "CommitProgress",
    "CommitResult",
    "RevertResult",
]
