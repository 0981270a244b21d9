"""
Import batch schemas.

An ImportBatch is one import job from upload through commit. Its
raw_data is set once by upload and never modified afterwards; every
later stage works on derived views.
"""

from pydantic import Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, RawSchema, TimestampMixin


class SourceFormat(str, Enum):
    """File formats the engine can ingest."""
    CSV = "csv"
    TSV = "tsv"
    JSON = "json"
    IIF = "iif"
    QB = "qb"
    SAGE = "sage"
    FOUNDATION = "foundation"
    FIXED = "fixed"


class MergeStrategy(str, Enum):
    """How a row matching an existing record is treated."""
    APPEND = "append"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    MANUAL = "manual"


class BatchStatus(str, Enum):
    """
    Batch lifecycle.

    created → uploaded → detected → mapped → validated → previewed →
    committing → completed | partial | failed, and reverted after undo.
    """
    CREATED = "created"
    UPLOADED = "uploaded"
    DETECTED = "detected"
    MAPPED = "mapped"
    VALIDATED = "validated"
    PREVIEWED = "previewed"
    COMMITTING = "committing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    REVERTED = "reverted"


TERMINAL_STATUSES = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.PARTIAL,
    BatchStatus.FAILED,
    BatchStatus.REVERTED,
})

REVERTIBLE_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.PARTIAL})


class FieldTransform(str, Enum):
    """Per-field value normalization applied during mapping."""
    NONE = "none"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    TRIM = "trim"
    DATE = "date"
    NUMBER = "number"


# ===================
# DETECTION / AUTO-MATCH
# ===================

class FormatDetectionResult(RawSchema):
    """Advisory result of format detection. Callers may override every field."""

    format: SourceFormat
    confidence: float = Field(ge=0.0, le=1.0)
    delimiter: Optional[str] = None
    detected_collection: Optional[str] = None
    headers: list[str] = Field(default_factory=list)


class AutoMatchResult(RawSchema):
    """Proposed mapping for one source header."""

    source_field: str
    target_field: str = Field("", description="Empty when nothing scored above the floor")
    confidence: float = Field(ge=0.0, le=1.0)
    transform: FieldTransform = FieldTransform.NONE


# ===================
# FIELD MAPPINGS
# ===================

class FieldMappingInput(RawSchema):
    """One mapping entry as supplied by the caller."""

    source_field: str = Field(..., min_length=1)
    target_field: str = Field("", description="Empty string = explicitly skipped")
    transform: FieldTransform = FieldTransform.NONE
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0, description="Informational only")


class FieldMapping(FieldMappingInput):
    """Saved mapping entry for a batch."""

    batch_id: str
    position: int = Field(..., ge=0, description="Order within the saved set; later wins")


# ===================
# BATCH
# ===================

class BatchCreate(RawSchema):
    """
    Create a new import batch.

    Required: name, source_format, collection
    Optional: merge_strategy (append), composite_keys, delimiter, column_widths
    """

    name: str = Field(..., min_length=1, max_length=255)
    source_format: SourceFormat
    collection: str = Field(..., min_length=1, description="Target schema, e.g. 'ap/invoice'")
    merge_strategy: MergeStrategy = MergeStrategy.APPEND
    composite_keys: list[str] = Field(default_factory=list)
    delimiter: Optional[str] = Field(None, min_length=1, max_length=1)
    column_widths: Optional[list[int]] = Field(None, description="Fixed-width column widths")

    @field_validator("composite_keys")
    @classmethod
    def keys_unique(cls, v: list[str]) -> list[str]:
        """Composite keys keep their order; duplicates are dropped."""
        return list(dict.fromkeys(k for k in v if k))

    @field_validator("column_widths")
    @classmethod
    def widths_positive(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is not None and any(w <= 0 for w in v):
            raise ValueError("column widths must be positive")
        return v


class ImportBatch(BatchCreate, TimestampMixin):
    """The import batch aggregate."""

    id: str
    status: BatchStatus = BatchStatus.CREATED
    raw_content: Optional[str] = Field(None, exclude=True, description="Uploaded text, kept for re-detection")
    raw_data: list[dict[str, Any]] = Field(default_factory=list)
    detection: Optional[FormatDetectionResult] = None
    allow_many_to_one: bool = Field(False, description="Set with the saved mappings")

    total_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    inserted_ids: list[str] = Field(default_factory=list)
    updated_ids: list[str] = Field(default_factory=list)

    uploaded_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None
    reverted_at: Optional[datetime] = None

    @property
    def is_uploaded(self) -> bool:
        return self.raw_content is not None

    @property
    def headers(self) -> list[str]:
        """Source headers in first-seen order across all rows."""
        seen: dict[str, None] = {}
        for row in self.raw_data:
            for key in row:
                seen.setdefault(key, None)
        return list(seen)


class BatchSummary(BaseSchema):
    """Batch without its row payload, for listings."""

    id: str
    name: str
    source_format: SourceFormat
    collection: str
    merge_strategy: MergeStrategy
    status: BatchStatus
    total_rows: int
    imported_rows: int
    skipped_rows: int
    error_rows: int
    created_at: datetime
    committed_at: Optional[datetime] = None

    @classmethod
    def from_batch(cls, batch: ImportBatch) -> "BatchSummary":
        return cls.model_validate(batch, from_attributes=True)


class ImportHistory(BaseSchema):
    """Batch history with totals across all batches."""

    batches: list[BatchSummary]
    total_batches: int
    total_imported: int
    total_skipped: int
    total_errors: int


# ===================
# REQUEST BODIES
# ===================

class DetectFormatRequest(RawSchema):
    content: str
    filename: Optional[str] = None
    default_format: SourceFormat = SourceFormat.CSV


class UploadRequest(RawSchema):
    content: str
    filename: Optional[str] = None
    column_widths: Optional[list[int]] = None


class AutoMatchRequest(RawSchema):
    source_headers: list[str]
    target_fields: list[str]
    source_format: Optional[SourceFormat] = None
    sample_rows: list[dict[str, Any]] = Field(default_factory=list)


class BatchAutoMatchRequest(RawSchema):
    target_fields: list[str]


class SaveMappingsRequest(RawSchema):
    mappings: list[FieldMappingInput]
    allow_many_to_one: bool = False
