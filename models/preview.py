"""
Dry-run preview and commit schemas.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum

from models.base import BaseSchema, RawSchema
from models.validation import ImportRowError


class PreviewAction(str, Enum):
    """What commit would do with a row."""
    ADD = "add"
    UPDATE = "update"
    SKIP = "skip"
    CONFLICT = "conflict"


class Resolution(str, Enum):
    """User decision for a row previewed as a conflict."""
    ADD = "add"
    UPDATE = "update"
    SKIP = "skip"


class CommitStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class RowOutcome(str, Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERROR = "error"


# ===================
# PREVIEW
# ===================

class ConflictField(RawSchema):
    """A mapped value that differs from the matched record."""

    field: str
    source_value: Any = None
    existing_value: Any = None


class PreviewRow(RawSchema):
    """Dry-run projection of one source row."""

    row_number: int = Field(..., ge=1)
    action: PreviewAction
    source_data: dict[str, Any] = Field(default_factory=dict, description="Mapped and transformed")
    existing_data: Optional[dict[str, Any]] = None
    existing_id: Optional[str] = None
    conflicts: list[ConflictField] = Field(default_factory=list)
    errors: list[ImportRowError] = Field(default_factory=list)
    warnings: list[ImportRowError] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


class PreviewResult(RawSchema):
    """Ordered preview rows plus aggregate counts."""

    batch_id: str
    total_rows: int
    to_add: int = 0
    to_update: int = 0
    to_skip: int = 0
    conflicts: int = 0
    errors: int = Field(0, description="Rows with at least one error-severity issue")
    warnings: int = Field(0, description="Total warnings across rows")
    rows: list[PreviewRow] = Field(default_factory=list)


# ===================
# COMMIT
# ===================

class CommitRequest(BaseSchema):
    """Resolutions for conflicted rows, keyed by 1-based row number."""

    resolutions: dict[int, Resolution] = Field(default_factory=dict)


class CommitProgress(BaseSchema):
    """Emitted after every processed row."""

    batch_id: str
    row_number: int = Field(..., ge=0, description="0 for an empty batch")
    processed: int
    total: int
    percent: int = Field(..., ge=0, le=100)
    outcome: Optional[RowOutcome] = None


class CommitResult(BaseSchema):
    """Outcome of a single commit invocation."""

    batch_id: str
    status: CommitStatus
    total_rows: int
    imported_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    cancelled: bool = False
    row_errors: list[ImportRowError] = Field(default_factory=list)


class RevertResult(BaseSchema):
    """Outcome of undoing a commit's inserts."""

    batch_id: str
    deleted_rows: int = 0
    failed_rows: int = 0
    failed_ids: list[str] = Field(default_factory=list)
