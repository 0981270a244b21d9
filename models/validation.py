"""
Validation rule and row error schemas.
"""

import re
from pydantic import Field, model_validator
from pydantic.json_schema import SkipJsonSchema
from typing import Any, Callable, Optional
from enum import Enum

from models.base import BaseSchema, RawSchema


class RuleType(str, Enum):
    """Declarative check kinds."""
    REQUIRED = "required"
    NUMERIC = "numeric"
    DATE = "date"
    REGEX = "regex"
    CUSTOM = "custom"
    RANGE = "range"
    BOOLEAN = "boolean"


class ErrorSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


# Predicate for custom rules: returns an error message, or None when the value passes
RulePredicate = Callable[[Any, dict[str, Any]], Optional[str]]


class ValidationRule(BaseSchema):
    """
    Check against one target field of the mapped row.

    Rules come from the caller; the engine ships no business rules.
    A failing rule is an error unless `severity` says otherwise.
    """

    field: str = Field(..., min_length=1)
    type: RuleType
    message: Optional[str] = None
    pattern: Optional[str] = Field(None, description="Regex for type=regex")
    min: Optional[float] = Field(None, description="Lower bound for type=range")
    max: Optional[float] = Field(None, description="Upper bound for type=range")
    severity: Optional[ErrorSeverity] = None
    predicate: SkipJsonSchema[Optional[RulePredicate]] = Field(None, exclude=True)

    @model_validator(mode="after")
    def check_rule_arguments(self) -> "ValidationRule":
        if self.type == RuleType.REGEX:
            if not self.pattern:
                raise ValueError("regex rules need a pattern")
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern: {e}") from e
        if self.type == RuleType.CUSTOM and self.predicate is None:
            raise ValueError("custom rules need a predicate")
        if self.type == RuleType.RANGE and self.min is None and self.max is None:
            raise ValueError("range rules need min and/or max")
        return self

    @property
    def effective_severity(self) -> ErrorSeverity:
        if self.severity is not None:
            return self.severity
        return ErrorSeverity.ERROR


class ImportRowError(RawSchema):
    """
    A row- and field-scoped validation finding.

    row_number is 1-based into raw_data; 0 marks a batch-level finding.
    value is the raw pre-transform value, stringified.
    """

    batch_id: str
    row_number: int = Field(..., ge=0)
    field: str
    value: str = ""
    error: str
    severity: ErrorSeverity = ErrorSeverity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == ErrorSeverity.ERROR


class ValidationSummary(BaseSchema):
    """Result of a validation run."""

    batch_id: str
    valid: bool
    error_count: int
    warning_count: int
    rows_checked: int


class ValidateRequest(BaseSchema):
    """Validation rules posted over HTTP (custom predicates cannot be sent)."""

    rules: list[ValidationRule] = Field(default_factory=list)
