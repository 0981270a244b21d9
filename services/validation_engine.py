"""
Validation engine.

Runs caller-supplied rules against the mapped view of every row. Rules
see only mapped, transformed values; the raw value is used for nothing
but the `value` shown in a finding.
"""

from decimal import Decimal
from typing import Any, Optional
import re
import structlog

from models.import_batch import FieldMappingInput
from models.validation import (
    RuleType,
    ErrorSeverity,
    ValidationRule,
    ImportRowError,
    ValidationSummary,
)
from services.field_mapping import map_row, shared_targets, source_for_target
from utils.cell_values import (
    cell_to_text,
    is_blank,
    parse_boolean,
    parse_date,
    parse_number,
)

logger = structlog.get_logger(__name__)


def _format_bound(bound: float) -> str:
    return f"{bound:g}"


def check_rule(rule: ValidationRule, value: Any, row: dict[str, Any]) -> Optional[str]:
    """
    Apply one rule to one mapped value.

    Every check except `required` and `custom` passes blank values;
    a missing value is the `required` rule's concern.

    Args:
        rule: Rule to apply
        value: Mapped value of rule.field (None when absent)
        row: Whole mapped row, for custom predicates

    Returns:
        Error message, or None when the value passes
    """
    if rule.type == RuleType.REQUIRED:
        if is_blank(value):
            return rule.message or f"{rule.field} is required"
        return None

    if rule.type == RuleType.CUSTOM:
        return rule.predicate(value, row)

    if is_blank(value):
        return None

    if rule.type == RuleType.NUMERIC:
        if parse_number(value) is None:
            return rule.message or f"{rule.field} must be a number"
        return None

    if rule.type == RuleType.DATE:
        if parse_date(value) is None:
            return rule.message or f"{rule.field} must be a valid date"
        return None

    if rule.type == RuleType.REGEX:
        if re.search(rule.pattern, cell_to_text(value)) is None:
            return rule.message or f"{rule.field} does not match the expected format"
        return None

    if rule.type == RuleType.BOOLEAN:
        if parse_boolean(value) is None:
            return rule.message or f"{rule.field} must be yes/no or true/false"
        return None

    # RuleType.RANGE
    number = parse_number(value)
    if number is None:
        return rule.message or f"{rule.field} must be a number"
    if rule.min is not None and number < Decimal(str(rule.min)):
        return rule.message or f"{rule.field} must be at least {_format_bound(rule.min)}"
    if rule.max is not None and number > Decimal(str(rule.max)):
        return rule.message or f"{rule.field} must be at most {_format_bound(rule.max)}"
    return None


class ValidationEngine:
    """Row × rule validator producing persisted findings."""

    def validate(
        self,
        batch_id: str,
        raw_rows: list[dict[str, Any]],
        mappings: list[FieldMappingInput],
        rules: list[ValidationRule],
        allow_many_to_one: bool = False,
    ) -> tuple[ValidationSummary, list[ImportRowError]]:
        """
        Validate every row.

        Args:
            batch_id: Batch the findings belong to
            raw_rows: Batch raw data (read only)
            mappings: Saved mapping set, in saved order
            rules: Rules to apply, in order
            allow_many_to_one: Suppress warnings for targets fed by several sources

        Returns:
            (summary, findings ordered by row then rule)
        """
        collisions = {} if allow_many_to_one else shared_targets(mappings)
        findings: list[ImportRowError] = []

        for row_number, raw in enumerate(raw_rows, start=1):
            mapped = map_row(raw, mappings)

            for rule in rules:
                value = mapped.get(rule.field)
                try:
                    message = check_rule(rule, value, mapped)
                except Exception as e:
                    # A failing custom predicate is reported against the row
                    logger.warning(
                        "custom_rule_failed",
                        batch_id=batch_id,
                        row_number=row_number,
                        field=rule.field,
                        error=str(e)
                    )
                    message = rule.message or f"{rule.field} check failed: {e}"

                if message is None:
                    continue
                source = source_for_target(mappings, rule.field)
                findings.append(ImportRowError(
                    batch_id=batch_id,
                    row_number=row_number,
                    field=rule.field,
                    value=cell_to_text(raw.get(source)),
                    error=message,
                    severity=rule.effective_severity,
                ))

            for target, sources in collisions.items():
                filled = [s for s in sources if not is_blank(raw.get(s))]
                if len(filled) < 2:
                    continue
                winner = [s for s in sources if s in raw][-1]
                findings.append(ImportRowError(
                    batch_id=batch_id,
                    row_number=row_number,
                    field=target,
                    value=cell_to_text(raw.get(winner)),
                    error=(
                        f"Fields {', '.join(repr(s) for s in filled)} all map to "
                        f"'{target}'; using '{winner}'"
                    ),
                    severity=ErrorSeverity.WARNING,
                ))

        error_count = sum(1 for f in findings if f.severity == ErrorSeverity.ERROR)
        warning_count = len(findings) - error_count
        summary = ValidationSummary(
            batch_id=batch_id,
            valid=error_count == 0,
            error_count=error_count,
            warning_count=warning_count,
            rows_checked=len(raw_rows),
        )

        logger.info(
            "rows_validated",
            batch_id=batch_id,
            rows_checked=len(raw_rows),
            rule_count=len(rules),
            error_count=error_count,
            warning_count=warning_count,
        )
        return summary, findings
