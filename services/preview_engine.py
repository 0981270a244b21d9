"""
Diff / preview engine.

Dry run of a commit: maps every row, looks up the existing record by
composite key and classifies the row as add, update, skip or conflict.
Reads from the record store, never writes.
"""

from typing import Any, Optional
import structlog

from models.import_batch import ImportBatch, MergeStrategy, FieldMappingInput
from models.preview import ConflictField, PreviewAction, PreviewResult, PreviewRow
from models.validation import ErrorSeverity, ImportRowError
from services.field_mapping import map_row
from services.record_store import RecordStore
from utils.cell_values import CellValue, cells_equal, is_blank

logger = structlog.get_logger(__name__)

# Record store bookkeeping fields, never diffed
RESERVED_FIELDS = frozenset({"id", "created_at", "updated_at"})


def key_values_for(source_data: dict[str, CellValue], composite_keys: list[str]) -> tuple[dict[str, CellValue], list[str]]:
    """
    Split composite key fields into (present values, missing field names).

    A key field is missing when absent from the mapped row or blank.
    """
    values: dict[str, CellValue] = {}
    missing: list[str] = []
    for field in composite_keys:
        value = source_data.get(field)
        if is_blank(value):
            missing.append(field)
        else:
            values[field] = value
    return values, missing


def diff_fields(source_data: dict[str, CellValue], existing: dict[str, Any]) -> list[ConflictField]:
    """
    Mapped fields whose value differs from the existing record.

    Blank source values never conflict: they would not overwrite anything
    meaningful. Comparison is by meaning (100 equals "100.00").
    """
    conflicts = []
    for field, value in source_data.items():
        if field in RESERVED_FIELDS or is_blank(value):
            continue
        existing_value = existing.get(field)
        if not cells_equal(value, existing_value):
            conflicts.append(ConflictField(
                field=field,
                source_value=value,
                existing_value=existing_value,
            ))
    return conflicts


def classify(
    strategy: MergeStrategy,
    existing: Optional[dict[str, Any]],
    conflicts: list[ConflictField],
) -> PreviewAction:
    """
    Action for one row.

    Depends only on the merge strategy, whether a match exists and
    whether any mapped field differs from it.
    """
    if existing is None:
        return PreviewAction.ADD
    if strategy == MergeStrategy.SKIP:
        return PreviewAction.SKIP
    if strategy == MergeStrategy.OVERWRITE:
        return PreviewAction.UPDATE
    if strategy == MergeStrategy.APPEND:
        return PreviewAction.ADD
    return PreviewAction.CONFLICT if conflicts else PreviewAction.SKIP


class PreviewEngine:
    """Non-mutating commit simulation."""

    def __init__(self, store: RecordStore):
        self.store = store

    def preview_row(
        self,
        batch: ImportBatch,
        row_number: int,
        raw: dict[str, Any],
        mappings: list[FieldMappingInput],
        findings: list[ImportRowError],
    ) -> PreviewRow:
        source_data = map_row(raw, mappings)
        errors = [f for f in findings if f.severity == ErrorSeverity.ERROR]
        warnings = [f for f in findings if f.severity == ErrorSeverity.WARNING]

        existing = None
        if batch.composite_keys:
            key_values, missing = key_values_for(source_data, batch.composite_keys)
            for field in missing:
                warnings.append(ImportRowError(
                    batch_id=batch.id,
                    row_number=row_number,
                    field=field,
                    value="",
                    error=f"Composite key field '{field}' is missing",
                    severity=ErrorSeverity.WARNING,
                ))
            if not missing:
                existing = self.store.lookup(batch.collection, key_values)

        conflicts: list[ConflictField] = []
        if existing is not None and batch.merge_strategy in (MergeStrategy.OVERWRITE, MergeStrategy.MANUAL):
            conflicts = diff_fields(source_data, existing)

        return PreviewRow(
            row_number=row_number,
            action=classify(batch.merge_strategy, existing, conflicts),
            source_data=source_data,
            existing_data=existing,
            existing_id=str(existing["id"]) if existing and existing.get("id") is not None else None,
            conflicts=conflicts,
            errors=errors,
            warnings=warnings,
        )

    def preview(
        self,
        batch: ImportBatch,
        mappings: list[FieldMappingInput],
        findings: list[ImportRowError],
    ) -> PreviewResult:
        """
        Classify every row of the batch.

        Args:
            batch: Batch with raw data, merge strategy and composite keys
            mappings: Saved mapping set, in saved order
            findings: Persisted validation findings; carried on their rows

        Returns:
            PreviewResult with rows in raw data order

        Raises:
            RecordStoreError: If a lookup fails
        """
        by_row: dict[int, list[ImportRowError]] = {}
        for finding in findings:
            by_row.setdefault(finding.row_number, []).append(finding)

        rows = [
            self.preview_row(batch, row_number, raw, mappings, by_row.get(row_number, []))
            for row_number, raw in enumerate(batch.raw_data, start=1)
        ]

        result = PreviewResult(
            batch_id=batch.id,
            total_rows=len(rows),
            to_add=sum(1 for r in rows if r.action == PreviewAction.ADD),
            to_update=sum(1 for r in rows if r.action == PreviewAction.UPDATE),
            to_skip=sum(1 for r in rows if r.action == PreviewAction.SKIP),
            conflicts=sum(1 for r in rows if r.action == PreviewAction.CONFLICT),
            errors=sum(1 for r in rows if r.errors),
            warnings=sum(len(r.warnings) for r in rows),
            rows=rows,
        )

        logger.info(
            "batch_previewed",
            batch_id=batch.id,
            merge_strategy=batch.merge_strategy.value,
            total_rows=result.total_rows,
            to_add=result.to_add,
            to_update=result.to_update,
            to_skip=result.to_skip,
            conflicts=result.conflicts,
            error_rows=result.errors,
        )
        return result
