"""
Field mapping application.

Builds the mapped view of a raw row: source fields renamed to their
target fields with the per-field transform applied. Raw rows are never
modified; every call returns a new dict.
"""

from typing import Any, Iterable
import structlog

from exceptions import DuplicateSourceFieldError
from models.import_batch import FieldTransform, FieldMappingInput
from utils.cell_values import CellValue, is_blank, parse_date, parse_number, to_cell

logger = structlog.get_logger(__name__)


def apply_transform(value: Any, transform: FieldTransform) -> CellValue:
    """
    Apply one transform to a cell value.

    Text transforms only touch strings. number/date turn blanks into None
    and leave values they cannot parse unchanged, so the validator can
    still report them.
    """
    value = to_cell(value)
    transform = FieldTransform(transform)

    if transform == FieldTransform.NONE:
        return value

    if transform in (FieldTransform.LOWERCASE, FieldTransform.UPPERCASE, FieldTransform.TRIM):
        if not isinstance(value, str):
            return value
        if transform == FieldTransform.LOWERCASE:
            return value.lower()
        if transform == FieldTransform.UPPERCASE:
            return value.upper()
        return value.strip()

    if is_blank(value):
        return None

    if transform == FieldTransform.NUMBER:
        number = parse_number(value)
        return value if number is None else number

    parsed = parse_date(value)
    return value if parsed is None else parsed


def check_unique_sources(mappings: Iterable[FieldMappingInput]) -> None:
    """
    Reject a mapping set that lists a source field twice.

    Raises:
        DuplicateSourceFieldError: With the repeated source fields
    """
    seen: set[str] = set()
    duplicates: list[str] = []
    for mapping in mappings:
        if mapping.source_field in seen and mapping.source_field not in duplicates:
            duplicates.append(mapping.source_field)
        seen.add(mapping.source_field)
    if duplicates:
        raise DuplicateSourceFieldError(duplicates)


def shared_targets(mappings: Iterable[FieldMappingInput]) -> dict[str, list[str]]:
    """Targets fed by more than one source field, with their sources in saved order."""
    sources: dict[str, list[str]] = {}
    for mapping in mappings:
        if mapping.target_field:
            sources.setdefault(mapping.target_field, []).append(mapping.source_field)
    return {target: fields for target, fields in sources.items() if len(fields) > 1}


def map_row(row: dict[str, Any], mappings: list[FieldMappingInput]) -> dict[str, CellValue]:
    """
    Produce the mapped, transformed view of one raw row.

    With no mappings saved the row passes through unchanged. Otherwise
    only mapped fields survive; a mapping with an empty target skips its
    source field. When several sources feed one target, the later
    mapping in saved order wins. A source field absent from the row
    writes nothing.
    """
    if not mappings:
        return {key: to_cell(value) for key, value in row.items()}

    mapped: dict[str, CellValue] = {}
    for mapping in mappings:
        if not mapping.target_field or mapping.source_field not in row:
            continue
        mapped[mapping.target_field] = apply_transform(row[mapping.source_field], mapping.transform)
    return mapped


def source_for_target(mappings: list[FieldMappingInput], target: str) -> str:
    """Source field whose value lands in `target` (the last mapping wins)."""
    for mapping in reversed(mappings):
        if mapping.target_field == target:
            return mapping.source_field
    return target
