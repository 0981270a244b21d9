"""
QuickBooks IIF parser.

IIF is tab-separated. A line starting with "!" declares the column names
for a record type ("!TRNS", "!SPL", "!ACCNT", ...); data lines start with
the record type they belong to ("TRNS", "SPL", ...). Each parsed row is
tagged with its record type under IIF_TYPE_FIELD.
"""

import structlog

logger = structlog.get_logger(__name__)

IIF_TYPE_FIELD = "_iifType"

# Header markers that identify IIF content
IIF_MARKERS = (
    "!TRNS", "!SPL", "!ENDTRNS", "!HDR", "!ACCNT", "!VEND", "!CUST",
    "!EMP", "!INVITEM", "!CLASS", "!OTHERNAME", "!TIMEACT",
)

# ENDTRNS only closes a transaction block; it carries no data
_BLOCK_TERMINATORS = ("ENDTRNS",)


def is_iif_marker_line(line: str) -> bool:
    """True if the line declares an IIF record header."""
    return line.split("\t", 1)[0].strip().upper() in IIF_MARKERS


def iif_headers(content: str) -> list[str]:
    """Column names of the first declared record type."""
    for line in content.lstrip("\ufeff").splitlines():
        if line.startswith("!"):
            return [h.strip() for h in line.split("\t")[1:] if h.strip()]
    return []


def parse_iif(content: str) -> list[dict[str, str]]:
    """
    Parse IIF content into row records.

    Data lines whose type has no declared header are kept under the most
    recently declared header.

    Returns:
        List of {_iifType: type, header: text} dicts in file order
    """
    headers_by_type: dict[str, list[str]] = {}
    current_type = ""
    rows: list[dict[str, str]] = []

    for line in content.lstrip("\ufeff").splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        marker = parts[0].strip()

        if marker.startswith("!"):
            current_type = marker[1:].upper()
            headers_by_type[current_type] = [h.strip() for h in parts[1:]]
            continue

        record_type = marker.upper() or current_type
        if record_type in _BLOCK_TERMINATORS:
            continue

        headers = headers_by_type.get(record_type)
        if headers is None:
            headers = headers_by_type.get(current_type, [])

        row = {IIF_TYPE_FIELD: record_type}
        values = parts[1:]
        for i, header in enumerate(headers):
            if not header:
                continue
            row[header] = values[i].strip() if i < len(values) else ""
        rows.append(row)

    logger.debug("iif_parsed", row_count=len(rows), record_types=sorted(headers_by_type))
    return rows
