"""
Upload parsing per source format.

Turns raw uploaded text into ordered rows of cell values. Vendor exports
(QuickBooks, Sage, Foundation) are delimited text with vendor-specific
headers, so they go through the delimited parser.
"""

from typing import Any, Optional
import structlog

from models.import_batch import SourceFormat
from parsers.delimited_parser import (
    parse_delimited,
    parse_fixed_width,
    sniff_delimiter,
    non_empty_lines,
)
from parsers.json_parser import parse_json
from parsers.iif_parser import parse_iif
from utils.cell_values import CellValue, to_cell

logger = structlog.get_logger(__name__)

DELIMITED_FORMATS = frozenset({
    SourceFormat.CSV,
    SourceFormat.TSV,
    SourceFormat.QB,
    SourceFormat.SAGE,
    SourceFormat.FOUNDATION,
})


def resolve_delimiter(
    content: str,
    source_format: SourceFormat,
    delimiter: Optional[str] = None,
    sample_lines: int = 20,
) -> str:
    """Batch override first, then tab for TSV, then whatever the sample suggests."""
    if delimiter:
        return delimiter
    if source_format == SourceFormat.TSV:
        return "\t"
    return sniff_delimiter(non_empty_lines(content, limit=sample_lines)) or ","


def parse_source(
    content: str,
    source_format: SourceFormat,
    delimiter: Optional[str] = None,
    column_widths: Optional[list[int]] = None,
    sample_lines: int = 20,
) -> list[dict[str, CellValue]]:
    """
    Parse uploaded content in the batch's declared format.

    Args:
        content: Raw file text
        source_format: Declared format of the batch
        delimiter: Optional delimiter override (delimited formats only)
        column_widths: Optional widths (fixed-width only)
        sample_lines: Lines inspected when sniffing a delimiter

    Returns:
        Rows in file order, every value coerced to a CellValue

    Raises:
        ImportParseError: If the content is malformed for the format
    """
    source_format = SourceFormat(source_format)

    rows: list[dict[str, Any]]
    if source_format == SourceFormat.JSON:
        rows = parse_json(content)
    elif source_format == SourceFormat.IIF:
        rows = parse_iif(content)
    elif source_format == SourceFormat.FIXED:
        rows = parse_fixed_width(content, column_widths)
    else:
        used = resolve_delimiter(content, source_format, delimiter, sample_lines)
        rows = parse_delimited(content, used, source_format.value)

    cells = [{str(key): to_cell(value) for key, value in row.items()} for row in rows]

    logger.info(
        "source_parsed",
        source_format=source_format.value,
        row_count=len(cells)
    )
    return cells
