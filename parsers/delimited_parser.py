"""
Delimited and fixed-width text parsers.

Both read through pandas with every column as text; typing happens later
through the cell value coercion, never through pandas' own inference.
"""

from io import StringIO
from typing import Optional
import re
import structlog

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from exceptions import ImportParseError

logger = structlog.get_logger(__name__)

# Candidate delimiters, in tie-break order
DELIMITERS = [",", "\t", "|", ";"]

# Fixed-width columns are separated by at least two spaces
_COLUMN_GAP = re.compile(r"\S+(?: \S+)*")


def strip_bom(content: str) -> str:
    """Drop a leading UTF-8 byte order mark."""
    return content[1:] if content.startswith("\ufeff") else content


def non_empty_lines(content: str, limit: Optional[int] = None) -> list[str]:
    """First `limit` lines that contain something other than whitespace."""
    lines = []
    for line in strip_bom(content).splitlines():
        if line.strip():
            lines.append(line)
            if limit is not None and len(lines) >= limit:
                break
    return lines


def sniff_delimiter(lines: list[str]) -> Optional[str]:
    """
    Pick the delimiter that splits the sample most consistently.

    Each candidate is scored by how many lines share the header's field
    count, then by the header's field count. Quoted sections are not
    excluded; a sample dominated by quoted commas can mislead this.

    Args:
        lines: Non-empty sample lines, header first

    Returns:
        Delimiter character, or None when no candidate appears in the header
    """
    if not lines:
        return None

    best: Optional[str] = None
    best_score = (0, 0)
    for delimiter in DELIMITERS:
        header_count = lines[0].count(delimiter)
        if header_count == 0:
            continue
        consistent = sum(1 for line in lines if line.count(delimiter) == header_count)
        score = (consistent, header_count)
        if score > best_score:
            best, best_score = delimiter, score
    return best


def split_fixed_width(line: str) -> list[tuple[int, str]]:
    """Tokens separated by runs of two or more spaces, with their start offsets."""
    return [(m.start(), m.group()) for m in _COLUMN_GAP.finditer(line.replace("\t", "    "))]


def infer_column_starts(header_line: str) -> list[int]:
    """Column start offsets taken from where each header label begins."""
    return [start for start, _ in split_fixed_width(header_line)]


def read_header(content: str, delimiter: str) -> list[str]:
    """
    Column names from the header line, quotes honoured.

    Raises:
        EmptyDataError: If the content has no header line
        ParserError: If the header cannot be tokenized
    """
    columns = pd.read_csv(StringIO(strip_bom(content)), sep=delimiter, nrows=0, engine="python").columns
    return [str(c).strip() for c in columns]


def _clean_frame(df: pd.DataFrame) -> list[dict[str, str]]:
    """Strip headers and values; replace pandas' placeholder names for blank headers."""
    columns = []
    for i, name in enumerate(df.columns):
        name = str(name).strip()
        if not name or name.startswith("Unnamed:"):
            name = f"column_{i + 1}"
        columns.append(name)
    df.columns = columns

    df = df.fillna("")
    records = []
    for record in df.to_dict(orient="records"):
        row = {key: str(value).strip() for key, value in record.items()}
        # Whitespace-only lines come through as all-blank rows
        if any(row.values()):
            records.append(row)
    return records


def parse_delimited(content: str, delimiter: str, source_format: str = "csv") -> list[dict[str, str]]:
    """
    Parse delimited text into ordered row records.

    The first non-empty line is the header. Rows longer than the header are
    truncated; shorter rows are padded with empty strings.

    Args:
        content: Raw file text
        delimiter: Single delimiter character
        source_format: Format name used in error details

    Returns:
        List of {header: text} dicts in file order

    Raises:
        ImportParseError: If pandas cannot tokenize the content
    """
    content = strip_bom(content)
    if not content.strip():
        return []

    try:
        width = len(read_header(content, delimiter))
        df = pd.read_csv(
            StringIO(content),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            index_col=False,
            engine="python",
            on_bad_lines=lambda fields: fields[:width],
        )
    except EmptyDataError:
        return []
    except ParserError as e:
        logger.warning("delimited_parse_failed", delimiter=repr(delimiter), error=str(e))
        raise ImportParseError(source_format, f"Could not parse delimited content: {e}") from e

    records = _clean_frame(df)
    logger.debug("delimited_parsed", delimiter=repr(delimiter), row_count=len(records))
    return records


def parse_fixed_width(
    content: str,
    column_widths: Optional[list[int]] = None,
) -> list[dict[str, str]]:
    """
    Parse fixed-width text.

    Args:
        content: Raw file text, first non-empty line is the header
        column_widths: Explicit widths; when omitted, columns start where
            each header label starts

    Returns:
        List of {header: text} dicts in file order

    Raises:
        ImportParseError: If no columns can be determined
    """
    lines = non_empty_lines(content)
    if not lines:
        return []

    text = "\n".join(lines)
    try:
        if column_widths:
            df = pd.read_fwf(StringIO(text), widths=column_widths, dtype=str, keep_default_na=False)
        else:
            starts = infer_column_starts(lines[0])
            if not starts:
                raise ImportParseError("fixed", "Fixed-width header has no columns")
            ends: list[Optional[int]] = starts[1:] + [None]
            colspecs = list(zip(starts, ends))
            df = pd.read_fwf(StringIO(text), colspecs=colspecs, dtype=str, keep_default_na=False)
    except EmptyDataError:
        return []
    except ParserError as e:
        raise ImportParseError("fixed", f"Could not parse fixed-width content: {e}") from e

    records = _clean_frame(df)
    logger.debug("fixed_width_parsed", row_count=len(records), explicit_widths=bool(column_widths))
    return records
