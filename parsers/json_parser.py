"""
JSON export parser.

Accepts a top-level array of objects, an object wrapping the array under
one of the usual envelope keys, or a single object (one row).
"""

from decimal import Decimal
from typing import Any
import json
import structlog

from exceptions import ImportParseError

logger = structlog.get_logger(__name__)

ENVELOPE_KEYS = ("data", "records", "rows", "items")


def load_json(content: str) -> Any:
    """
    Decode JSON with floats kept as Decimal.

    Raises:
        ValueError: If the content is not valid JSON (JSONDecodeError) or
            holds a number too long to convert
    """
    return json.loads(content.lstrip("\ufeff"), parse_float=Decimal)


def extract_rows(document: Any) -> list[dict[str, Any]]:
    """
    Pull the row list out of a decoded JSON document.

    Non-object array entries become {"value": entry} rows.
    """
    if isinstance(document, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(document.get(key), list):
                document = document[key]
                break
        else:
            return [document]

    if not isinstance(document, list):
        return [{"value": document}]

    return [item if isinstance(item, dict) else {"value": item} for item in document]


def parse_json(content: str) -> list[dict[str, Any]]:
    """
    Parse JSON export content into row records.

    Raises:
        ImportParseError: If the content is not valid JSON
    """
    if not content.strip():
        return []

    try:
        document = load_json(content)
    except json.JSONDecodeError as e:
        raise ImportParseError(
            "json",
            f"Invalid JSON: {e.msg}",
            details={"line": e.lineno, "column": e.colno}
        ) from e
    except (ValueError, RecursionError) as e:
        raise ImportParseError("json", f"Invalid JSON: {e}") from e

    rows = extract_rows(document)
    logger.debug("json_parsed", row_count=len(rows))
    return rows
