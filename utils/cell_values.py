"""
Cell value handling for imported rows.

Every value that enters the engine is coerced into one of four kinds:

    str      text as read from the source
    Decimal  numbers (never float, so amounts compare exactly)
    date     calendar dates
    None     missing / null

Parsers, transforms, the validator and the differ all branch on these
four kinds only.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

CellValue = Union[str, Decimal, date, None]

# US formats first: the exports we target come from US accounting packages
DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%m-%d-%y",
    "%Y%m%d",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
]

TRUE_VALUES = frozenset({"true", "1", "yes", "y"})
FALSE_VALUES = frozenset({"false", "0", "no", "n"})


def to_cell(value: Any) -> CellValue:
    """
    Coerce an arbitrary parsed value into a CellValue.

    Args:
        value: Value from a parser (JSON may yield bool/int/float/list/dict)

    Returns:
        str, Decimal, date, or None
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return Decimal(str(value))
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return value
    # Nested JSON structures are kept as their JSON text
    return json.dumps(value, sort_keys=True, default=str)


def is_blank(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def parse_number(value: Any) -> Optional[Decimal]:
    """
    Parse an accounting-style number.

    Handles "$1,250.00", "(45.10)" for negatives, and plain Decimals.
    Returns None when the value is blank or not a number.
    """
    value = to_cell(value)
    if isinstance(value, Decimal):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip().replace("$", "").replace(",", "").replace(" ", "")
    if not text:
        return None

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    try:
        number = Decimal(text)
    except InvalidOperation:
        return None

    if not number.is_finite():
        return None
    return -number if negative else number


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date from the formats common in accounting exports.

    Returns None when the value is blank or not a recognizable date.
    """
    value = to_cell(value)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    # ISO timestamps ("2024-01-15T10:30:00Z")
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_boolean(value: Any) -> Optional[bool]:
    """Parse yes/no style flags. Returns None when not recognizable."""
    text = cell_to_text(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def cell_to_text(value: Any) -> str:
    """Stringify a cell ("" for None, ISO for dates, plain notation for numbers)."""
    value = to_cell(value)
    if value is None:
        return ""
    if isinstance(value, Decimal):
        text = format(value.normalize(), "f")
        return "0" if text in ("-0", "") else text
    if isinstance(value, date):
        return value.isoformat()
    return value


def cells_equal(left: Any, right: Any) -> bool:
    """
    Compare two cell values by meaning.

    Numbers compare numerically (100 == "100.00"), dates compare as dates
    ("01/15/2024" == date(2024, 1, 15)), text compares case-sensitively,
    and None equals an empty string.
    """
    left = to_cell(left)
    right = to_cell(right)

    if is_blank(left) and is_blank(right):
        return True
    if is_blank(left) or is_blank(right):
        return False

    if isinstance(left, Decimal) or isinstance(right, Decimal):
        left_num, right_num = parse_number(left), parse_number(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num
        return False

    if isinstance(left, date) or isinstance(right, date):
        left_date, right_date = parse_date(left), parse_date(right)
        if left_date is not None and right_date is not None:
            return left_date == right_date
        return False

    return left == right
