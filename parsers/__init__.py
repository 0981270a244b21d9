"""
Source file parsers module.

Each parser turns raw text into ordered row records; parse_source picks
the parser for a batch's declared format.
"""

from parsers.delimited_parser import (
    DELIMITERS,
    parse_delimited,
    parse_fixed_width,
    sniff_delimiter,
)
from parsers.json_parser import parse_json
from parsers.iif_parser import parse_iif, IIF_TYPE_FIELD
from parsers.source_parser import parse_source

__all__ = [
    "DELIMITERS",
    "parse_delimited",
    "parse_fixed_width",
    "sniff_delimiter",
    "parse_json",
    "parse_iif",
    "IIF_TYPE_FIELD",
    "parse_source",
]
