"""
Text utilities for comparing column headers and field names.

Third-party exports spell the same column many ways:
"Vendor #", "vendor_number", "VendorNumber", "VENDOR NO." all need to
land on the same comparison key.
"""

import re
import unicodedata
from typing import Optional

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def strip_accents(text: Optional[str]) -> str:
    """
    Remove accent marks while keeping base characters.

    - "Décoración" → "Decoracion"
    - "Año" → "Ano"
    """
    if not text:
        return ""

    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize("NFD", text)
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a header or field name into lowercase space-separated words.

    - "vendorCode" → "vendor code"
    - "Invoice_Date" → "invoice date"
    - "Inv #" → "inv num"
    - "  PO  Number " → "po number"

    Args:
        header: Raw header text (may be camelCase, snake_case, padded)

    Returns:
        Normalized words joined by single spaces ("" for empty input)
    """
    if not header:
        return ""

    text = strip_accents(str(header)).strip()
    text = _CAMEL_BOUNDARY.sub(" ", text)
    text = text.replace("#", " num ")
    text = _NON_ALNUM.sub(" ", text.lower())
    return " ".join(text.split())


def compact_key(header: Optional[str]) -> str:
    """Normalized header with all separators removed ("Vendor #" → "vendornum")."""
    return normalize_header(header).replace(" ", "")


def header_tokens(header: Optional[str]) -> frozenset[str]:
    """Set of normalized words in a header."""
    return frozenset(normalize_header(header).split())
