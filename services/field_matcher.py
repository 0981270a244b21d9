"""
Field auto-matching service.

Proposes a target field and value transform for each source header.
Assignment is greedy and one-to-one: the highest-scoring (header, target)
pair is fixed first, and a claimed target is never offered again.
"""

from typing import Any, Optional
import re
import structlog

from rapidfuzz.distance import Levenshtein

from config import settings
from config.header_maps import (
    VENDOR_HEADER_MAPS,
    FIELD_SYNONYMS,
    DATE_FIELD_HINTS,
    NUMBER_FIELD_HINTS,
)
from models.import_batch import SourceFormat, FieldTransform, AutoMatchResult
from utils.cell_values import is_blank, parse_date, parse_number, cell_to_text
from utils.text_utils import normalize_header, compact_key, header_tokens

logger = structlog.get_logger(__name__)

# Score per match kind
EXACT_SCORE = 1.0
VENDOR_MAP_SCORE = 0.9
SYNONYM_SCORE = 0.85
SUBSTRING_BASE = 0.7
SUBSTRING_SPAN = 0.1
TOKEN_OVERLAP_MAX = 0.6

# Shorter name must be at least this long to count as contained in the other
MIN_SUBSTRING_LENGTH = 3

_LEADING_ZERO = re.compile(r"^-?0\d")


def score_pair(
    header: str,
    target: str,
    source_format: Optional[SourceFormat] = None,
) -> float:
    """
    Similarity between one source header and one target field name.

    Args:
        header: Source column header
        target: Target field name (camelCase or snake_case)
        source_format: Enables the vendor header map for foundation/qb/sage

    Returns:
        Confidence in [0, 1]; 0 when the names share nothing
    """
    header_norm = normalize_header(header)
    target_norm = normalize_header(target)
    header_key = header_norm.replace(" ", "")
    target_key = target_norm.replace(" ", "")
    if not header_key or not target_key:
        return 0.0

    if header_key == target_key:
        return EXACT_SCORE

    scores = [0.0]

    vendor_map = VENDOR_HEADER_MAPS.get(source_format) if source_format else None
    if vendor_map and compact_key(vendor_map.get(header_norm, "")) == target_key:
        scores.append(VENDOR_MAP_SCORE)

    if target_key in FIELD_SYNONYMS.get(header_key, ()):
        scores.append(SYNONYM_SCORE)

    shorter, longer = sorted((header_key, target_key), key=len)
    if len(shorter) >= MIN_SUBSTRING_LENGTH and shorter in longer:
        scores.append(SUBSTRING_BASE + SUBSTRING_SPAN * len(shorter) / len(longer))

    header_words = header_tokens(header_norm)
    target_words = header_tokens(target_norm)
    shared = header_words & target_words
    if shared:
        scores.append(TOKEN_OVERLAP_MAX * len(shared) / len(header_words | target_words))

    return round(max(scores), 4)


def suggest_transform(target: str, samples: list[Any]) -> FieldTransform:
    """
    Suggest a value transform for a mapped field.

    Non-blank sample values decide first: all date-like → date, all
    numeric → number. Values with leading zeros ("00123") are codes, not
    numbers. Without a decision from samples, words in the target name
    decide ("invoiceDate" → date, "amount" → number).
    """
    values = [v for v in samples if not is_blank(v)]
    if values:
        texts = [cell_to_text(v).strip() for v in values]
        if all(parse_date(v) is not None and not t.isdigit() for v, t in zip(values, texts)):
            return FieldTransform.DATE
        if all(parse_number(v) is not None and not _LEADING_ZERO.match(t) for v, t in zip(values, texts)):
            return FieldTransform.NUMBER

    words = header_tokens(target)
    if words & set(DATE_FIELD_HINTS):
        return FieldTransform.DATE
    if words & set(NUMBER_FIELD_HINTS):
        return FieldTransform.NUMBER
    return FieldTransform.NONE


class FieldMatcher:
    """Greedy one-to-one header → target field matcher."""

    def __init__(self, min_confidence: Optional[float] = None, sample_rows: Optional[int] = None):
        self.min_confidence = (
            settings.auto_match_min_confidence if min_confidence is None else min_confidence
        )
        self.sample_rows = sample_rows or settings.auto_match_sample_rows

    def auto_match(
        self,
        source_headers: list[str],
        target_fields: list[str],
        source_format: Optional[SourceFormat] = None,
        sample_rows: Optional[list[dict[str, Any]]] = None,
    ) -> list[AutoMatchResult]:
        """
        Propose a mapping for every source header.

        Args:
            source_headers: Headers in file order
            target_fields: Target schema field names
            source_format: Batch format (enables vendor header maps)
            sample_rows: Optional raw rows used to suggest transforms

        Returns:
            One AutoMatchResult per header, in header order. Headers with no
            candidate above the floor get target_field="" and confidence 0.
        """
        source_format = SourceFormat(source_format) if source_format else None
        # A target can be claimed once, so repeated names collapse to one
        target_fields = list(dict.fromkeys(target_fields))
        candidates = []
        for h_idx, header in enumerate(source_headers):
            header_key = compact_key(header)
            for t_idx, target in enumerate(target_fields):
                confidence = score_pair(header, target, source_format)
                if confidence <= 0 or confidence < self.min_confidence:
                    continue
                distance = Levenshtein.distance(header_key, compact_key(target))
                candidates.append((-confidence, distance, h_idx, t_idx))

        candidates.sort()

        assigned: dict[int, tuple[int, float]] = {}
        claimed: set[int] = set()
        for neg_confidence, _, h_idx, t_idx in candidates:
            if h_idx in assigned or t_idx in claimed:
                continue
            assigned[h_idx] = (t_idx, -neg_confidence)
            claimed.add(t_idx)

        samples = (sample_rows or [])[:self.sample_rows]
        results = []
        for h_idx, header in enumerate(source_headers):
            if h_idx not in assigned:
                results.append(AutoMatchResult(source_field=header, target_field="", confidence=0.0))
                continue
            t_idx, confidence = assigned[h_idx]
            target = target_fields[t_idx]
            results.append(AutoMatchResult(
                source_field=header,
                target_field=target,
                confidence=round(confidence, 2),
                transform=suggest_transform(target, [row.get(header) for row in samples]),
            ))

        logger.info(
            "fields_auto_matched",
            header_count=len(source_headers),
            target_count=len(target_fields),
            matched=len(assigned),
            source_format=source_format.value if source_format else None,
        )
        return results


# Singleton instance
_field_matcher: Optional[FieldMatcher] = None


def get_field_matcher() -> FieldMatcher:
    """Get or create FieldMatcher instance."""
    global _field_matcher
    if _field_matcher is None:
        _field_matcher = FieldMatcher()
    return _field_matcher
