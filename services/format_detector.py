"""
Format detection for uploaded exports.

Proposes {format, delimiter, confidence, target collection, headers} for
raw text. Purely advisory: callers can override everything it proposes,
and it never raises for content it cannot make sense of.
"""

from typing import Optional
import structlog

from pandas.errors import EmptyDataError, ParserError

from config import settings
from config.header_maps import (
    VENDOR_HEADER_MAPS,
    VENDOR_MIN_HEADER_MATCHES,
    COLLECTION_SIGNATURES,
    COLLECTION_MIN_MATCHES,
)
from models.import_batch import SourceFormat, FormatDetectionResult
from parsers.delimited_parser import (
    non_empty_lines,
    read_header,
    sniff_delimiter,
    split_fixed_width,
    strip_bom,
)
from parsers.iif_parser import is_iif_marker_line, iif_headers
from parsers.json_parser import load_json, extract_rows
from utils.text_utils import header_tokens

logger = structlog.get_logger(__name__)

# Confidence = MARKER_WEIGHT * marker strength + CONSISTENCY_WEIGHT * row-width consistency
MARKER_WEIGHT = 0.7
CONSISTENCY_WEIGHT = 0.3

# How strongly each recognizer's structural marker identifies its format
IIF_MARKER = 1.0
IIF_HINT_ONLY = 0.6
JSON_MARKER = 1.0
DELIMITED_MARKER = 0.7
FIXED_MARKER = 0.5

# Below this share of consistent rows, a delimiter guess yields to fixed-width
DELIMITED_MIN_CONSISTENCY = 0.5


def _score(marker: float, consistency: float) -> float:
    return round(MARKER_WEIGHT * marker + CONSISTENCY_WEIGHT * consistency, 2)


def _clean_headers(headers: list[str]) -> list[str]:
    return [h for h in headers if h and not h.startswith("Unnamed:")]


def count_known_headers(headers: list[str], known: list[str]) -> int:
    """
    Count known headers present among the file's headers.

    A known header is present when all of its words appear in one of the
    file's headers ("amount" is present in "Invoice Amount").
    """
    header_sets = [header_tokens(h) for h in headers]
    count = 0
    for name in known:
        wanted = header_tokens(name)
        if wanted and any(wanted <= tokens for tokens in header_sets):
            count += 1
    return count


class FormatDetector:
    """
    Heuristic format recognizer.

    Recognizers run in priority order (IIF, JSON, delimited, fixed-width);
    the first one that recognizes the content decides the format.
    """

    def __init__(
        self,
        sample_lines: Optional[int] = None,
        min_confidence: Optional[float] = None,
        collection_threshold: Optional[float] = None,
    ):
        self.sample_lines = sample_lines or settings.detection_sample_lines
        self.min_confidence = (
            settings.detection_min_confidence if min_confidence is None else min_confidence
        )
        self.collection_threshold = (
            settings.collection_match_threshold if collection_threshold is None else collection_threshold
        )

    # ===================
    # ENTRY POINT
    # ===================

    def detect(
        self,
        content: str,
        filename: Optional[str] = None,
        default_format: SourceFormat = SourceFormat.CSV,
    ) -> FormatDetectionResult:
        """
        Detect the format of raw export content.

        Args:
            content: Raw file text
            filename: Optional file name; only its extension is used
            default_format: Reported when nothing scores above the floor

        Returns:
            FormatDetectionResult (confidence 0 and default_format when unsure)
        """
        content = strip_bom(content or "")
        extension = filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
        lines = non_empty_lines(content, limit=self.sample_lines)

        result = None
        if lines:
            result = (
                self._detect_iif(content, lines, extension)
                or self._detect_json(content)
                or self._detect_delimited(content, lines)
            )

        if result is None or result.confidence < self.min_confidence:
            logger.info(
                "format_detection_inconclusive",
                filename=filename,
                default_format=SourceFormat(default_format).value,
                best_confidence=result.confidence if result else 0.0,
            )
            return FormatDetectionResult(
                format=default_format,
                confidence=0.0,
                headers=result.headers if result else [],
                detected_collection=result.detected_collection if result else None,
            )

        logger.info(
            "format_detected",
            filename=filename,
            format=result.format.value,
            confidence=result.confidence,
            detected_collection=result.detected_collection,
            header_count=len(result.headers),
        )
        return result

    # ===================
    # RECOGNIZERS
    # ===================

    def _detect_iif(
        self,
        content: str,
        lines: list[str],
        extension: str,
    ) -> Optional[FormatDetectionResult]:
        has_marker = any(is_iif_marker_line(line) for line in lines)
        if not has_marker and extension != "iif":
            return None

        # Bare block markers such as ENDTRNS carry no columns
        tabbed = sum(1 for line in lines if "\t" in line or line.strip().lstrip("!").isupper())
        consistency = tabbed / len(lines)
        marker = IIF_MARKER if has_marker else IIF_HINT_ONLY
        headers = iif_headers(content)

        return FormatDetectionResult(
            format=SourceFormat.IIF,
            confidence=_score(marker, consistency),
            delimiter="\t",
            headers=headers,
            detected_collection=self.detect_collection(headers),
        )

    def _detect_json(self, content: str) -> Optional[FormatDetectionResult]:
        stripped = content.lstrip()
        if not stripped.startswith(("[", "{")):
            return None

        try:
            rows = extract_rows(load_json(content))
        except (ValueError, RecursionError):
            return None

        headers: list[str] = []
        for row in rows:
            for key in row:
                if key not in headers:
                    headers.append(key)

        if rows:
            first_keys = set(rows[0])
            consistency = sum(1 for row in rows if set(row) == first_keys) / len(rows)
        else:
            consistency = 1.0

        return FormatDetectionResult(
            format=SourceFormat.JSON,
            confidence=_score(JSON_MARKER, consistency),
            headers=headers,
            detected_collection=self.detect_collection(headers),
        )

    def _detect_delimited(self, content: str, lines: list[str]) -> Optional[FormatDetectionResult]:
        delimiter = sniff_delimiter(lines)
        delimited = None

        if delimiter is not None:
            expected = lines[0].count(delimiter)
            consistency = sum(1 for line in lines if line.count(delimiter) == expected) / len(lines)
            try:
                headers = _clean_headers(read_header(content, delimiter))
            except (EmptyDataError, ParserError):
                headers = [h.strip() for h in lines[0].split(delimiter) if h.strip()]

            delimited = FormatDetectionResult(
                format=SourceFormat.TSV if delimiter == "\t" else SourceFormat.CSV,
                confidence=_score(DELIMITED_MARKER, consistency),
                delimiter=delimiter,
                headers=headers,
                detected_collection=self.detect_collection(headers),
            )
            delimited = self._refine_vendor(delimited)

            if consistency >= DELIMITED_MIN_CONSISTENCY:
                return delimited

        return self._detect_fixed(lines) or delimited

    def _detect_fixed(self, lines: list[str]) -> Optional[FormatDetectionResult]:
        headers = [token for _, token in split_fixed_width(lines[0])]
        if len(headers) < 2:
            return None

        # Blank cells shrink a data line's token count but never grow it
        fitting = sum(1 for line in lines if 1 <= len(split_fixed_width(line)) <= len(headers))
        consistency = fitting / len(lines)

        return FormatDetectionResult(
            format=SourceFormat.FIXED,
            confidence=_score(FIXED_MARKER, consistency),
            headers=headers,
            detected_collection=self.detect_collection(headers),
        )

    # ===================
    # REFINEMENT
    # ===================

    def _refine_vendor(self, result: FormatDetectionResult) -> FormatDetectionResult:
        """
        Relabel a delimited file as a Foundation/QuickBooks/Sage export.

        A package needs VENDOR_MIN_HEADER_MATCHES known headers, and
        strictly more than any package checked before it.
        """
        best_format: Optional[SourceFormat] = None
        best_matches = 0
        for vendor_format, known in VENDOR_HEADER_MAPS.items():
            matches = count_known_headers(result.headers, list(known))
            if matches >= VENDOR_MIN_HEADER_MATCHES and matches > best_matches:
                best_format, best_matches = vendor_format, matches

        if best_format is None:
            return result

        vendor_confidence = min(0.95, 0.6 + 0.1 * best_matches)
        logger.debug("vendor_export_recognized", format=best_format.value, header_matches=best_matches)
        return result.model_copy(update={
            "format": best_format,
            "confidence": round(max(result.confidence, vendor_confidence), 2),
        })

    def detect_collection(self, headers: list[str]) -> Optional[str]:
        """
        Guess the target collection from the header set.

        The score is the overlap coefficient between headers and each
        collection's signature (matches / size of the smaller set). Below
        the configured threshold, or with fewer than COLLECTION_MIN_MATCHES
        signature fields present, nothing is proposed.
        """
        if not headers:
            return None

        best: Optional[str] = None
        best_key = (0.0, 0)
        for collection, signature in COLLECTION_SIGNATURES.items():
            matches = count_known_headers(headers, signature)
            if matches < COLLECTION_MIN_MATCHES:
                continue
            ratio = min(1.0, matches / min(len(signature), len(headers)))
            key = (ratio, matches)
            if key > best_key:
                best, best_key = collection, key

        if best is None or best_key[0] < self.collection_threshold:
            return None
        return best


# Singleton instance
_format_detector: Optional[FormatDetector] = None


def get_format_detector() -> FormatDetector:
    """Get or create FormatDetector instance."""
    global _format_detector
    if _format_detector is None:
        _format_detector = FormatDetector()
    return _format_detector
