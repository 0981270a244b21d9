"""
Import engine services.

Each service handles one stage of a batch; ImportService ties them together.
"""

from services.format_detector import FormatDetector, get_format_detector
from services.field_matcher import FieldMatcher, get_field_matcher
from services.validation_engine import ValidationEngine
from services.preview_engine import PreviewEngine
from services.commit_engine import CommitRun
from services.batch_repository import BatchRepository
from services.record_store import (
    RecordStore,
    InMemoryRecordStore,
    SupabaseRecordStore,
    create_record_store,
)
from services.import_service import ImportService, get_import_service

__all__ = [
    "FormatDetector",
    "get_format_detector",
    "FieldMatcher",
    "get_field_matcher",
    "ValidationEngine",
    "PreviewEngine",
    "CommitRun",
    "BatchRepository",
    "RecordStore",
    "InMemoryRecordStore",
    "SupabaseRecordStore",
    "create_record_store",
    "ImportService",
    "get_import_service",
]
