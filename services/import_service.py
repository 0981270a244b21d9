"""
Import batch service.

Orchestrates a batch through its stages: upload, detection, field
mapping, validation, preview and commit, plus history, revert and
delete. Every stage reads the batch's stored raw data, so any stage can
be re-run without re-uploading.
"""

from datetime import datetime, timezone
from threading import Event
from typing import Any, Callable, Iterator, Optional
from uuid import uuid4
import structlog

from config import settings
from exceptions import (
    BatchAlreadyUploadedError,
    BatchCommitInProgressError,
    BatchNotDeletableError,
    BatchNotPreviewedError,
    BatchNotRevertibleError,
    BatchNotUploadedError,
)
from models.import_batch import (
    AutoMatchResult,
    BatchCreate,
    BatchStatus,
    BatchSummary,
    FieldMapping,
    FieldMappingInput,
    FormatDetectionResult,
    ImportBatch,
    ImportHistory,
    SourceFormat,
    REVERTIBLE_STATUSES,
    TERMINAL_STATUSES,
)
from models.preview import (
    CommitProgress,
    CommitResult,
    CommitStatus,
    PreviewResult,
    Resolution,
    RevertResult,
)
from models.validation import ErrorSeverity, ImportRowError, ValidationRule, ValidationSummary
from parsers.source_parser import parse_source
from services.batch_repository import BatchRepository
from services.commit_engine import CommitRun
from services.field_mapping import check_unique_sources
from services.field_matcher import FieldMatcher
from services.format_detector import FormatDetector
from services.preview_engine import PreviewEngine
from services.record_store import RecordStore, create_record_store
from services.validation_engine import ValidationEngine

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]

_COMMIT_STATUS_TO_BATCH = {
    CommitStatus.COMPLETED: BatchStatus.COMPLETED,
    CommitStatus.PARTIAL: BatchStatus.PARTIAL,
    CommitStatus.FAILED: BatchStatus.FAILED,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportService:
    """
    Import batch orchestration.

    Holds its own batch repository; separate service instances share
    nothing.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        repository: Optional[BatchRepository] = None,
        detector: Optional[FormatDetector] = None,
        matcher: Optional[FieldMatcher] = None,
    ):
        self.store = store or create_record_store(settings.record_store_backend)
        self.repository = repository or BatchRepository()
        self.detector = detector or FormatDetector()
        self.matcher = matcher or FieldMatcher()
        self.validator = ValidationEngine()
        self.previewer = PreviewEngine(self.store)

    # ===================
    # DETECTION / MATCHING (stateless)
    # ===================

    def detect_format(
        self,
        content: str,
        filename: Optional[str] = None,
        default_format: SourceFormat = SourceFormat.CSV,
    ) -> FormatDetectionResult:
        """Detect the format of raw content. Never raises."""
        return self.detector.detect(content, filename, default_format)

    def auto_match_fields(
        self,
        source_headers: list[str],
        target_fields: list[str],
        source_format: Optional[SourceFormat] = None,
        sample_rows: Optional[list[dict[str, Any]]] = None,
    ) -> list[AutoMatchResult]:
        """Propose a one-to-one mapping from headers to target fields."""
        return self.matcher.auto_match(source_headers, target_fields, source_format, sample_rows)

    # ===================
    # BATCH LIFECYCLE
    # ===================

    def create_batch(self, data: BatchCreate) -> ImportBatch:
        """
        Create a new import batch in status `created`.

        Args:
            data: Batch parameters

        Returns:
            The new batch
        """
        batch = ImportBatch(
            id=str(uuid4()),
            created_at=_now(),
            **data.model_dump(),
        )
        self.repository.add(batch)

        logger.info(
            "batch_created",
            batch_id=batch.id,
            source_format=batch.source_format.value,
            collection=batch.collection,
            merge_strategy=batch.merge_strategy.value,
        )
        return batch

    def get_batch(self, batch_id: str) -> ImportBatch:
        """
        Get a batch by id.

        Raises:
            BatchNotFoundError: If the batch doesn't exist
        """
        return self.repository.get(batch_id)

    def upload_data(
        self,
        batch_id: str,
        content: str,
        column_widths: Optional[list[int]] = None,
    ) -> ImportBatch:
        """
        Parse and store the batch's raw data.

        Raw data can be set once; re-uploading needs a new batch.

        Args:
            batch_id: Batch to upload into
            content: Raw file text
            column_widths: Fixed-width column widths (overrides the batch's)

        Returns:
            Updated batch in status `uploaded`

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            BatchAlreadyUploadedError: If raw data is already set
            ImportParseError: If content is malformed for the batch format
        """
        batch = self.repository.get(batch_id)
        if batch.is_uploaded:
            raise BatchAlreadyUploadedError(batch_id)

        widths = column_widths or batch.column_widths
        rows = parse_source(
            content,
            batch.source_format,
            delimiter=batch.delimiter,
            column_widths=widths,
            sample_lines=settings.detection_sample_lines,
        )

        batch = self.repository.update(
            batch_id,
            raw_content=content,
            raw_data=rows,
            column_widths=widths,
            total_rows=len(rows),
            status=BatchStatus.UPLOADED,
            uploaded_at=_now(),
        )

        logger.info("batch_uploaded", batch_id=batch_id, row_count=len(rows))
        return batch

    def detect_batch(self, batch_id: str, filename: Optional[str] = None) -> FormatDetectionResult:
        """
        Run detection on the batch's uploaded content and record the result.

        The batch's declared format is left alone; detection is advisory.
        """
        batch = self._uploaded_batch(batch_id)
        detection = self.detector.detect(batch.raw_content, filename, batch.source_format)
        self.repository.update(batch_id, detection=detection, status=BatchStatus.DETECTED)
        return detection

    def auto_match_batch(self, batch_id: str, target_fields: list[str]) -> list[AutoMatchResult]:
        """Auto-match the batch's headers, sampling its rows for transforms."""
        batch = self._uploaded_batch(batch_id)
        return self.matcher.auto_match(
            batch.headers,
            target_fields,
            batch.source_format,
            batch.raw_data,
        )

    # ===================
    # FIELD MAPPINGS
    # ===================

    def save_field_mappings(
        self,
        batch_id: str,
        mappings: list[FieldMappingInput],
        allow_many_to_one: bool = False,
    ) -> list[FieldMapping]:
        """
        Replace the batch's mapping set.

        Args:
            batch_id: Batch to map
            mappings: Entries in the order they apply
            allow_many_to_one: Don't warn when several sources feed one target

        Returns:
            Saved mappings in order

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            DuplicateSourceFieldError: If a source field appears twice
        """
        self.repository.get(batch_id)
        check_unique_sources(mappings)

        saved = [
            FieldMapping(batch_id=batch_id, position=i, **m.model_dump(include={
                "source_field", "target_field", "transform", "confidence"
            }))
            for i, m in enumerate(mappings)
        ]
        self.repository.set_mappings(batch_id, saved)
        self.repository.update(batch_id, status=BatchStatus.MAPPED, allow_many_to_one=allow_many_to_one)

        logger.info(
            "field_mappings_saved",
            batch_id=batch_id,
            mapping_count=len(saved),
            mapped=sum(1 for m in saved if m.target_field),
        )
        return saved

    def get_field_mappings(self, batch_id: str) -> list[FieldMapping]:
        """Saved mappings in saved order (empty when none saved)."""
        self.repository.get(batch_id)
        return self.repository.get_mappings(batch_id)

    # ===================
    # VALIDATION
    # ===================

    def validate_rows(self, batch_id: str, rules: list[ValidationRule]) -> ValidationSummary:
        """
        Validate the mapped rows and replace the batch's findings.

        Returns:
            Summary; `valid` is False when any error-severity finding exists
        """
        batch = self._uploaded_batch(batch_id)
        summary, findings = self.validator.validate(
            batch_id,
            batch.raw_data,
            self.repository.get_mappings(batch_id),
            rules,
            allow_many_to_one=batch.allow_many_to_one,
        )
        self.repository.set_errors(batch_id, findings)
        self.repository.update(batch_id, status=BatchStatus.VALIDATED)
        return summary

    def get_import_errors(
        self,
        batch_id: str,
        severity: Optional[ErrorSeverity] = None,
    ) -> list[ImportRowError]:
        """Persisted findings ordered by row, optionally one severity only."""
        self.repository.get(batch_id)
        findings = self.repository.get_errors(batch_id)
        if severity is not None:
            findings = [f for f in findings if f.severity == severity]
        return sorted(findings, key=lambda f: f.row_number)

    # ===================
    # PREVIEW
    # ===================

    def preview(self, batch_id: str) -> PreviewResult:
        """
        Dry-run the commit and store the snapshot commit will apply.

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            BatchNotUploadedError: If no raw data was uploaded
            RecordStoreError: If a lookup fails
        """
        batch = self._uploaded_batch(batch_id)
        result = self.previewer.preview(
            batch,
            self.repository.get_mappings(batch_id),
            self.repository.get_errors(batch_id),
        )
        self.repository.set_preview(batch_id, result)
        self.repository.update(batch_id, status=BatchStatus.PREVIEWED)
        return result

    # ===================
    # COMMIT
    # ===================

    def iter_commit(
        self,
        batch_id: str,
        resolutions: Optional[dict[int, Resolution]] = None,
        cancel_event: Optional[Event] = None,
    ) -> Iterator[CommitProgress]:
        """
        Commit as a stream of per-row progress events.

        Preconditions are checked before the iterator is returned. Closing
        the iterator early stops the commit at the current row boundary;
        rows not reached count as skipped.

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            BatchCommitInProgressError: If the batch is already committing
            BatchNotPreviewedError: If there is no current preview
        """
        batch = self.repository.get(batch_id)
        if batch.status == BatchStatus.COMMITTING:
            raise BatchCommitInProgressError(batch_id)
        snapshot = self.repository.get_preview(batch_id)
        if snapshot is None:
            raise BatchNotPreviewedError(batch_id)

        return self._commit_steps(batch_id, snapshot, resolutions, cancel_event)

    def commit(
        self,
        batch_id: str,
        resolutions: Optional[dict[int, Resolution]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[Event] = None,
    ) -> CommitResult:
        """
        Apply the current preview to the record store.

        Args:
            batch_id: Batch to commit
            resolutions: Row number → add/update/skip for conflict rows;
                unresolved conflicts are skipped
            progress_callback: Called with the percentage after every row
            cancel_event: Checked between rows; when set, the rest is skipped

        Returns:
            CommitResult (imported + skipped + error == total)
        """
        for progress in self.iter_commit(batch_id, resolutions, cancel_event):
            if progress_callback is not None:
                progress_callback(progress.percent)
        return self.repository.get_commit_result(batch_id)

    def get_commit_result(self, batch_id: str) -> Optional[CommitResult]:
        """Result of the batch's last commit, if any."""
        self.repository.get(batch_id)
        return self.repository.get_commit_result(batch_id)

    def _commit_steps(
        self,
        batch_id: str,
        snapshot: PreviewResult,
        resolutions: Optional[dict[int, Resolution]],
        cancel_event: Optional[Event],
    ) -> Iterator[CommitProgress]:
        batch = self.repository.begin_commit(batch_id)
        logger.info("batch_commit_started", batch_id=batch_id, total_rows=snapshot.total_rows)

        run = CommitRun(self.store, batch, snapshot, resolutions, cancel_event)
        try:
            yield from run.steps()
        finally:
            self._finish_commit(batch_id, run)

    def _finish_commit(self, batch_id: str, run: CommitRun) -> None:
        result = run.result()
        batch = self.repository.get(batch_id)

        self.repository.set_commit_result(batch_id, result)
        # The snapshot is spent; committing again needs a fresh preview
        self.repository.clear_preview(batch_id)
        self.repository.update(
            batch_id,
            status=_COMMIT_STATUS_TO_BATCH[result.status],
            imported_rows=result.imported_rows,
            skipped_rows=result.skipped_rows,
            error_rows=result.error_rows,
            inserted_ids=batch.inserted_ids + run.inserted_ids,
            updated_ids=batch.updated_ids + run.updated_ids,
            committed_at=_now(),
        )

        logger.info(
            "batch_committed",
            batch_id=batch_id,
            status=result.status.value,
            imported_rows=result.imported_rows,
            skipped_rows=result.skipped_rows,
            error_rows=result.error_rows,
            cancelled=result.cancelled,
        )

    # ===================
    # HISTORY / REVERT / DELETE
    # ===================

    def list_batches(
        self,
        status: Optional[BatchStatus] = None,
        collection: Optional[str] = None,
    ) -> list[ImportBatch]:
        """Batches newest first."""
        return self.repository.find(status=status, collection=collection)

    def get_import_history(self) -> ImportHistory:
        """All batches with totals of imported, skipped and error rows."""
        batches = self.repository.find()
        return ImportHistory(
            batches=[BatchSummary.from_batch(b) for b in batches],
            total_batches=len(batches),
            total_imported=sum(b.imported_rows for b in batches),
            total_skipped=sum(b.skipped_rows for b in batches),
            total_errors=sum(b.error_rows for b in batches),
        )

    def revert_batch(self, batch_id: str) -> RevertResult:
        """
        Delete the records a commit inserted.

        Updated records are left as they are. A delete that fails is
        logged and counted; the batch still moves to `reverted`.

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            BatchNotRevertibleError: Unless the batch is completed or partial
        """
        batch = self.repository.get(batch_id)
        if batch.status not in REVERTIBLE_STATUSES:
            raise BatchNotRevertibleError(batch_id, batch.status.value)

        deleted = 0
        failed_ids: list[str] = []
        for record_id in batch.inserted_ids:
            try:
                self.store.delete(batch.collection, record_id)
                deleted += 1
            except Exception as e:
                logger.warning(
                    "revert_delete_failed",
                    batch_id=batch_id,
                    record_id=record_id,
                    error=str(e),
                )
                failed_ids.append(record_id)

        self.repository.update(
            batch_id,
            status=BatchStatus.REVERTED,
            inserted_ids=failed_ids,
            reverted_at=_now(),
        )

        logger.info("batch_reverted", batch_id=batch_id, deleted_rows=deleted, failed_rows=len(failed_ids))
        return RevertResult(
            batch_id=batch_id,
            deleted_rows=deleted,
            failed_rows=len(failed_ids),
            failed_ids=failed_ids,
        )

    def delete_batch(self, batch_id: str) -> bool:
        """
        Remove a finished batch with its mappings, findings and snapshots.

        Raises:
            BatchNotFoundError: If the batch doesn't exist
            BatchNotDeletableError: Unless the batch is in a terminal status
        """
        batch = self.repository.get(batch_id)
        if batch.status not in TERMINAL_STATUSES:
            raise BatchNotDeletableError(batch_id, batch.status.value)

        self.repository.remove(batch_id)
        logger.info("batch_deleted", batch_id=batch_id)
        return True

    # ===================
    # HELPERS
    # ===================

    def _uploaded_batch(self, batch_id: str) -> ImportBatch:
        batch = self.repository.get(batch_id)
        if not batch.is_uploaded:
            raise BatchNotUploadedError(batch_id)
        return batch


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
