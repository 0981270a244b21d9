"""
Commit engine.

Applies a preview snapshot to the record store one row at a time. Each
row is a single store call; a failing row is recorded and the run moves
on. steps() is a generator that yields progress after every row, so a
caller can render progress and cancel between rows.
"""

from threading import Event
from typing import Iterator, Optional
import structlog

from models.import_batch import ImportBatch
from models.preview import (
    CommitProgress,
    CommitResult,
    CommitStatus,
    PreviewAction,
    PreviewResult,
    PreviewRow,
    Resolution,
    RowOutcome,
)
from models.validation import ErrorSeverity, ImportRowError
from services.preview_engine import key_values_for
from services.record_store import RecordStore

logger = structlog.get_logger(__name__)

COMMIT_FIELD = "_commit"
STORE_FIELD = "_store"


class CommitRun:
    """
    One commit invocation over a preview snapshot.

    Counters are live while steps() runs; result() can be read at any
    point, and rows not yet processed are reported as skipped.
    """

    def __init__(
        self,
        store: RecordStore,
        batch: ImportBatch,
        snapshot: PreviewResult,
        resolutions: Optional[dict[int, Resolution]] = None,
        cancel_event: Optional[Event] = None,
    ):
        self.store = store
        self.batch = batch
        self.snapshot = snapshot
        self.resolutions = {int(k): Resolution(v) for k, v in (resolutions or {}).items()}
        self.cancel_event = cancel_event

        self.total = len(snapshot.rows)
        self.processed = 0
        self.imported = 0
        self.skipped = 0
        self.errors = 0
        self.row_errors: list[ImportRowError] = []
        self.inserted_ids: list[str] = []
        self.updated_ids: list[str] = []
        self.cancelled = False
        self.store_unavailable = False

    # ===================
    # RUN
    # ===================

    def steps(self) -> Iterator[CommitProgress]:
        """
        Process rows in raw data order, yielding progress after each.

        The final progress always reports 100; an empty batch yields a
        single 100.
        """
        if not self._store_available():
            self.store_unavailable = True
            self.errors = self.total
            self.processed = self.total
            self.row_errors.append(self._finding(0, STORE_FIELD, "Record store unavailable"))
            logger.error("commit_store_unavailable", batch_id=self.batch.id, total_rows=self.total)
            yield self._progress(0, RowOutcome.ERROR)
            return

        if self.total == 0:
            yield self._progress(0, None)
            return

        for row in self.snapshot.rows:
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.cancelled = True
                remaining = self.total - self.processed
                self.skipped += remaining
                self.processed = self.total
                logger.info("commit_cancelled", batch_id=self.batch.id, remaining_rows=remaining)
                yield self._progress(row.row_number, RowOutcome.SKIPPED)
                return

            outcome = self._apply(row)
            self.processed += 1
            yield self._progress(row.row_number, outcome)

    def result(self) -> CommitResult:
        """Result so far; unprocessed rows count as skipped and mark the run cancelled."""
        skipped = self.skipped
        cancelled = self.cancelled
        if self.processed < self.total:
            skipped += self.total - self.processed
            cancelled = True

        if self.store_unavailable:
            status = CommitStatus.FAILED
        elif self.errors == 0 and not cancelled:
            status = CommitStatus.COMPLETED
        else:
            # A cancelled run left rows unapplied, so it is never complete
            status = CommitStatus.PARTIAL

        return CommitResult(
            batch_id=self.batch.id,
            status=status,
            total_rows=self.total,
            imported_rows=self.imported,
            skipped_rows=skipped,
            error_rows=self.errors,
            cancelled=cancelled,
            row_errors=list(self.row_errors),
        )

    # ===================
    # ROWS
    # ===================

    def _apply(self, row: PreviewRow) -> RowOutcome:
        """Apply one row. Never raises for store failures."""
        blocking = [e for e in row.errors if e.severity == ErrorSeverity.ERROR]
        if blocking:
            self.errors += 1
            self.row_errors.extend(blocking)
            return RowOutcome.ERROR

        action = self._resolve(row)
        if action == Resolution.SKIP:
            self.skipped += 1
            return RowOutcome.SKIPPED

        try:
            if action == Resolution.ADD:
                record_id = self.store.insert(self.batch.collection, dict(row.source_data))
                self.inserted_ids.append(record_id)
            else:
                record_id = self._update(row)
                self.updated_ids.append(record_id)
        except Exception as e:
            # Row-scoped: record the failure and keep going
            logger.warning(
                "commit_row_failed",
                batch_id=self.batch.id,
                row_number=row.row_number,
                action=action.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.errors += 1
            self.row_errors.append(self._finding(row.row_number, COMMIT_FIELD, str(e)))
            return RowOutcome.ERROR

        self.imported += 1
        return RowOutcome.IMPORTED

    def _resolve(self, row: PreviewRow) -> Resolution:
        """Preview action after applying resolutions; unresolved conflicts skip."""
        if row.action == PreviewAction.CONFLICT:
            return self.resolutions.get(row.row_number, Resolution.SKIP)
        return Resolution(row.action.value)

    def _update(self, row: PreviewRow) -> str:
        """Re-find the match by composite key, then update it."""
        key_values, missing = key_values_for(row.source_data, self.batch.composite_keys)
        if not self.batch.composite_keys or missing:
            raise LookupError("No composite key to locate the record to update")

        existing = self.store.lookup(self.batch.collection, key_values)
        if existing is None or existing.get("id") is None:
            raise LookupError("Matched record no longer exists")

        record_id = str(existing["id"])
        self.store.update(self.batch.collection, record_id, dict(row.source_data))
        return record_id

    # ===================
    # HELPERS
    # ===================

    def _store_available(self) -> bool:
        try:
            return bool(self.store.health_check())
        except Exception as e:
            logger.warning("store_health_check_failed", batch_id=self.batch.id, error=str(e))
            return False

    def _progress(self, row_number: int, outcome: Optional[RowOutcome]) -> CommitProgress:
        percent = 100 if self.total == 0 else round(self.processed / self.total * 100)
        return CommitProgress(
            batch_id=self.batch.id,
            row_number=row_number,
            processed=self.processed,
            total=self.total,
            percent=percent,
            outcome=outcome,
        )

    def _finding(self, row_number: int, field: str, message: str) -> ImportRowError:
        return ImportRowError(
            batch_id=self.batch.id,
            row_number=row_number,
            field=field,
            error=message,
            severity=ErrorSeverity.ERROR,
        )
