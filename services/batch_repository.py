"""
In-process storage for import batches.

Holds each batch with its saved mappings, validation findings, preview
snapshot and last commit result. One repository instance per service;
nothing here is module-level state.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import threading
import structlog

from exceptions import BatchNotFoundError, BatchCommitInProgressError
from models.import_batch import BatchStatus, FieldMapping, ImportBatch
from models.preview import CommitResult, PreviewResult
from models.validation import ImportRowError

logger = structlog.get_logger(__name__)


class BatchRepository:
    """Thread-safe batch storage keyed by batch id."""

    def __init__(self):
        self._lock = threading.RLock()
        self._batches: dict[str, ImportBatch] = {}
        self._mappings: dict[str, list[FieldMapping]] = {}
        self._errors: dict[str, list[ImportRowError]] = {}
        self._previews: dict[str, PreviewResult] = {}
        self._commit_results: dict[str, CommitResult] = {}

    # ===================
    # BATCHES
    # ===================

    def add(self, batch: ImportBatch) -> ImportBatch:
        with self._lock:
            self._batches[batch.id] = batch
        return batch

    def get(self, batch_id: str) -> ImportBatch:
        """
        Get a batch.

        The returned model is a shallow copy; raw_data is shared and must
        be treated as read only.

        Raises:
            BatchNotFoundError: If the id is unknown
        """
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            return batch.model_copy()

    def update(self, batch_id: str, **changes: Any) -> ImportBatch:
        """Apply field changes to a batch and stamp updated_at."""
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            changes["updated_at"] = datetime.now(timezone.utc)
            updated = batch.model_copy(update=changes)
            self._batches[batch_id] = updated
            return updated.model_copy()

    def find(self, status: Optional[BatchStatus] = None, collection: Optional[str] = None) -> list[ImportBatch]:
        """Batches newest first, optionally filtered."""
        with self._lock:
            batches = list(self._batches.values())
        if status is not None:
            batches = [b for b in batches if b.status == status]
        if collection is not None:
            batches = [b for b in batches if b.collection == collection]
        return sorted(batches, key=lambda b: b.created_at, reverse=True)

    def remove(self, batch_id: str) -> None:
        """Drop a batch with everything stored for it."""
        with self._lock:
            if self._batches.pop(batch_id, None) is None:
                raise BatchNotFoundError(batch_id)
            self._mappings.pop(batch_id, None)
            self._errors.pop(batch_id, None)
            self._previews.pop(batch_id, None)
            self._commit_results.pop(batch_id, None)
        logger.debug("batch_removed", batch_id=batch_id)

    def begin_commit(self, batch_id: str) -> ImportBatch:
        """
        Atomically move a batch into `committing`.

        Raises:
            BatchNotFoundError: If the id is unknown
            BatchCommitInProgressError: If a commit is already running
        """
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            if batch.status == BatchStatus.COMMITTING:
                raise BatchCommitInProgressError(batch_id)
            logger.debug("batch_commit_claimed", batch_id=batch_id)
            return self.update(batch_id, status=BatchStatus.COMMITTING)

    # ===================
    # DERIVED SNAPSHOTS
    # ===================

    def set_mappings(self, batch_id: str, mappings: list[FieldMapping]) -> None:
        with self._lock:
            self._mappings[batch_id] = list(mappings)

    def get_mappings(self, batch_id: str) -> list[FieldMapping]:
        with self._lock:
            return sorted(self._mappings.get(batch_id, []), key=lambda m: m.position)

    def set_errors(self, batch_id: str, errors: list[ImportRowError]) -> None:
        with self._lock:
            self._errors[batch_id] = list(errors)

    def get_errors(self, batch_id: str) -> list[ImportRowError]:
        with self._lock:
            return list(self._errors.get(batch_id, []))

    def set_preview(self, batch_id: str, preview: PreviewResult) -> None:
        with self._lock:
            self._previews[batch_id] = preview

    def get_preview(self, batch_id: str) -> Optional[PreviewResult]:
        with self._lock:
            return self._previews.get(batch_id)

    def clear_preview(self, batch_id: str) -> None:
        with self._lock:
            self._previews.pop(batch_id, None)

    def set_commit_result(self, batch_id: str, result: CommitResult) -> None:
        with self._lock:
            self._commit_results[batch_id] = result

    def get_commit_result(self, batch_id: str) -> Optional[CommitResult]:
        with self._lock:
            return self._commit_results.get(batch_id)
