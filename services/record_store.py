"""
Record store adapters.

The record store owns persisted target records. The engine only needs
lookup by composite key, insert and update (plus delete for revert and a
health probe before commit).
"""

from copy import deepcopy
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Protocol
from uuid import uuid4
import threading
import structlog

from config import get_supabase_client, ConnectionError
from exceptions import RecordStoreError, RecordStoreUnavailableError
from utils.cell_values import CellValue, cell_to_text

logger = structlog.get_logger(__name__)


class RecordStore(Protocol):
    """Operations the engine consumes from the record store."""

    def lookup(self, collection: str, key_values: dict[str, CellValue]) -> Optional[dict[str, Any]]:
        """Existing record whose key fields equal key_values, or None."""
        ...

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        """Insert a record and return its id."""
        ...

    def update(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        """Merge record's fields into the existing record."""
        ...

    def delete(self, collection: str, record_id: str) -> None:
        ...

    def health_check(self) -> bool:
        ...


def _keys_match(record: dict[str, Any], key_values: dict[str, CellValue]) -> bool:
    """Case-sensitive equality on the composite key tuple, compared as text."""
    return all(
        cell_to_text(record.get(field)) == cell_to_text(value)
        for field, value in key_values.items()
    )


class InMemoryRecordStore:
    """
    Process-local record store.

    Used by default in development and by the tests. Records are copied
    on the way in and out so callers cannot mutate stored state.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self.available = True

    def seed(self, collection: str, records: list[dict[str, Any]]) -> list[str]:
        """Load existing records (ids are generated when missing)."""
        return [self.insert(collection, record) for record in records]

    def records(self, collection: str) -> list[dict[str, Any]]:
        """All records of a collection in insertion order."""
        with self._lock:
            return [deepcopy(r) for r in self._collections.get(collection, {}).values()]

    def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            return deepcopy(record) if record is not None else None

    def lookup(self, collection: str, key_values: dict[str, CellValue]) -> Optional[dict[str, Any]]:
        self._ensure_available("lookup")
        with self._lock:
            for record in self._collections.get(collection, {}).values():
                if _keys_match(record, key_values):
                    return deepcopy(record)
        return None

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        self._ensure_available("insert")
        record = deepcopy(record)
        record_id = str(record.get("id") or uuid4())
        record["id"] = record_id
        with self._lock:
            records = self._collections.setdefault(collection, {})
            if record_id in records:
                raise RecordStoreError("insert", f"record {record_id} already exists in {collection}")
            records[record_id] = record
        return record_id

    def update(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        self._ensure_available("update")
        with self._lock:
            existing = self._collections.get(collection, {}).get(record_id)
            if existing is None:
                raise RecordStoreError("update", f"record {record_id} not found in {collection}")
            existing.update({k: deepcopy(v) for k, v in record.items() if k != "id"})

    def delete(self, collection: str, record_id: str) -> None:
        self._ensure_available("delete")
        with self._lock:
            if self._collections.get(collection, {}).pop(record_id, None) is None:
                raise RecordStoreError("delete", f"record {record_id} not found in {collection}")

    def health_check(self) -> bool:
        return self.available

    def _ensure_available(self, operation: str) -> None:
        if not self.available:
            raise RecordStoreUnavailableError(f"in-memory store offline during {operation}")


def _to_json_value(value: Any) -> Any:
    """Decimal and date are not JSON-native; send them as text."""
    if isinstance(value, Decimal):
        return cell_to_text(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class SupabaseRecordStore:
    """
    Record store backed by Supabase tables.

    Collection "ap/invoice" is stored in table "ap_invoice". Every table
    is expected to have a text or uuid "id" primary key.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def db(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @staticmethod
    def table_name(collection: str) -> str:
        return collection.replace("/", "_").replace("-", "_")

    def lookup(self, collection: str, key_values: dict[str, CellValue]) -> Optional[dict[str, Any]]:
        try:
            query = self.db.table(self.table_name(collection)).select("*")
            for field, value in key_values.items():
                query = query.eq(field, cell_to_text(value))
            result = query.limit(1).execute()
        except ConnectionError as e:
            raise RecordStoreUnavailableError(str(e)) from e
        except Exception as e:
            logger.error("record_lookup_failed", collection=collection, error=str(e))
            raise RecordStoreError("lookup", str(e), {"collection": collection}) from e

        return result.data[0] if result.data else None

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        payload = {k: _to_json_value(v) for k, v in record.items()}
        try:
            result = self.db.table(self.table_name(collection)).insert(payload).execute()
        except ConnectionError as e:
            raise RecordStoreUnavailableError(str(e)) from e
        except Exception as e:
            logger.error("record_insert_failed", collection=collection, error=str(e))
            raise RecordStoreError("insert", str(e), {"collection": collection}) from e

        if not result.data:
            raise RecordStoreError("insert", "no record returned", {"collection": collection})
        return str(result.data[0]["id"])

    def update(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        payload = {k: _to_json_value(v) for k, v in record.items() if k != "id"}
        try:
            self.db.table(self.table_name(collection)).update(payload).eq("id", record_id).execute()
        except ConnectionError as e:
            raise RecordStoreUnavailableError(str(e)) from e
        except Exception as e:
            logger.error("record_update_failed", collection=collection, record_id=record_id, error=str(e))
            raise RecordStoreError("update", str(e), {"collection": collection, "id": record_id}) from e

    def delete(self, collection: str, record_id: str) -> None:
        try:
            self.db.table(self.table_name(collection)).delete().eq("id", record_id).execute()
        except ConnectionError as e:
            raise RecordStoreUnavailableError(str(e)) from e
        except Exception as e:
            logger.error("record_delete_failed", collection=collection, record_id=record_id, error=str(e))
            raise RecordStoreError("delete", str(e), {"collection": collection, "id": record_id}) from e

    def health_check(self) -> bool:
        try:
            self.db
        except ConnectionError as e:
            logger.warning("record_store_unreachable", error=str(e))
            return False
        return True


def create_record_store(backend: str) -> RecordStore:
    """Record store for the configured backend ("memory" or "supabase")."""
    if backend == "supabase":
        return SupabaseRecordStore()
    return InMemoryRecordStore()
