"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Generator
from uuid import uuid4

from services.record_store import InMemoryRecordStore
from services.import_service import ImportService

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table
        self._filters: list[tuple[str, str]] = []
        self._limit = None
        self._operation = "select"
        self._payload = None

    def select(self, *args, **kwargs):
        self._operation = "select"
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def delete(self):
        self._operation = "delete"
        return self

    def eq(self, column, value):
        self._filters.append((column, str(value)))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matching(self) -> list:
        return [
            row for row in self._table.rows
            if all(str(row.get(column)) == value for column, value in self._filters)
        ]

    def execute(self) -> MockSupabaseResponse:
        self._table.calls.append((self._operation, self._payload, list(self._filters)))
        now = datetime.now(timezone.utc).isoformat()

        if self._operation == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in items:
                row = {**item, "id": item.get("id") or str(uuid4()), "created_at": now}
                self._table.rows.append(row)
                inserted.append(row)
            return MockSupabaseResponse(data=inserted)

        matching = self._matching()
        if self._operation == "update":
            for row in matching:
                row.update(self._payload)
                row["updated_at"] = now
            return MockSupabaseResponse(data=matching)

        if self._operation == "delete":
            self._table.rows = [row for row in self._table.rows if row not in matching]
            return MockSupabaseResponse(data=matching)

        if self._limit is not None:
            matching = matching[:self._limit]
        return MockSupabaseResponse(data=[dict(row) for row in matching])


class MockSupabaseTable:
    """Mock Supabase table holding rows in memory."""

    def __init__(self, rows: list = None):
        self.rows = list(rows or [])
        self.calls: list[tuple] = []

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self).insert(data)

    def update(self, data):
        return MockSupabaseQuery(self).update(data)

    def delete(self):
        return MockSupabaseQuery(self).delete()


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = MockSupabaseTable(data)

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table (created empty on first use)."""
        return self._tables.setdefault(name, MockSupabaseTable())


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("ap_invoice", [
                {"id": "1", "invoiceNumber": "INV-001", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            store = SupabaseRecordStore()
            # store.db is now the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.record_store.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    """Empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def service(record_store) -> ImportService:
    """ImportService wired to the in-memory record store."""
    return ImportService(store=record_store)


@pytest.fixture
def invoice_csv() -> str:
    """Small AP invoice export."""
    return (
        "Invoice Number,Invoice Date,Vendor,Amount\n"
        "INV-001,01/15/2024,Acme Supply,100.00\n"
        "INV-002,01/16/2024,Birch Lumber,250.50\n"
        "INV-003,01/17/2024,Acme Supply,75.25\n"
    )


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(service):
    """
    Create FastAPI test client backed by a fresh ImportService.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/imports")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.imports.get_import_service", return_value=service):
        with patch("main.get_import_service", return_value=service):
            yield TestClient(app)
