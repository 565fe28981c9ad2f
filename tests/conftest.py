"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import copy
import re
import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Callable, Generator, Optional
from uuid import uuid4

from models.catalog_import import ImportConfig, ImportMode
from tests.fakes import InMemoryBarcodePool, InMemoryCatalogRepository, RecordingSink
from tests.factories import CATALOG_MAPPING


# ===================
# MOCK SUPABASE CLIENT
# ===================

def _like_to_regex(pattern: str) -> re.Pattern:
    """SQL LIKE pattern (with backslash escapes) to a full-match regex."""
    parts = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are applied for real against the client's in-memory tables,
    so inserts and updates are visible to later queries.
    """

    def __init__(self, client: "MockSupabaseClient", table_name: str):
        self._client = client
        self._table = table_name
        self._op = "select"
        self._payload = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data if isinstance(data, list) else [data]
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def ilike(self, column, pattern):
        regex = _like_to_regex(pattern)
        self._filters.append(
            lambda row: row.get(column) is not None and regex.fullmatch(str(row[column])) is not None
        )
        return self

    def is_(self, column, value):
        if value in (None, "null"):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matching(self, rows: list[dict]) -> list[dict]:
        matched = [r for r in rows if all(f(r) for f in self._filters)]
        for column, desc in reversed(self._order):
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        return matched

    def execute(self) -> MockSupabaseResponse:
        self._client._maybe_fail(self._table, self._op)
        rows = self._client._tables.setdefault(self._table, [])
        now = datetime.utcnow().isoformat() + "Z"

        if self._op == "insert":
            inserted = []
            for item in self._payload:
                row = {"id": str(uuid4()), "created_at": now, **copy.deepcopy(item)}
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=inserted)

        matched = self._matching(rows)

        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
                row["updated_at"] = now
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        if self._op == "delete":
            for row in matched:
                rows.remove(row)
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        total = len(matched)
        if self._limit is not None:
            matched = matched[:self._limit]
        if self._is_single:
            data = copy.deepcopy(matched[0]) if matched else None
            return MockSupabaseResponse(data=data, count=1 if data else 0)
        return MockSupabaseResponse(data=copy.deepcopy(matched), count=total)


class MockSupabaseTable:
    """Entry point for queries on one mock table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._client, self._name).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self._client, self._name).insert(data)

    def update(self, data):
        return MockSupabaseQuery(self._client, self._name).update(data)

    def delete(self):
        return MockSupabaseQuery(self._client, self._name).delete()


class MockSupabaseClient:
    """Mock Supabase client backed by in-memory tables."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[tuple[str, str], Exception] = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = [copy.deepcopy(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        """Current contents of a table."""
        return self._tables.get(table_name, [])

    def fail_on(self, table_name: str, op: str, error: Exception):
        """Make every `op` (select/insert/update/delete) on a table raise."""
        self._failures[(table_name, op)] = error

    def _maybe_fail(self, table_name: str, op: str):
        error = self._failures.get((table_name, op))
        if error is not None:
            raise error

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        return MockSupabaseTable(self, name)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "name": "Classic Tee", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.catalog_repository.get_supabase_client", return_value=mock_supabase):
            with patch("services.barcode_pool_repository.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


@pytest.fixture
def catalog() -> InMemoryCatalogRepository:
    """Empty in-memory catalog."""
    return InMemoryCatalogRepository()


@pytest.fixture
def pool() -> InMemoryBarcodePool:
    """Barcode pool with 50 fresh EAN13 codes."""
    return InMemoryBarcodePool.with_codes(50)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def mapping() -> dict:
    """Mapping matching factories.CATALOG_HEADERS."""
    return dict(CATALOG_MAPPING)


@pytest.fixture
def auto_config() -> ImportConfig:
    """Create-or-update with inferred parents and barcode assignment."""
    return ImportConfig(mode=ImportMode.CREATE_OR_UPDATE, auto_generate_parents=True, assign_barcodes=True)


@pytest.fixture(autouse=True)
def clear_caches():
    """Module-level caches must not leak between tests."""
    from services import mapping_cache_service, preview_cache_service
    preview_cache_service._cache.clear()
    mapping_cache_service._cache.clear()
    yield
    preview_cache_service._cache.clear()
    mapping_cache_service._cache.clear()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(catalog, pool, tmp_path):
    """
    FastAPI test client wired to in-memory repositories.

    Usage:
        def test_endpoint(test_client, catalog):
            response = test_client.get("/api/barcodes/pool/stats")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app
    from services.import_progress_service import ImportProgressTracker
    from services.import_service import ImportService

    service = ImportService(catalog, pool)
    tracker = ImportProgressTracker()

    with patch("routes.imports.get_import_service", return_value=service), \
            patch("routes.imports.get_progress_tracker", return_value=tracker), \
            patch("routes.barcodes.get_barcode_pool_repository", return_value=pool), \
            patch("routes.imports.settings.upload_dir", str(tmp_path / "uploads")):
        yield TestClient(app)
