"""
Shared pytest fixtures for tableprov tests.

This module provides:
- RecordingPlatform: an in-memory Platform that records every call and can
  be told to fail specific calls
- DuckDB and SQLite platforms seeded with a small raw.orders table
- Logger reset between tests

Usage:
    def test_something(fake_platform):
        platform = fake_platform(tables={("raw", "a"): [...]})
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

# Ensure tableprov package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from tableprov.common.logger import LogFormat, LogLevel, Logger, init_logger
from tableprov.plugins.api import ColumnInfo, ColumnSpec, Platform


# =============================================================================
# Recording platform
# =============================================================================


def orders_columns() -> List[ColumnInfo]:
    return [
        ColumnInfo(name="ID", type="INTEGER"),
        ColumnInfo(name="Region", type="VARCHAR", byte_length=4, label="Sales region"),
        ColumnInfo(name="Comment", type="VARCHAR", byte_length=40, label="Free text"),
        ColumnInfo(name="Day", type="DATE", format="yyyy-mm-dd"),
    ]


class RecordingPlatform(Platform):
    """Platform double keeping tables as column lists in a dict."""

    name = "fake"

    def __init__(
        self,
        tables: Optional[Dict[Tuple[str, str], List[ColumnInfo]]] = None,
        namespaces: Sequence[str] = ("raw", "public"),
        config: Optional[Dict[str, Any]] = None,
    ):
        super().__init__({"type": "fake", "persist_dir": "/tmp/tableprov-fake", **(config or {})})
        self.tables: Dict[Tuple[str, str], List[ColumnInfo]] = {}
        for (ns, name), cols in (tables or {}).items():
            self.tables[(ns.lower(), name.lower())] = list(cols)
        self.namespaces = {ns.lower() for ns in namespaces}
        self.promoted = set()
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[Tuple[str, str], BaseException] = {}
        self._staging_count = 0

    # -- test helpers --

    def fail(self, method: str, name: str, exc: Optional[BaseException] = None) -> None:
        """Make `method` raise for table `name` (or a staged copy of it)."""
        self.failures[(method, name.lower())] = exc or RuntimeError(f"{method} refused for {name}")

    def _maybe_fail(self, method: str, name: str) -> None:
        name = name.lower()
        for (m, target), exc in self.failures.items():
            if m == method and (name == target or name.startswith(target + "_")):
                raise exc

    def called(self, method: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == method]

    # -- Platform --

    def connect(self) -> Any:
        self.connection = object()
        return self.connection

    def close(self) -> None:
        self.connection = None

    def schema_lookup(self, namespace: str, name: str) -> List[ColumnInfo]:
        self.calls.append(("schema_lookup", namespace, name))
        self._maybe_fail("schema_lookup", name)
        return [ColumnInfo(**vars(c)) for c in self.tables[(namespace.lower(), name.lower())]]

    def table_exists(self, namespace: str, name: str) -> bool:
        return (namespace.lower(), name.lower()) in self.tables

    def namespace_exists(self, namespace: str) -> bool:
        return namespace.lower() in self.namespaces

    def list_tables(self, namespace: str) -> List[str]:
        return sorted(n for ns, n in self.tables if ns == namespace.lower())

    def create_table(self, namespace, name, columns: Sequence[ColumnSpec], source_namespace, source_name) -> int:
        self.calls.append(("create_table", namespace, name, list(columns), source_namespace, source_name))
        self._maybe_fail("create_table", name)
        self.tables[(namespace.lower(), name.lower())] = [
            ColumnInfo(name=c.name, type=c.ddl_type(), byte_length=c.length, format=c.format, label=c.label)
            for c in columns
        ]
        return 3

    def drop_table(self, namespace: str, name: str) -> bool:
        self.calls.append(("drop_table", namespace, name))
        self._maybe_fail("drop_table", name)
        self.promoted.discard((namespace.lower(), name.lower()))
        return self.tables.pop((namespace.lower(), name.lower()), None) is not None

    def append_rows(self, namespace, name, source_namespace, source_name, mode) -> int:
        self.calls.append(("append_rows", namespace, name, source_namespace, source_name, mode))
        self._maybe_fail("append_rows", name)
        key = (namespace.lower(), name.lower())
        if key not in self.tables:
            self.tables[key] = list(self.tables[(source_namespace.lower(), source_name.lower())])
        return 3

    def promote_table(self, name, from_namespace, to_namespace, new_name=None) -> None:
        self.calls.append(("promote_table", name, from_namespace, to_namespace, new_name))
        self._maybe_fail("promote_table", new_name or name)
        cols = self.tables.pop((from_namespace.lower(), name.lower()))
        self.tables[(to_namespace.lower(), (new_name or name).lower())] = cols
        self.promoted.add((to_namespace.lower(), (new_name or name).lower()))

    def is_promoted(self, namespace: str, name: str) -> bool:
        return (namespace.lower(), name.lower()) in self.promoted

    def persist_table(self, namespace, name, partition=None, order=None) -> Path:
        self.calls.append(("persist_table", namespace, name, partition, order))
        self._maybe_fail("persist_table", name)
        return Path(self.config.persist_dir) / namespace / name

    def delete_backing_file(self, namespace: str, name: str) -> bool:
        self.calls.append(("delete_backing_file", namespace, name))
        return False

    def create_staging_namespace(self) -> str:
        self._staging_count += 1
        handle = f"_staging_{self._staging_count}"
        self.calls.append(("create_staging_namespace", handle))
        self.namespaces.add(handle)
        return handle

    def release_staging_namespace(self, handle: str) -> None:
        self.calls.append(("release_staging_namespace", handle))
        self._maybe_fail("release_staging_namespace", handle)
        self.namespaces.discard(handle)
        for key in [k for k in self.tables if k[0] == handle]:
            del self.tables[key]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logger():
    """Leave the global logger in user/text mode after every test."""
    yield
    init_logger(LogLevel.USER, LogFormat.TEXT)


@pytest.fixture
def log() -> Logger:
    return Logger(LogLevel.DEV)


@pytest.fixture
def fake_platform():
    """Factory for RecordingPlatform; defaults to raw.a and raw.b with order columns."""

    def make(tables=None, namespaces=("raw", "public"), config=None) -> RecordingPlatform:
        if tables is None:
            tables = {("raw", "a"): orders_columns(), ("raw", "b"): orders_columns()}
        platform = RecordingPlatform(tables=tables, namespaces=namespaces, config=config)
        platform.connect()
        return platform

    return make


ORDERS_ROWS = [
    (1, "east", "first order", "2026-01-03"),
    (2, "west", "second order, a longer comment", "2026-01-01"),
    (3, "east", None, "2026-01-02"),
]


@pytest.fixture
def duckdb_platform(tmp_path):
    """In-memory DuckDB platform with raw.orders and raw.customers."""
    from tableprov.engines.duckdb_engine import DuckDBPlatform

    platform = DuckDBPlatform({
        "type": "duckdb",
        "path": ":memory:",
        "persist_dir": str(tmp_path / "persist"),
        "namespaces": {"raw": "duckdb", "public": "duckdb"},
    })
    platform.connect()
    con = platform.connection
    con.execute("CREATE TABLE raw.orders (id INTEGER, region VARCHAR, comment VARCHAR, day DATE)")
    con.executemany("INSERT INTO raw.orders VALUES (?, ?, ?, ?)", ORDERS_ROWS)
    con.execute("COMMENT ON COLUMN raw.orders.region IS 'Sales region'")
    con.execute("CREATE TABLE raw.customers (id INTEGER, name VARCHAR)")
    con.execute("INSERT INTO raw.customers VALUES (1, 'Ada'), (2, 'Grace')")
    yield platform
    platform.close()


@pytest.fixture
def sqlite_platform(tmp_path):
    """In-memory SQLite platform with raw__orders (declared text widths)."""
    from tableprov.engines.sqlite_engine import SQLitePlatform

    platform = SQLitePlatform({
        "type": "sqlite",
        "path": ":memory:",
        "persist_dir": str(tmp_path / "persist"),
        "namespaces": ["raw", "public"],
    })
    platform.connect()
    con = platform.connection
    con.execute('CREATE TABLE "raw__orders" (id INTEGER, region CHAR(4), comment VARCHAR(40), day TEXT)')
    con.executemany('INSERT INTO "raw__orders" VALUES (?, ?, ?, ?)', ORDERS_ROWS)
    con.commit()
    yield platform
    platform.close()
