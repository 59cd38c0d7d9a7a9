"""
Tests for the SQLite platform (namespaces as table-name prefixes).
"""

import polars as pl
import pytest

from tableprov.core.orchestrator import BatchStatus, provision
from tableprov.core.records import TableStatus


def _tables(platform):
    rows = platform.connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return sorted(r[0] for r in rows)


class TestCatalog:
    def test_schema_lookup_uses_declared_lengths(self, sqlite_platform):
        cols = sqlite_platform.schema_lookup("raw", "orders")
        assert [c.name for c in cols] == ["id", "region", "comment", "day"]
        assert [c.byte_length for c in cols] == [None, 4, 40, 10]

    def test_missing_table(self, sqlite_platform):
        with pytest.raises(LookupError):
            sqlite_platform.schema_lookup("raw", "nope")

    def test_namespaces_are_prefixes(self, sqlite_platform):
        assert sqlite_platform.format_table_name("raw", "orders") == '"raw__orders"'
        assert sqlite_platform.list_tables("raw") == ["orders"]
        assert sqlite_platform.namespace_exists("public")
        assert not sqlite_platform.namespace_exists("nowhere")


class TestProvision:
    def test_promote_and_persist_partitioned(self, sqlite_platform, log):
        result = provision(
            sqlite_platform, "raw.orders", "orders(partition=(region) orderby=(day))",
            {"promote": True, "persist": True}, log=log,
        )
        assert result.status is BatchStatus.SUCCEEDED
        assert sqlite_platform.is_promoted("public", "orders")
        assert not any(t.startswith("_staging") for t in _tables(sqlite_platform))

        root = sqlite_platform.backing_paths("public", "orders")[1]
        east = pl.read_parquet(root / "region=east" / "data_0.parquet")
        assert "region" not in east.columns
        assert east["day"].to_list() == ["2026-01-02", "2026-01-03"]
        assert (root / "region=west" / "data_0.parquet").exists()

    def test_persist_single_file(self, sqlite_platform, log):
        provision(sqlite_platform, "raw.orders", None, {"promote": True, "persist": True}, log=log)
        path = sqlite_platform.backing_paths("public", "orders")[0]
        assert pl.read_parquet(path).height == 3

    def test_planned_types(self, sqlite_platform, log):
        provision(sqlite_platform, "raw.orders", None, {}, log=log)
        types = [t for _, t in sqlite_platform._table_info("public", "orders")]
        assert types == ["INTEGER", "CHAR(4)", "VARCHAR", "CHAR(10)"]

    def test_labels_and_formats_follow_the_table(self, sqlite_platform, log):
        sqlite_platform.connection.execute(
            "INSERT INTO _tableprov_columns VALUES ('raw__orders', 'region', '$4.', 'Sales region')"
        )
        provision(sqlite_platform, "raw.orders", None, {"promote": True}, log=log)
        region = sqlite_platform.schema_lookup("public", "orders")[1]
        assert region.format == "$4."
        assert region.label is None

        provision(sqlite_platform, "raw.orders", None, {"promote": True, "preserve_labels": True}, log=log)
        assert sqlite_platform.schema_lookup("public", "orders")[1].label == "Sales region"

    def test_append_twice(self, sqlite_platform, log):
        provision(sqlite_platform, "raw.orders", "hist(append=normal)", {}, log=log)
        result = provision(sqlite_platform, "raw.orders", "hist(append=normal)", {}, log=log)
        assert result.counters.net_new == 0
        assert sqlite_platform.connection.execute('SELECT count(*) FROM "public__hist"').fetchone()[0] == 6

    def test_append_force_into_narrower_table(self, sqlite_platform, log):
        sqlite_platform.connection.execute('CREATE TABLE "public__slim" (id INTEGER, extra TEXT)')

        result = provision(sqlite_platform, "raw.orders", "slim(append=normal)", {}, log=log)
        assert result.records[0].failed_step == "append"

        result = provision(sqlite_platform, "raw.orders", "slim(append=force)", {}, log=log)
        assert result.status is BatchStatus.SUCCEEDED
        rows = sqlite_platform.connection.execute('SELECT id, extra FROM "public__slim" ORDER BY id').fetchall()
        assert rows == [(1, None), (2, None), (3, None)]

    def test_missing_partition_column(self, sqlite_platform, log):
        result = provision(
            sqlite_platform, "raw.orders", "orders(partition=(nope))", {"promote": True, "persist": True}, log=log,
        )
        record = result.records[0]
        assert record.status is TableStatus.FAILED
        assert record.failed_step == "persist"
        assert "nope" in record.error
