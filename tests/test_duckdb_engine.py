"""
Tests for the DuckDB platform.

Tests verify:
- Schema lookup measures text columns and reads column comments
- A full batch loads, promotes and persists (single file and partitioned)
- Append modes, slow promotion and staging cleanup on a real database
"""

import polars as pl
import pytest

from tableprov.core.orchestrator import BatchStatus, provision
from tableprov.core.records import TableStatus
from tableprov.engines.duckdb_engine import DuckDBPlatform


def _count(platform, table):
    return platform.connection.execute(f"SELECT count(*) FROM {table}").fetchone()[0]


def _staging_schemas(platform):
    rows = platform.connection.execute(
        "SELECT schema_name FROM duckdb_schemas() WHERE schema_name LIKE '\\_staging%' ESCAPE '\\'"
    ).fetchall()
    return [r[0] for r in rows]


class TestConnect:
    def test_declared_namespaces_created(self, duckdb_platform):
        assert duckdb_platform.namespace_exists("raw")
        assert duckdb_platform.namespace_exists("PUBLIC")
        assert not duckdb_platform.namespace_exists("nowhere")

    def test_init_sql_failure_only_warns(self, tmp_path, capsys):
        platform = DuckDBPlatform({"path": str(tmp_path / "db" / "x.duckdb"), "init_sql": ["SELEC 1"]})
        platform.connect()
        try:
            assert "Failed to execute init SQL" in capsys.readouterr().out
            assert (tmp_path / "db").is_dir()
        finally:
            platform.close()

    def test_close_is_idempotent(self):
        platform = DuckDBPlatform({"path": ":memory:"})
        platform.connect()
        platform.close()
        platform.close()
        assert platform.connection is None


class TestCatalog:
    def test_schema_lookup(self, duckdb_platform):
        cols = duckdb_platform.schema_lookup("raw", "orders")
        assert [c.name for c in cols] == ["id", "region", "comment", "day"]
        assert [c.byte_length for c in cols] == [None, 4, len("second order, a longer comment"), None]
        assert cols[1].label == "Sales region"
        assert cols[2].label is None

    def test_schema_lookup_missing_table(self, duckdb_platform):
        with pytest.raises(LookupError):
            duckdb_platform.schema_lookup("raw", "nope")

    def test_list_and_exists(self, duckdb_platform):
        assert duckdb_platform.list_tables("raw") == ["customers", "orders"]
        assert duckdb_platform.table_exists("RAW", "Orders")
        assert not duckdb_platform.table_exists("public", "orders")


class TestProvision:
    def test_promote_and_persist(self, duckdb_platform, log):
        result = provision(
            duckdb_platform, "raw.orders raw.customers", "orders(partition=(region) orderby=(day)) customers",
            {"promote": True, "persist": True}, log=log,
        )
        assert result.status is BatchStatus.SUCCEEDED
        assert all(r.history[-2:] == [TableStatus.PERSISTED, TableStatus.DONE] for r in result.records)

        assert _count(duckdb_platform, "public.orders") == 3
        assert duckdb_platform.is_promoted("public", "orders")
        assert duckdb_platform.is_promoted("public", "customers")
        assert _staging_schemas(duckdb_platform) == []

        root = duckdb_platform.backing_paths("public", "customers")[0].parent
        assert pl.read_parquet(root / "customers.parquet").height == 2
        assert sorted(p.name for p in (root / "orders").iterdir()) == ["region=east", "region=west"]
        assert list((root / "orders" / "region=east").glob("*.parquet"))

    def test_persist_replaces_previous_copy(self, duckdb_platform, log):
        options = {"promote": True, "persist": True}
        provision(duckdb_platform, "raw.customers", None, options, log=log)
        duckdb_platform.connection.execute("INSERT INTO raw.customers VALUES (3, 'Linus')")
        provision(duckdb_platform, "raw.customers", None, options, log=log)
        path = duckdb_platform.backing_paths("public", "customers")[0]
        assert pl.read_parquet(path).height == 3

    def test_planned_types(self, duckdb_platform, log):
        provision(duckdb_platform, "raw.orders", None, {}, log=log)
        types = dict(duckdb_platform.connection.execute(
            "SELECT column_name, data_type FROM duckdb_columns() "
            "WHERE schema_name = 'public' AND table_name = 'orders'"
        ).fetchall())
        assert types["id"] == "INTEGER"
        assert types["day"] == "DATE"
        assert types["region"] == "VARCHAR"

    @pytest.mark.parametrize("preserve, label", [(False, None), (True, "Sales region")])
    def test_labels(self, duckdb_platform, log, preserve, label):
        provision(duckdb_platform, "raw.orders", None, {"promote": True, "preserve_labels": preserve}, log=log)
        assert duckdb_platform.schema_lookup("public", "orders")[1].label == label

    def test_lowercase_columns(self, duckdb_platform, log):
        con = duckdb_platform.connection
        con.execute('CREATE TABLE raw.mixed ("ID" INTEGER, "Name" VARCHAR)')
        con.execute("INSERT INTO raw.mixed VALUES (1, 'a')")
        provision(duckdb_platform, "raw.mixed", None, {"lowercase_columns": True}, log=log)
        assert [c.name for c in duckdb_platform.schema_lookup("public", "mixed")] == ["id", "name"]

    def test_slow_promote(self, duckdb_platform, log):
        result = provision(duckdb_platform, "raw.orders", None, {"promote": True, "fast_promote": False}, log=log)
        assert result.status is BatchStatus.SUCCEEDED
        assert duckdb_platform.is_promoted("public", "orders")

    def test_replaces_existing_destination(self, duckdb_platform, log):
        duckdb_platform.connection.execute("CREATE TABLE public.orders (old INTEGER)")
        provision(duckdb_platform, "raw.orders", None, {"promote": True}, log=log)
        assert [c.name for c in duckdb_platform.schema_lookup("public", "orders")][0] == "id"


class TestAppend:
    def test_append_twice(self, duckdb_platform, log):
        first = provision(duckdb_platform, "raw.orders", "hist(append=normal)", {}, log=log)
        second = provision(duckdb_platform, "raw.orders", "hist(append=normal)", {}, log=log)
        assert first.counters.net_new == 1
        assert second.counters.net_new == 0
        assert _count(duckdb_platform, "public.hist") == 6
        assert _staging_schemas(duckdb_platform) == []

    def test_incompatible_normal_fails_force_succeeds(self, duckdb_platform, log):
        duckdb_platform.connection.execute("CREATE TABLE public.slim (id BIGINT)")

        result = provision(duckdb_platform, "raw.orders", "slim(append=normal)", {}, log=log)
        record = result.records[0]
        assert record.failed_step == "append"
        assert "append=force" in record.error
        assert _count(duckdb_platform, "public.slim") == 0

        result = provision(duckdb_platform, "raw.orders", "slim(append=force)", {}, log=log)
        assert result.status is BatchStatus.SUCCEEDED
        assert _count(duckdb_platform, "public.slim") == 3


class TestFailures:
    def test_missing_partition_column_fails_persist(self, duckdb_platform, log):
        result = provision(
            duckdb_platform, "raw.orders raw.customers", "orders(partition=(nope)) customers",
            {"promote": True, "persist": True}, log=log,
        )
        orders, customers = result.records
        assert orders.failed_step == "persist"
        assert customers.status is TableStatus.DONE
        assert result.status is BatchStatus.PARTIAL
        assert duckdb_platform.is_promoted("public", "orders")

    def test_wrong_engine_namespace(self, log):
        platform = DuckDBPlatform({"path": ":memory:", "namespaces": {"raw": "duckdb", "legacy": "sqlite"}})
        platform.connect()
        try:
            platform.connection.execute("CREATE TABLE raw.t AS SELECT 1 AS x")
            result = provision(platform, "raw.t", "legacy.t", {}, log=log)
            assert result.records[0].status is TableStatus.EXCLUDED
            assert "requires duckdb" in result.records[0].error
            assert not platform.namespace_exists("legacy")
        finally:
            platform.close()

    def test_direct_load_onto_its_source_keeps_rows(self, duckdb_platform, log):
        result = provision(duckdb_platform, "raw.orders", "raw.orders", {}, log=log)
        assert result.records[0].status is TableStatus.EXCLUDED
        assert result.status is BatchStatus.FAILED
        assert _count(duckdb_platform, "raw.orders") == 3

    def test_dry_run_leaves_database_untouched(self, duckdb_platform, log):
        provision(duckdb_platform, "raw.*", None, {"promote": True, "persist": True}, log=log, dry_run=True)
        assert duckdb_platform.list_tables("public") == []
        assert _staging_schemas(duckdb_platform) == []
