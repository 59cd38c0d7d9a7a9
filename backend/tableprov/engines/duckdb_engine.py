"""
DuckDB Platform Plugin
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple
import uuid

import duckdb

from tableprov.common.logger import get_logger
from tableprov.common.utils import safe_mkdir, sanitize_name
from tableprov.plugins.api import GLOBAL_MARKER, ColumnInfo, ColumnSpec, Platform, append_columns
from tableprov.plugins.registry import register_platform

log = get_logger()

_CATALOG = "database_name = current_database()"


def _literal(text: str) -> str:
    return "'" + str(text).replace("'", "''") + "'"


@register_platform
class DuckDBPlatform(Platform):
    """
    DuckDB-backed platform.

    Namespaces are DuckDB schemas in the connected database. Promotion marks
    the table with a table comment; persistence writes Parquet under
    persist_dir/<namespace>/.
    """
    name = "duckdb"
    supports_schemas = True

    # ---------------- connection ----------------

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Open the DuckDB database and prepare declared namespaces.

        Config options used:
            path: Database file path (":memory:" for in-memory)
            read_only: Open read-only (namespaces are then not created)
            init_sql: Statements run after connecting (ATTACH, CREATE SCHEMA, ...)
            namespaces: Schemas to create when `create` is set
        """
        path = self.config.path or ":memory:"
        if path != ":memory:":
            parent_dir = Path(path).parent
            if not parent_dir.exists():
                safe_mkdir(parent_dir)
                log.debug(f"Created directory: {parent_dir}")

        self.connection = duckdb.connect(database=path, read_only=self.config.read_only)

        for sql in self.config.init_sql:
            try:
                self.connection.execute(sql)
                log.debug(f"  Executed init SQL: {sql[:50]}...")
            except Exception as e:
                log.warning(f"  Failed to execute init SQL: {e}")

        if not self.config.read_only:
            for ns, decl in self.config.namespaces.items():
                if decl.create and (decl.engine or self.name).lower() == self.name:
                    self.connection.execute(f"CREATE SCHEMA IF NOT EXISTS {self.quote_identifier(ns)}")
                    log.debug(f"  Namespace ready: {ns}")

        log.platform_connect(self.name, path)
        return self.connection

    def close(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.close()
            log.debug("DuckDB connection closed")
        except Exception as e:
            log.warning(f"Error closing DuckDB connection: {e}")
        finally:
            self.connection = None

    def _execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> duckdb.DuckDBPyConnection:
        log.sql(sql)
        if params is None:
            return self.connection.execute(sql)
        return self.connection.execute(sql, list(params))

    # ---------------- catalog ----------------

    def _columns(self, namespace: str, name: str) -> List[Tuple[str, str, Optional[str]]]:
        """(name, type, comment) per column, in table order"""
        return self._execute(
            f"SELECT column_name, data_type, comment FROM duckdb_columns() "
            f"WHERE {_CATALOG} AND lower(schema_name) = lower(?) AND lower(table_name) = lower(?) "
            f"ORDER BY column_index",
            [namespace, name],
        ).fetchall()

    def schema_lookup(self, namespace: str, name: str) -> List[ColumnInfo]:
        """
        Column metadata for a table.

        DuckDB does not enforce declared text widths, so a text column's
        byte length is the longest stored value in bytes (None when empty).
        """
        rows = self._columns(namespace, name)
        if not rows:
            raise LookupError(f"table {namespace}.{name} not found")
        columns = [ColumnInfo(name=n, type=t, label=c or None) for n, t, c in rows]

        text_cols = [c for c in columns if c.is_text]
        if text_cols:
            exprs = ", ".join(
                f"max(strlen(CAST({self.quote_identifier(c.name)} AS VARCHAR)))" for c in text_cols
            )
            lengths = self._execute(f"SELECT {exprs} FROM {self.format_table_name(namespace, name)}").fetchone()
            for col, length in zip(text_cols, lengths):
                col.byte_length = int(length) if length is not None else None
        return columns

    def table_exists(self, namespace: str, name: str) -> bool:
        row = self._execute(
            f"SELECT count(*) FROM duckdb_tables() "
            f"WHERE {_CATALOG} AND lower(schema_name) = lower(?) AND lower(table_name) = lower(?)",
            [namespace, name],
        ).fetchone()
        return bool(row[0])

    def namespace_exists(self, namespace: str) -> bool:
        row = self._execute(
            f"SELECT count(*) FROM duckdb_schemas() WHERE {_CATALOG} AND lower(schema_name) = lower(?)",
            [namespace],
        ).fetchone()
        return bool(row[0])

    def list_tables(self, namespace: str) -> List[str]:
        rows = self._execute(
            f"SELECT table_name FROM duckdb_tables() "
            f"WHERE {_CATALOG} AND lower(schema_name) = lower(?) ORDER BY table_name",
            [namespace],
        ).fetchall()
        return [r[0] for r in rows]

    def is_promoted(self, namespace: str, name: str) -> bool:
        row = self._execute(
            f"SELECT comment FROM duckdb_tables() "
            f"WHERE {_CATALOG} AND lower(schema_name) = lower(?) AND lower(table_name) = lower(?)",
            [namespace, name],
        ).fetchone()
        return bool(row) and row[0] == GLOBAL_MARKER

    # ---------------- table operations ----------------

    def _comment_columns(self, target: str, comments: Sequence[Tuple[str, Optional[str]]]) -> None:
        for col, comment in comments:
            if comment:
                self._execute(f"COMMENT ON COLUMN {target}.{self.quote_identifier(col)} IS {_literal(comment)}")

    def create_table(
        self,
        namespace: str,
        name: str,
        columns: Sequence[ColumnSpec],
        source_namespace: str,
        source_name: str,
    ) -> int:
        target = self.format_table_name(namespace, name)
        source = self.format_table_name(source_namespace, source_name)

        ddl = ", ".join(f"{self.quote_identifier(c.name)} {c.ddl_type()}" for c in columns)
        names = ", ".join(self.quote_identifier(c.name) for c in columns)
        select = ", ".join(
            f"CAST({self.quote_identifier(c.source or c.name)} AS {c.ddl_type()})" for c in columns
        )

        self._execute(f"CREATE TABLE {target} ({ddl})")
        try:
            self._execute(f"INSERT INTO {target} ({names}) SELECT {select} FROM {source}")
            self._comment_columns(target, [(c.name, c.label) for c in columns])
        except Exception:
            # Never leave a half-loaded table behind
            self._execute(f"DROP TABLE IF EXISTS {target}")
            raise

        count = self._execute(f"SELECT count(*) FROM {target}").fetchone()[0]
        log.debug(f"Created TABLE {target} ({count} rows, {len(columns)} cols)")
        return count

    def drop_table(self, namespace: str, name: str) -> bool:
        if not self.table_exists(namespace, name):
            return False
        self._execute(f"DROP TABLE IF EXISTS {self.format_table_name(namespace, name)}")
        return True

    def append_rows(
        self,
        namespace: str,
        name: str,
        source_namespace: str,
        source_name: str,
        mode: str,
    ) -> int:
        target = self.format_table_name(namespace, name)
        source = self.format_table_name(source_namespace, source_name)
        count = self._execute(f"SELECT count(*) FROM {source}").fetchone()[0]

        if not self.table_exists(namespace, name):
            comments = [(n, c) for n, _, c in self._columns(source_namespace, source_name)]
            self._execute(f"CREATE TABLE {target} AS SELECT * FROM {source}")
            self._comment_columns(target, comments)
            log.debug(f"Created TABLE {target} from {source} ({count} rows)")
            return count

        dest_cols = [(n, t) for n, t, _ in self._columns(namespace, name)]
        src_cols = [(n, t) for n, t, _ in self._columns(source_namespace, source_name)]
        pairs = append_columns(dest_cols, src_cols, mode)

        names = ", ".join(self.quote_identifier(n) for n, _ in pairs)
        if mode == "force":
            select = ", ".join(f"CAST({self.quote_identifier(n)} AS {t})" for n, t in pairs)
        else:
            select = names
        self._execute(f"INSERT INTO {target} ({names}) SELECT {select} FROM {source}")
        log.debug(f"Appended {count} rows from {source} into {target} ({mode})")
        return count

    def promote_table(
        self,
        name: str,
        from_namespace: str,
        to_namespace: str,
        new_name: Optional[str] = None,
    ) -> None:
        new_name = new_name or name
        source = self.format_table_name(from_namespace, name)
        target = self.format_table_name(to_namespace, new_name)
        moves = (from_namespace.lower(), name.lower()) != (to_namespace.lower(), new_name.lower())

        self._execute("BEGIN TRANSACTION")
        try:
            if moves:
                comments = [(n, c) for n, _, c in self._columns(from_namespace, name)]
                self._execute(f"CREATE TABLE {target} AS SELECT * FROM {source}")
                self._execute(f"DROP TABLE {source}")
                self._comment_columns(target, comments)
            self._execute(f"COMMENT ON TABLE {target} IS {_literal(GLOBAL_MARKER)}")
            self._execute("COMMIT")
        except Exception:
            self._execute("ROLLBACK")
            raise
        log.debug(f"Promoted {source} -> {target}")

    def persist_table(
        self,
        namespace: str,
        name: str,
        partition: Optional[Sequence[str]] = None,
        order: Optional[Sequence[str]] = None,
    ) -> Path:
        file_path, dir_path = self.backing_paths(namespace, name)
        safe_mkdir(file_path.parent)

        query = f"SELECT * FROM {self.format_table_name(namespace, name)}"
        if order:
            query += " ORDER BY " + ", ".join(self.quote_identifier(c) for c in order)

        if partition:
            cols = ", ".join(self.quote_identifier(c) for c in partition)
            self._execute(
                f"COPY ({query}) TO {_literal(dir_path.as_posix())} "
                f"(FORMAT PARQUET, PARTITION_BY ({cols}), OVERWRITE_OR_IGNORE)"
            )
            path = dir_path
        else:
            self._execute(f"COPY ({query}) TO {_literal(file_path.as_posix())} (FORMAT PARQUET)")
            path = file_path
        log.debug(f"Persisted {namespace}.{name} to {path}")
        return path

    # ---------------- staging ----------------

    def create_staging_namespace(self) -> str:
        handle = f"{sanitize_name(self.config.staging_prefix)}_{uuid.uuid4().hex[:8]}"
        self._execute(f"CREATE SCHEMA {self.quote_identifier(handle)}")
        return handle

    def release_staging_namespace(self, handle: str) -> None:
        self._execute(f"DROP SCHEMA IF EXISTS {self.quote_identifier(handle)} CASCADE")
