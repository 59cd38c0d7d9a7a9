"""
SQLite Platform Plugin
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple
import sqlite3
import uuid

import polars as pl

from tableprov.common.logger import get_logger
from tableprov.common.utils import safe_mkdir, sanitize_name
from tableprov.plugins.api import (
    ColumnInfo,
    ColumnSpec,
    Platform,
    append_columns,
    base_type,
    declared_length,
)
from tableprov.plugins.registry import register_platform

log = get_logger()

_NAMESPACES = "_tableprov_namespaces"
_COLUMNS = "_tableprov_columns"
_GLOBAL = "_tableprov_global"

_HIVE_NULL = "__HIVE_DEFAULT_PARTITION__"


@register_platform
class SQLitePlatform(Platform):
    """
    SQLite-backed platform.

    Note: SQLite doesn't support schemas, so namespaces are table prefixes.
    Example: namespace="staging" + table="orders" -> "staging__orders"

    Namespaces, column format/label metadata and promoted tables are kept in
    three registry tables inside the database.
    """
    name = "sqlite"
    supports_schemas = False
    namespace_separator = "__"

    # ---------------- connection ----------------

    def connect(self) -> sqlite3.Connection:
        """
        Open the SQLite database and prepare the registry tables.

        Config options used:
            path: Database file path (":memory:" for in-memory)
            timeout: Connection timeout in seconds (default 5.0)
            init_sql: Statements run after connecting
            namespaces: Namespaces to register when `create` is set
        """
        path = self.config.path or ":memory:"
        if path != ":memory:":
            path = str(Path(path))
            safe_mkdir(Path(path).parent)
            log.debug(f"Connecting to SQLite: {path}")
        else:
            log.debug("Connecting to in-memory SQLite")

        timeout = float(getattr(self.config, "timeout", 5.0))
        self.connection = sqlite3.connect(database=path, timeout=timeout)

        if not self.config.read_only:
            self._execute(f"CREATE TABLE IF NOT EXISTS {_NAMESPACES} (name TEXT PRIMARY KEY, engine TEXT)")
            self._execute(
                f"CREATE TABLE IF NOT EXISTS {_COLUMNS} (table_name TEXT, column_name TEXT, "
                f"format TEXT, label TEXT, PRIMARY KEY (table_name, column_name))"
            )
            self._execute(f"CREATE TABLE IF NOT EXISTS {_GLOBAL} (table_name TEXT PRIMARY KEY)")

        for sql in self.config.init_sql:
            try:
                self.connection.execute(sql)
                log.debug(f"  Executed init SQL: {sql[:50]}...")
            except Exception as e:
                log.warning(f"  Failed to execute init SQL: {e}")

        if not self.config.read_only:
            for ns, decl in self.config.namespaces.items():
                if decl.create and (decl.engine or self.name).lower() == self.name:
                    self.create_namespace(ns)

        self.connection.commit()
        log.platform_connect(self.name, path)
        return self.connection

    def close(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.commit()
            self.connection.close()
            log.debug("SQLite connection closed")
        except Exception as e:
            log.warning(f"Error closing SQLite connection: {e}")
        finally:
            self.connection = None

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        log.sql(sql)
        return self.connection.execute(sql, tuple(params))

    def _physical(self, namespace: str, name: str) -> str:
        return f"{namespace}{self.namespace_separator}{name}"

    def create_namespace(self, namespace: str) -> None:
        """Register a namespace (prefix) in the namespace registry."""
        self._execute(f"INSERT OR IGNORE INTO {_NAMESPACES} (name, engine) VALUES (?, ?)", (namespace, self.name))
        log.debug(f"  Namespace ready: {namespace}")

    # ---------------- catalog ----------------

    def _table_info(self, namespace: str, name: str) -> List[Tuple[str, str]]:
        """(name, declared type) per column, in table order"""
        rows = self._execute(f"PRAGMA table_info({self.format_table_name(namespace, name)})").fetchall()
        return [(r[1], r[2] or "") for r in rows]

    def _metadata(self, physical: str) -> dict:
        rows = self._execute(
            f"SELECT column_name, format, label FROM {_COLUMNS} WHERE lower(table_name) = lower(?)",
            (physical,),
        ).fetchall()
        return {r[0].lower(): (r[1], r[2]) for r in rows}

    def schema_lookup(self, namespace: str, name: str) -> List[ColumnInfo]:
        """
        Column metadata for a table.

        A text column's byte length is its declared length (CHAR(n), VARCHAR(n))
        and falls back to the longest stored value in bytes.
        """
        info = self._table_info(namespace, name)
        if not info:
            raise LookupError(f"table {namespace}.{name} not found")
        meta = self._metadata(self._physical(namespace, name))

        columns = []
        for col, type_name in info:
            fmt, label = meta.get(col.lower(), (None, None))
            columns.append(ColumnInfo(
                name=col,
                type=type_name,
                byte_length=declared_length(type_name),
                format=fmt,
                label=label,
            ))

        measure = [c for c in columns if c.is_text and c.byte_length is None]
        if measure:
            exprs = ", ".join(
                f"max(length(CAST({self.quote_identifier(c.name)} AS BLOB)))" for c in measure
            )
            lengths = self._execute(f"SELECT {exprs} FROM {self.format_table_name(namespace, name)}").fetchone()
            for col, length in zip(measure, lengths):
                col.byte_length = int(length) if length is not None else None
        return columns

    def table_exists(self, namespace: str, name: str) -> bool:
        row = self._execute(
            "SELECT count(*) FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(?)",
            (self._physical(namespace, name),),
        ).fetchone()
        return bool(row[0])

    def namespace_exists(self, namespace: str) -> bool:
        row = self._execute(
            f"SELECT count(*) FROM {_NAMESPACES} WHERE lower(name) = lower(?)", (namespace,)
        ).fetchone()
        return bool(row[0])

    def list_tables(self, namespace: str) -> List[str]:
        prefix = f"{namespace}{self.namespace_separator}"
        rows = self._execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        return sorted(r[0][len(prefix):] for r in rows if r[0].lower().startswith(prefix.lower()))

    def is_promoted(self, namespace: str, name: str) -> bool:
        row = self._execute(
            f"SELECT count(*) FROM {_GLOBAL} WHERE lower(table_name) = lower(?)",
            (self._physical(namespace, name),),
        ).fetchone()
        return bool(row[0])

    # ---------------- table operations ----------------

    def _store_metadata(self, physical: str, entries: Sequence[Tuple[str, Optional[str], Optional[str]]]) -> None:
        self._execute(f"DELETE FROM {_COLUMNS} WHERE lower(table_name) = lower(?)", (physical,))
        for col, fmt, label in entries:
            if fmt or label:
                self._execute(
                    f"INSERT INTO {_COLUMNS} (table_name, column_name, format, label) VALUES (?, ?, ?, ?)",
                    (physical, col, fmt, label),
                )

    def _forget(self, physical: str) -> None:
        self._execute(f"DELETE FROM {_COLUMNS} WHERE lower(table_name) = lower(?)", (physical,))
        self._execute(f"DELETE FROM {_GLOBAL} WHERE lower(table_name) = lower(?)", (physical,))

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

        ddl = ", ".join(f"{self.quote_identifier(c.name)} {c.ddl_type()}".rstrip() for c in columns)
        names = ", ".join(self.quote_identifier(c.name) for c in columns)
        select = ", ".join(self.quote_identifier(c.source or c.name) for c in columns)

        try:
            self._execute(f"CREATE TABLE {target} ({ddl})")
            self._execute(f"INSERT INTO {target} ({names}) SELECT {select} FROM {source}")
            self._store_metadata(self._physical(namespace, name), [(c.name, c.format, c.label) for c in columns])
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            self._execute(f"DROP TABLE IF EXISTS {target}")
            self.connection.commit()
            raise

        count = self._execute(f"SELECT count(*) FROM {target}").fetchone()[0]
        log.debug(f"Created TABLE {target} ({count} rows, {len(columns)} cols)")
        return count

    def drop_table(self, namespace: str, name: str) -> bool:
        if not self.table_exists(namespace, name):
            return False
        self._execute(f"DROP TABLE IF EXISTS {self.format_table_name(namespace, name)}")
        self._forget(self._physical(namespace, name))
        self.connection.commit()
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
        src_cols = self._table_info(source_namespace, source_name)

        try:
            if not self.table_exists(namespace, name):
                ddl = ", ".join(f"{self.quote_identifier(n)} {t}".rstrip() for n, t in src_cols)
                self._execute(f"CREATE TABLE {target} ({ddl})")
                self._execute(f"INSERT INTO {target} SELECT * FROM {source}")
                meta = self._metadata(self._physical(source_namespace, source_name))
                self._store_metadata(
                    self._physical(namespace, name),
                    [(n, *meta.get(n.lower(), (None, None))) for n, _ in src_cols],
                )
            else:
                pairs = append_columns(self._table_info(namespace, name), src_cols, mode)
                names = ", ".join(self.quote_identifier(n) for n, _ in pairs)
                if mode == "force":
                    select = ", ".join(
                        f"CAST({self.quote_identifier(n)} AS {t})" if base_type(t) else self.quote_identifier(n)
                        for n, t in pairs
                    )
                else:
                    select = names
                self._execute(f"INSERT INTO {target} ({names}) SELECT {select} FROM {source}")
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            raise

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
        old_physical = self._physical(from_namespace, name)
        new_physical = self._physical(to_namespace, new_name)

        try:
            if old_physical.lower() != new_physical.lower():
                self._execute(
                    f"ALTER TABLE {self.quote_identifier(old_physical)} "
                    f"RENAME TO {self.quote_identifier(new_physical)}"
                )
                self._forget(new_physical)
                self._execute(
                    f"UPDATE {_COLUMNS} SET table_name = ? WHERE lower(table_name) = lower(?)",
                    (new_physical, old_physical),
                )
                self._execute(f"DELETE FROM {_GLOBAL} WHERE lower(table_name) = lower(?)", (old_physical,))
            self._execute(f"INSERT OR IGNORE INTO {_GLOBAL} (table_name) VALUES (?)", (new_physical,))
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            raise
        log.debug(f"Promoted {old_physical} -> {new_physical}")

    def persist_table(
        self,
        namespace: str,
        name: str,
        partition: Optional[Sequence[str]] = None,
        order: Optional[Sequence[str]] = None,
    ) -> Path:
        """
        Write the table as Parquet through polars.

        Partitioned tables are written hive-style, one directory level per
        partition column (col=value/data_0.parquet), without the partition
        columns in the files.
        """
        file_path, dir_path = self.backing_paths(namespace, name)
        safe_mkdir(file_path.parent)

        query = f"SELECT * FROM {self.format_table_name(namespace, name)}"
        if order:
            query += " ORDER BY " + ", ".join(self.quote_identifier(c) for c in order)
        df = pl.read_database(query, self.connection)

        if not partition:
            df.write_parquet(file_path)
            log.debug(f"Persisted {namespace}.{name} to {file_path} ({len(df)} rows)")
            return file_path

        keys = list(partition)
        missing = [c for c in keys if c not in df.columns]
        if missing:
            raise ValueError(f"partition column(s) not in {namespace}.{name}: {', '.join(missing)}")
        for values, part in df.group_by(keys, maintain_order=True):
            sub = dir_path.joinpath(*(
                f"{c}={_HIVE_NULL if v is None else v}" for c, v in zip(keys, values)
            ))
            safe_mkdir(sub)
            part.drop(keys).write_parquet(sub / "data_0.parquet")
        log.debug(f"Persisted {namespace}.{name} to {dir_path} ({len(df)} rows, partitioned by {', '.join(keys)})")
        return dir_path

    # ---------------- staging ----------------

    def create_staging_namespace(self) -> str:
        handle = f"{sanitize_name(self.config.staging_prefix)}_{uuid.uuid4().hex[:8]}"
        self.create_namespace(handle)
        self.connection.commit()
        return handle

    def release_staging_namespace(self, handle: str) -> None:
        for table in self.list_tables(handle):
            self.drop_table(handle, table)
        self._execute(f"DELETE FROM {_NAMESPACES} WHERE lower(name) = lower(?)", (handle,))
        self.connection.commit()
