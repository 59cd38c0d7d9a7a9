from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from tableprov.common.config_models import PlatformConfig, load_platform_config

TEXT_TYPES = frozenset({
    "char", "character", "bpchar", "nchar",
    "varchar", "nvarchar", "character varying", "text", "string",
})

GLOBAL_MARKER = "tableprov:global"


def base_type(type_name: str) -> str:
    """'VARCHAR(20)' -> 'varchar'"""
    return str(type_name or "").split("(", 1)[0].strip().lower()


def declared_length(type_name: str) -> Optional[int]:
    """'CHAR(10)' -> 10, 'VARCHAR' -> None"""
    text = str(type_name or "")
    if "(" not in text or not text.endswith(")"):
        return None
    inner = text[text.index("(") + 1:-1].split(",", 1)[0].strip()
    return int(inner) if inner.isdigit() else None


@dataclass
class ColumnInfo:
    """One source column as reported by the platform's schema lookup."""
    name: str
    type: str
    byte_length: Optional[int] = None
    format: Optional[str] = None
    label: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return base_type(self.type) in TEXT_TYPES


@dataclass
class ColumnSpec:
    """A destination column for create_table."""
    name: str
    type: str
    length: Optional[int] = None   # None = variable width (or not text)
    source: str = ""               # source column name the values come from
    format: Optional[str] = None
    label: Optional[str] = None

    def ddl_type(self) -> str:
        if self.length is not None:
            return f"{self.type.upper()}({self.length})"
        if base_type(self.type) in TEXT_TYPES:
            return self.type.upper()
        return self.type


def append_columns(
    dest: Sequence[Tuple[str, str]],
    source: Sequence[Tuple[str, str]],
    mode: str,
) -> List[Tuple[str, str]]:
    """
    Pick the (name, dest_type) pairs to insert when appending source into dest.

    normal: both tables must have the same column names and base types
    force: insert the columns both tables share, cast to the destination type
    """
    src_types = {n.lower(): base_type(t) for n, t in source}
    if mode == "normal":
        dest_names = {n.lower() for n, _ in dest}
        if dest_names != set(src_types):
            missing = sorted(dest_names ^ set(src_types))
            raise ValueError(f"column sets differ ({', '.join(missing)}); use append=force to override")
        for n, t in dest:
            if src_types[n.lower()] != base_type(t):
                raise ValueError(
                    f"column {n} is {base_type(t)} in destination but {src_types[n.lower()]} in source; "
                    "use append=force to override"
                )
        return list(dest)
    common = [(n, t) for n, t in dest if n.lower() in src_types]
    if not common:
        raise ValueError("no overlapping columns between staged table and destination")
    return common


class Platform(ABC):
    """
    Target platform: the in-memory analytic table service a batch provisions into.

    Namespaces hold tables. A batch reads source tables, creates destination
    tables (directly or through a per-batch staging namespace), appends,
    promotes to global scope and persists to durable storage.
    """
    name: str
    supports_schemas: bool = True
    namespace_separator: str = "_"

    def __init__(self, config: Union[PlatformConfig, Mapping[str, Any], None] = None):
        if isinstance(config, PlatformConfig):
            self.config = config
        else:
            self.config = load_platform_config(config)
        self.connection: Any = None

    @property
    def required_engine(self) -> str:
        """Engine a destination namespace must be backed by."""
        return self.name

    def __enter__(self) -> "Platform":
        if self.connection is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---------------- connection ----------------

    @abstractmethod
    def connect(self) -> Any:
        """Open the connection and prepare declared namespaces."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    # ---------------- catalog ----------------

    @abstractmethod
    def schema_lookup(self, namespace: str, name: str) -> List[ColumnInfo]:
        """Ordered column metadata for a table."""
        ...

    @abstractmethod
    def table_exists(self, namespace: str, name: str) -> bool:
        ...

    @abstractmethod
    def namespace_exists(self, namespace: str) -> bool:
        ...

    @abstractmethod
    def list_tables(self, namespace: str) -> List[str]:
        """Table names in a namespace, alphabetical."""
        ...

    def namespace_engine(self, namespace: str) -> Optional[str]:
        """Engine backing a namespace, or None when the namespace is unassigned."""
        declared = self.config.namespaces.get(namespace)
        if declared is not None and declared.engine:
            return declared.engine.lower()
        return self.name if self.namespace_exists(namespace) else None

    def resolve_namespace(self, alias: str) -> str:
        """Map a logical namespace alias to its physical name."""
        for key, physical in self.config.aliases.items():
            if key.lower() == alias.lower():
                return physical
        return alias

    # ---------------- table operations ----------------

    @abstractmethod
    def create_table(
        self,
        namespace: str,
        name: str,
        columns: Sequence[ColumnSpec],
        source_namespace: str,
        source_name: str,
    ) -> int:
        """Create a table with the given columns and load the source rows. Returns row count."""
        ...

    @abstractmethod
    def drop_table(self, namespace: str, name: str) -> bool:
        """Drop a table if it exists. Returns True when something was dropped."""
        ...

    @abstractmethod
    def append_rows(
        self,
        namespace: str,
        name: str,
        source_namespace: str,
        source_name: str,
        mode: str,
    ) -> int:
        """Append source rows into the destination (normal | force). Returns rows appended."""
        ...

    @abstractmethod
    def promote_table(
        self,
        name: str,
        from_namespace: str,
        to_namespace: str,
        new_name: Optional[str] = None,
    ) -> None:
        """Move a table into global scope in to_namespace."""
        ...

    @abstractmethod
    def is_promoted(self, namespace: str, name: str) -> bool:
        ...

    @abstractmethod
    def persist_table(
        self,
        namespace: str,
        name: str,
        partition: Optional[Sequence[str]] = None,
        order: Optional[Sequence[str]] = None,
    ) -> Path:
        """Write the table to durable storage. Returns the backing path."""
        ...

    def delete_backing_file(self, namespace: str, name: str) -> bool:
        """Remove a previously persisted copy. Returns True when something was removed."""
        removed = False
        for path in self.backing_paths(namespace, name):
            if path.is_dir():
                shutil.rmtree(path)
                removed = True
            elif path.exists():
                path.unlink()
                removed = True
        return removed

    @abstractmethod
    def create_staging_namespace(self) -> str:
        ...

    @abstractmethod
    def release_staging_namespace(self, handle: str) -> None:
        ...

    # ---------------- helpers ----------------

    def backing_paths(self, namespace: str, name: str) -> Tuple[Path, Path]:
        """(single file, partition directory) locations for a persisted table."""
        root = Path(self.config.persist_dir) / namespace
        return root / f"{name}.parquet", root / name

    def format_table_name(self, schema: str, table: str) -> str:
        """
        Format table reference for this platform.

        - DuckDB: "staging"."datasets"
        - SQLite: "staging__datasets"
        """
        if self.supports_schemas and schema:
            return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"
        elif schema:
            return self.quote_identifier(f"{schema}{self.namespace_separator}{table}")
        return self.quote_identifier(table)

    @staticmethod
    def quote_identifier(name: str) -> str:
        return '"' + str(name).replace('"', '""') + '"'
