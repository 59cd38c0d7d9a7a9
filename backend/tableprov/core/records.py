"""
Per-table records

A TableRecord pairs one source table with one destination directive
(positional alignment by list index) and carries the options resolved for
that table. Its action plan is fixed at construction; only status fields
change while the orchestrator executes it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, InitVar
from enum import Enum
from typing import List, Optional, Tuple

from tableprov.common.config_models import AppendMode, BatchOptions, parse_flag
from tableprov.common.errors import DirectiveParseError
from tableprov.common.logger import Logger, get_logger
from tableprov.directives.options import OptionValue, extract_option, fill_default, option_keys
from tableprov.directives.scanner import DEFAULT_DELIMITER, NormalizedDirective, tokenize, split_name
from tableprov.plugins.api import Platform

__all__ = [
    "ActionPlan",
    "TableStatus",
    "TableRecord",
    "KNOWN_OPTIONS",
    "parse_sources",
    "build_records",
]

KNOWN_OPTIONS = ("partition", "orderby", "promote", "append")
SOURCE_WILDCARDS = ("*", "_all_")
_NAME = re.compile(r"^[A-Za-z0-9_$][A-Za-z0-9_$\-]*$")
_NONE_VALUES = ("none", "_none_")


class ActionPlan(str, Enum):
    LOAD_DIRECT = "load-direct"
    LOAD_THEN_APPEND = "load-then-append"
    LOAD_THEN_PROMOTE_FAST = "load-then-promote-fast"
    LOAD_THEN_PROMOTE_SLOW = "load-then-promote-slow"

    @property
    def requires_staging(self) -> bool:
        return self in (ActionPlan.LOAD_THEN_APPEND, ActionPlan.LOAD_THEN_PROMOTE_FAST)

    @property
    def promotes(self) -> bool:
        return self in (ActionPlan.LOAD_THEN_PROMOTE_FAST, ActionPlan.LOAD_THEN_PROMOTE_SLOW)


class TableStatus(str, Enum):
    PENDING = "pending"
    LOADED = "loaded"
    STAGED = "staged"
    APPENDED = "appended"
    PROMOTED = "promoted"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED = "failed"
    EXCLUDED = "excluded"


def resolve_plan(append: AppendMode, promote: bool, fast_promote: bool) -> ActionPlan:
    if append is not AppendMode.NONE:
        return ActionPlan.LOAD_THEN_APPEND
    if promote:
        return ActionPlan.LOAD_THEN_PROMOTE_FAST if fast_promote else ActionPlan.LOAD_THEN_PROMOTE_SLOW
    return ActionPlan.LOAD_DIRECT


@dataclass
class TableRecord:
    """One table's journey through a batch."""
    index: int
    source_namespace: str
    source_name: str
    destination_namespace: str
    destination_name: str
    partition: Tuple[str, ...] = ()
    order: Tuple[str, ...] = ()
    promote: bool = False
    append: AppendMode = AppendMode.NONE
    fast_promote: InitVar[bool] = True
    plan: ActionPlan = field(init=False)
    status: TableStatus = TableStatus.PENDING
    history: List[TableStatus] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    staged_name: Optional[str] = None
    notes: List[str] = field(default_factory=list)

    def __post_init__(self, fast_promote: bool) -> None:
        if self.append is not AppendMode.NONE and self.promote:
            self.promote = False
            self.notes.append(
                f"promote ignored for {self.qualified_destination}: append={self.append.value} "
                "tables are not promoted"
            )
        object.__setattr__(self, "plan", resolve_plan(self.append, self.promote, fast_promote))

    def __setattr__(self, name, value) -> None:
        if name == "plan" and "plan" in self.__dict__:
            raise AttributeError("action plan is fixed once the record is built")
        super().__setattr__(name, value)

    @property
    def qualified_source(self) -> str:
        return f"{self.source_namespace}.{self.source_name}"

    @property
    def qualified_destination(self) -> str:
        return f"{self.destination_namespace}.{self.destination_name}"

    @property
    def label(self) -> str:
        return f"{self.qualified_source} -> {self.qualified_destination}"

    @property
    def requires_staging(self) -> bool:
        return self.plan.requires_staging

    @property
    def is_open(self) -> bool:
        return self.status not in (TableStatus.FAILED, TableStatus.EXCLUDED, TableStatus.DONE)

    def advance(self, status: TableStatus) -> None:
        self.status = status
        self.history.append(status)

    def fail(self, step: str, error: str) -> None:
        self.failed_step = step
        self.error = error
        self.advance(TableStatus.FAILED)

    def exclude(self, reason: str) -> None:
        self.error = reason
        self.advance(TableStatus.EXCLUDED)


# ============================================================================
# Record assembly
# ============================================================================

def _split_qualified(name: str, default_namespace: str, allow_wildcard: bool = False) -> Tuple[str, str]:
    if "." in name:
        namespace, table = name.split(".", 1)
    else:
        namespace, table = default_namespace, name
    if not _NAME.match(namespace or ""):
        raise DirectiveParseError(f"invalid namespace in {name!r}")
    if allow_wildcard and table.lower() in SOURCE_WILDCARDS:
        return namespace, "*"
    if not _NAME.match(table or ""):
        raise DirectiveParseError(f"invalid table name {name!r}")
    return namespace, table


def parse_sources(
    text: str,
    default_namespace: str,
    delimiter: str = DEFAULT_DELIMITER,
) -> List[Tuple[str, str]]:
    """
    Parse the source list into (namespace, name) pairs.

    `ns.*` / `ns._all_` entries are returned with name '*' and expanded by
    build_records through the platform.
    """
    directive = tokenize(text, delimiter)
    if not len(directive):
        raise DirectiveParseError("no source tables given")
    sources = []
    for part in directive:
        name, clause = split_name(part)
        if clause is not None:
            raise DirectiveParseError(f"options are not supported on source tables: {part!r}")
        sources.append(_split_qualified(name, default_namespace, allow_wildcard=True))
    return sources


def _column_list(value: Optional[OptionValue], key: str, label: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    items = value.as_list()
    if len(items) == 1 and items[0].lower() in _NONE_VALUES:
        return ()
    for item in items:
        if not _NAME.match(item):
            raise DirectiveParseError(f"invalid column {item!r} in {key}= for {label}")
    return tuple(items)


def _scalar(value: Optional[OptionValue], key: str, label: str) -> str:
    if value is None:
        raise DirectiveParseError(f"{key}= missing for {label}")
    if value.is_list:
        raise DirectiveParseError(f"{key}= takes a single value for {label}, got {value}")
    return value.scalar or ""


def _check_destinations(directive: NormalizedDirective, default_namespace: str) -> None:
    """Reject unknown options, bad names and bad option values in the given destinations."""
    for part in directive:
        unknown = [k for k in option_keys(part) if k not in KNOWN_OPTIONS]
        if unknown:
            raise DirectiveParseError(
                f"unknown option(s) {', '.join(unknown)} in {part!r}; "
                f"expected {', '.join(KNOWN_OPTIONS)}"
            )
        _split_qualified(split_name(part)[0], default_namespace)

    values = zip(
        extract_option(directive, "partition"),
        extract_option(directive, "orderby"),
        extract_option(directive, "promote"),
        extract_option(directive, "append"),
    )
    for part, (partition, order, promote, append) in zip(directive, values):
        label = split_name(part)[0]
        _column_list(partition, "partition", label)
        _column_list(order, "orderby", label)
        try:
            if promote is not None:
                parse_flag(_scalar(promote, "promote", label))
            if append is not None:
                AppendMode.parse(_scalar(append, "append", label))
        except ValueError as e:
            raise DirectiveParseError(f"{label}: {e}") from e


def build_records(
    platform: Platform,
    sources: str,
    destinations: Optional[str],
    options: BatchOptions,
    log: Optional[Logger] = None,
    delimiter: str = DEFAULT_DELIMITER,
) -> List[TableRecord]:
    """
    Assemble one TableRecord per source table.

    Names, options and option values are checked before any platform call.
    The only platform calls made here are read-only catalog queries (alias
    resolution, wildcard listing); with a wildcard source the destination
    count can only be checked after the listing.

    Raises:
        DirectiveParseError: malformed sources or destinations
    """
    log = log or get_logger()
    source_namespace = options.source_namespace or options.default_namespace
    parsed_sources = parse_sources(sources, source_namespace, delimiter)
    directive = tokenize(destinations or "", delimiter)

    _check_destinations(directive, options.default_namespace)
    log.debug(f"Normalized destinations: {directive.text or '(none)'}")

    # Without wildcards the source count is known before the catalog is read
    if not any(name == "*" for _, name in parsed_sources) and len(directive) > len(parsed_sources):
        raise DirectiveParseError(
            f"{len(directive)} destination directive(s) given for {len(parsed_sources)} source table(s)"
        )

    expanded: List[Tuple[str, str]] = []
    for namespace, name in parsed_sources:
        physical = platform.resolve_namespace(namespace)
        if name == "*":
            tables = platform.list_tables(physical)
            log.dev(f"Expanded {namespace}.* to {len(tables)} table(s)")
            expanded.extend((physical, t) for t in tables)
        else:
            expanded.append((physical, name))

    if len(directive) > len(expanded):
        raise DirectiveParseError(
            f"{len(directive)} destination directive(s) given for {len(expanded)} source table(s)"
        )

    # Destinations not named default to the source table name
    parts = list(directive.parts) + [name for _, name in expanded[len(directive):]]
    directive = NormalizedDirective(tuple(parts), directive.delimiter)
    directive = fill_default(directive, "promote", options.promote)
    directive = fill_default(directive, "append", options.append)
    log.debug(f"Resolved destinations: {directive.text}")

    partitions = extract_option(directive, "partition")
    orders = extract_option(directive, "orderby")
    promotes = extract_option(directive, "promote")
    appends = extract_option(directive, "append")

    records = []
    for i, ((src_ns, src_name), part) in enumerate(zip(expanded, directive)):
        dest_ns, dest_name = _split_qualified(split_name(part)[0], options.default_namespace)
        label = f"{src_ns}.{src_name}"
        try:
            promote = parse_flag(_scalar(promotes[i], "promote", label))
            append = AppendMode.parse(_scalar(appends[i], "append", label))
        except ValueError as e:
            raise DirectiveParseError(f"{label}: {e}") from e
        records.append(TableRecord(
            index=i,
            source_namespace=src_ns,
            source_name=src_name,
            destination_namespace=platform.resolve_namespace(dest_ns),
            destination_name=dest_name,
            partition=_column_list(partitions[i], "partition", label),
            order=_column_list(orders[i], "orderby", label),
            promote=promote,
            append=append,
            fast_promote=options.fast_promote,
        ))
    return records
