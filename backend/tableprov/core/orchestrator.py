"""
Orchestrator: per-table provisioning with failure isolation

A batch runs in two phases. Phase 1 walks the records in index order and
loads each table (directly, or through the batch staging namespace), then
appends or promotes it. Phase 2 persists promoted tables, and only runs when
persistence was requested and no table failed to load.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from tableprov.common.config_models import BatchOptions, load_batch_options
from tableprov.common.errors import OperationError, TableValidationError
from tableprov.common.logger import Logger, get_logger
from tableprov.core.columns import plan_columns
from tableprov.core.context import BatchContext, BatchCounters
from tableprov.core.records import ActionPlan, TableRecord, TableStatus, build_records
from tableprov.directives.scanner import DEFAULT_DELIMITER
from tableprov.plugins.api import Platform

__all__ = ["BatchStatus", "BatchResult", "provision"]

# A failure at any of these steps means the table never loaded
LOAD_STEPS = frozenset({"schema", "drop", "staging", "load"})


# ============================================================================
# Batch result
# ============================================================================

class BatchStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Outcome of one provision() call"""
    records: List[TableRecord]
    counters: BatchCounters = field(default_factory=BatchCounters)
    elapsed: float = 0.0
    dry_run: bool = False

    @property
    def excluded(self) -> List[Tuple[str, str]]:
        return [(r.label, r.error or "") for r in self.records if r.status is TableStatus.EXCLUDED]

    @property
    def failed(self) -> List[TableRecord]:
        return [r for r in self.records if r.status is TableStatus.FAILED]

    @property
    def completed(self) -> int:
        if self.dry_run:
            return sum(1 for r in self.records if r.status is not TableStatus.EXCLUDED)
        return sum(1 for r in self.records if r.status is TableStatus.DONE)

    @property
    def status(self) -> BatchStatus:
        total = len(self.records)
        if self.completed == total:
            return BatchStatus.SUCCEEDED
        if self.completed == 0:
            return BatchStatus.FAILED
        return BatchStatus.PARTIAL

    def summary(self) -> str:
        c = self.counters
        text = (
            f"{self.status.value}: {self.completed} of {len(self.records)} table(s) completed "
            f"(loaded={c.loaded} appended={c.appended} net_new={c.net_new} promoted={c.promoted} "
            f"persisted={c.persisted} excluded={c.excluded} failed={c.failed})"
        )
        return f"{text} [dry run]" if self.dry_run else text


# ============================================================================
# Step helpers
# ============================================================================

def _call(ctx: BatchContext, record: TableRecord, step: str, fn: Callable[[], Any], detail: str = "") -> Any:
    """Run one platform call for a table, wrapping any failure as OperationError."""
    ctx.log.table_step(record.label, step, detail)
    try:
        return fn()
    except OperationError:
        raise
    except Exception as e:
        raise OperationError(step, record.qualified_destination, cause=e) from e


def _discard_staged(ctx: BatchContext, record: TableRecord) -> None:
    """Best-effort drop of a table's staged intermediate."""
    if not record.staged_name or not ctx.staging_active:
        return
    staged, record.staged_name = record.staged_name, None
    try:
        ctx.platform.drop_table(ctx.staging(), staged)
    except Exception as e:
        ctx.log.warning(f"Could not drop staged table {staged}: {e}")


def _same_table(record: TableRecord) -> bool:
    source = (record.source_namespace.lower(), record.source_name.lower())
    return source == (record.destination_namespace.lower(), record.destination_name.lower())


def _validate(platform: Platform, record: TableRecord) -> None:
    """
    Per-table preconditions checked before any mutation.

    Raises:
        TableValidationError: missing source, source dropped as its own destination,
            unassigned or wrong-engine namespace
    """
    if not platform.table_exists(record.source_namespace, record.source_name):
        raise TableValidationError(
            record.label, f"source table {record.qualified_source} does not exist", "missing_source"
        )
    if not record.requires_staging and _same_table(record):
        # The destination is dropped before the load reads the source
        raise TableValidationError(
            record.label,
            f"source {record.qualified_source} is also the destination of a {record.plan.value} load",
            "source_is_destination",
        )
    namespace = record.destination_namespace
    engine = platform.namespace_engine(namespace)
    if engine is None:
        raise TableValidationError(
            record.label, f"unassigned namespace {namespace}", "unassigned_namespace"
        )
    if engine != platform.required_engine:
        raise TableValidationError(
            record.label,
            f"namespace {namespace} is assigned to engine {engine}, requires {platform.required_engine}",
            "wrong_engine",
        )


# ============================================================================
# Phase 1: load, append, promote
# ============================================================================

def _load(ctx: BatchContext, record: TableRecord) -> None:
    platform = ctx.platform
    dest_ns, dest = record.destination_namespace, record.destination_name

    columns = _call(ctx, record, "schema", lambda: plan_columns(
        platform.schema_lookup(record.source_namespace, record.source_name), ctx.options
    ))

    if record.requires_staging:
        load_ns = _call(ctx, record, "staging", ctx.staging)
        load_name = ctx.staged_name(record.index, dest)
        record.staged_name = load_name
    else:
        # Direct loads and slow promotes replace the destination up front
        _call(ctx, record, "drop", lambda: platform.drop_table(dest_ns, dest), record.qualified_destination)
        load_ns, load_name = dest_ns, dest

    rows = _call(
        ctx, record, "load",
        lambda: platform.create_table(load_ns, load_name, columns, record.source_namespace, record.source_name),
        f"{load_ns}.{load_name}",
    )
    ctx.counters.loaded += 1
    record.advance(TableStatus.STAGED if record.requires_staging else TableStatus.LOADED)
    ctx.log.dev(f"  loaded {rows} row(s) into {load_ns}.{load_name}")


def _append(ctx: BatchContext, record: TableRecord) -> None:
    platform = ctx.platform
    dest_ns, dest = record.destination_namespace, record.destination_name
    staging = ctx.staging()

    existed = _call(ctx, record, "append", lambda: platform.table_exists(dest_ns, dest))
    rows = _call(
        ctx, record, "append",
        lambda: platform.append_rows(dest_ns, dest, staging, record.staged_name, record.append.value),
        f"mode={record.append.value}",
    )
    _discard_staged(ctx, record)
    ctx.counters.appended += 1
    if not existed:
        ctx.counters.net_new += 1
    record.advance(TableStatus.APPENDED)
    ctx.log.dev(f"  appended {rows} row(s) into {record.qualified_destination}")


def _promote(ctx: BatchContext, record: TableRecord) -> None:
    platform = ctx.platform
    dest_ns, dest = record.destination_namespace, record.destination_name

    if record.plan is ActionPlan.LOAD_THEN_PROMOTE_FAST:
        staging = ctx.staging()
        if _call(ctx, record, "promote", lambda: platform.table_exists(dest_ns, dest)):
            _call(ctx, record, "promote", lambda: platform.drop_table(dest_ns, dest), f"drop {record.qualified_destination}")
        staged = record.staged_name
        _call(ctx, record, "promote", lambda: platform.promote_table(staged, staging, dest_ns, new_name=dest),
              f"{staging}.{staged} -> {record.qualified_destination}")
        record.staged_name = None
    else:
        _call(ctx, record, "promote", lambda: platform.promote_table(dest, dest_ns, dest_ns),
              record.qualified_destination)
    ctx.counters.promoted += 1
    record.advance(TableStatus.PROMOTED)


def _run_table(ctx: BatchContext, record: TableRecord) -> None:
    ctx.log.table_start(record.label, record.plan.value)
    try:
        _load(ctx, record)
        if record.plan is ActionPlan.LOAD_THEN_APPEND:
            _append(ctx, record)
        elif record.plan.promotes:
            _promote(ctx, record)
    except OperationError as e:
        record.fail(e.step, str(e.cause or e))
        ctx.counters.failed += 1
        if e.step in LOAD_STEPS:
            ctx.load_failed = True
        ctx.log.table_failed(record.label, e.step, record.error or "")
        _discard_staged(ctx, record)
        return

    if record.status is not TableStatus.PROMOTED or not ctx.options.persist:
        final = record.status.value
        record.advance(TableStatus.DONE)
        ctx.log.table_success(record.label, final)


# ============================================================================
# Phase 2: persist
# ============================================================================

def _persist(ctx: BatchContext, record: TableRecord) -> None:
    platform = ctx.platform
    ns, name = record.destination_namespace, record.destination_name

    if record.partition:
        ctx.note(f"{record.qualified_destination} persisted with partition=({' '.join(record.partition)})", record.label)
    if record.order:
        ctx.note(f"{record.qualified_destination} persisted with orderby=({' '.join(record.order)})", record.label)

    try:
        _call(ctx, record, "persist", lambda: platform.delete_backing_file(ns, name), "delete backing file")
        path = _call(
            ctx, record, "persist",
            lambda: platform.persist_table(ns, name, record.partition or None, record.order or None),
        )
    except OperationError as e:
        record.fail(e.step, str(e.cause or e))
        ctx.counters.failed += 1
        ctx.log.table_failed(record.label, e.step, record.error or "")
        return

    ctx.counters.persisted += 1
    record.advance(TableStatus.PERSISTED)
    record.advance(TableStatus.DONE)
    ctx.log.table_success(record.label, f"persisted to {path}")


def _persist_phase(ctx: BatchContext, records: List[TableRecord]) -> None:
    promoted = [r for r in records if r.status is TableStatus.PROMOTED]
    if not ctx.options.persist or not promoted:
        return
    if ctx.load_failed and not ctx.persist_started:
        ctx.log.warning(
            f"Persistence skipped for {len(promoted)} promoted table(s): at least one table failed to load"
        )
        for record in promoted:
            record.advance(TableStatus.DONE)
        return

    ctx.log.section("PERSIST")
    ctx.persist_started = True
    for record in promoted:
        _persist(ctx, record)


# ============================================================================
# Entry point
# ============================================================================

def provision(
    platform: Platform,
    sources: str,
    destinations: Optional[str] = None,
    options: Union[BatchOptions, Mapping[str, Any], None] = None,
    log: Optional[Logger] = None,
    delimiter: str = DEFAULT_DELIMITER,
    dry_run: bool = False,
) -> BatchResult:
    """
    Provision source tables into destination tables.

    Args:
        platform: Connected target platform
        sources: Source table list, e.g. "raw.orders raw.customers" or "raw.*"
        destinations: Destination directives, e.g. "t1 t2(partition=(region) promote=yes)"
        options: Batch options (model or mapping)
        dry_run: Parse, validate and report plans without mutating anything

    Raises:
        ConfigError: invalid batch options (before any platform call)
        DirectiveParseError: malformed directives (before any mutation)
    """
    log = log or get_logger()
    if not isinstance(options, BatchOptions):
        options = load_batch_options(options)

    warning = options.threshold_warning()
    if warning:
        log.warning(warning)

    t0 = time.perf_counter()
    records = build_records(platform, sources, destinations, options, log=log, delimiter=delimiter)
    result = BatchResult(records=records, dry_run=dry_run)

    with BatchContext(platform, options, log) as ctx:
        result.counters = ctx.counters
        log.batch_start(len(records))

        for record in records:
            for msg in record.notes:
                ctx.note(msg, record.label)
            try:
                _validate(platform, record)
            except TableValidationError as e:
                record.exclude(e.reason)
                ctx.counters.excluded += 1
                log.table_excluded(record.label, e.reason, e.kind)
            except Exception as e:
                record.fail("validate", str(e))
                ctx.counters.failed += 1
                log.table_failed(record.label, "validate", str(e))

        active = [r for r in records if r.status is TableStatus.PENDING]
        if dry_run:
            for record in active:
                log.table_start(record.label, record.plan.value)
                log.info(f"  plan: {record.plan.value}")
        else:
            for record in active:
                _run_table(ctx, record)
            _persist_phase(ctx, records)

    result.elapsed = time.perf_counter() - t0
    log.batch_summary(result.counters.as_dict(), result.status.value, result.elapsed)
    return result
