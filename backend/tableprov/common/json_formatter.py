"""
JSON-Lines formatter for structured provisioning output

Used when the CLI runs with --json so a wrapping tool (scheduler, GUI, CI job)
can parse per-table results without scraping text.

Output format: One JSON object per line (JSON-Lines / NDJSON)
{
    "timestamp": "2026-10-18T10:30:00.123+00:00",
    "level": "info",
    "category": "table",
    "message": "[2/5] sales.orders -> public.orders",
    "data": {...}  // Optional metadata
}
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from enum import Enum


class JSONLogLevel(str, Enum):
    """JSON log levels matching standard severity"""
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class JSONLogCategory(str, Enum):
    """Log categories for semantic grouping"""
    BATCH = "batch"
    TABLE = "table"
    DIRECTIVE = "directive"
    PLATFORM = "platform"
    SYSTEM = "system"


class JSONLogger:
    """
    Structured JSON logger that outputs one JSON object per line.

    Each log entry includes:
    - timestamp: ISO 8601 format with timezone
    - level: debug, info, success, warning, error
    - category: batch, table, directive, platform or system
    - message: Human-readable message
    - data: Optional structured metadata
    """

    def __init__(self, output_stream=None):
        self.output_stream = output_stream or sys.stdout

    def _emit(
        self,
        level: JSONLogLevel,
        category: JSONLogCategory,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "category": category.value,
            "message": message,
        }
        if data:
            entry["data"] = data

        try:
            self.output_stream.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
            self.output_stream.flush()
        except (TypeError, ValueError) as e:
            # Fallback to stderr if JSON serialization fails
            sys.stderr.write(f"JSON logging error: {e}\n")
            sys.stderr.write(f"Message: {message}\n")

    # ========== STANDARD LOG LEVELS ==========

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.DEBUG, category, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.INFO, category, message, data)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.SUCCESS, category, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.WARNING, category, message, data)

    def error(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.ERROR, category, message, data)

    # ========== BATCH-SPECIFIC METHODS ==========

    def batch_start(self, table_count: int, data: Optional[Dict[str, Any]] = None) -> None:
        """Log batch start"""
        batch_data: Dict[str, Any] = {"tables": table_count}
        if data:
            batch_data.update(data)
        self._emit(JSONLogLevel.INFO, JSONLogCategory.BATCH, f"Provisioning {table_count} table(s)", batch_data)

    def batch_summary(self, counts: Dict[str, int], status: str, elapsed: float) -> None:
        """Log batch summary"""
        summary_data: Dict[str, Any] = dict(counts)
        summary_data["status"] = status
        summary_data["elapsed_seconds"] = round(elapsed, 2)
        level = JSONLogLevel.SUCCESS if status == "succeeded" else JSONLogLevel.WARNING
        if status == "failed":
            level = JSONLogLevel.ERROR
        self._emit(level, JSONLogCategory.BATCH, "Batch Summary", summary_data)

    # ========== TABLE-SPECIFIC METHODS ==========

    def table_start(self, label: str, plan: str, data: Optional[Dict[str, Any]] = None) -> None:
        table_data: Dict[str, Any] = {"table": label, "plan": plan}
        if data:
            table_data.update(data)
        self._emit(JSONLogLevel.INFO, JSONLogCategory.TABLE, label, table_data)

    def table_step(self, label: str, step: str, detail: str = "") -> None:
        step_data = {"table": label, "step": step}
        if detail:
            step_data["detail"] = detail
        self._emit(JSONLogLevel.DEBUG, JSONLogCategory.TABLE, f"{label}: {step}", step_data)

    def table_success(self, label: str, status: str) -> None:
        self._emit(
            JSONLogLevel.SUCCESS,
            JSONLogCategory.TABLE,
            f"{label}: {status}",
            {"table": label, "status": status},
        )

    def table_failed(self, label: str, step: str, error: str) -> None:
        self._emit(
            JSONLogLevel.ERROR,
            JSONLogCategory.TABLE,
            f"{label} FAILED at {step}: {error}",
            {"table": label, "step": step, "error": error},
        )

    def table_excluded(self, label: str, reason: str, kind: str) -> None:
        self._emit(
            JSONLogLevel.WARNING,
            JSONLogCategory.TABLE,
            f"{label} excluded: {reason}",
            {"table": label, "reason": reason, "kind": kind},
        )

    def note(self, message: str, table: str = "") -> None:
        self._emit(JSONLogLevel.INFO, JSONLogCategory.DIRECTIVE, message, {"table": table} if table else None)

    # ========== PLATFORM LOGGING ==========

    def platform_connect(self, platform: str, path: str) -> None:
        self._emit(
            JSONLogLevel.INFO,
            JSONLogCategory.PLATFORM,
            f"{platform.upper()} connection opened: {path}",
            {"platform": platform, "path": path},
        )

    def staging(self, action: str, namespace: str) -> None:
        self._emit(
            JSONLogLevel.DEBUG,
            JSONLogCategory.PLATFORM,
            f"Staging namespace {action}: {namespace}",
            {"namespace": namespace, "action": action},
        )
