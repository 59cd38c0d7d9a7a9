"""
Logging module for provisioning batches with dev/user modes

User mode: one line per table plus the batch summary
Dev mode: adds per-step platform calls, staging names and resolved plans
Debug mode: adds generated SQL and directive normalization details
JSON mode: Structured JSON-Lines output for external integrations
"""
from __future__ import annotations

import sys
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

_MAGENTA = "\033[35m"


class LogLevel(Enum):
    """Logging levels"""
    USER = "user"      # Simple, clean logging for end users
    DEV = "dev"        # Detailed logging for developers
    DEBUG = "debug"    # Very verbose logging


class LogFormat(Enum):
    """Log output formats"""
    TEXT = "text"      # Human-readable text with colors
    JSON = "json"      # Structured JSON-Lines format


class Logger:
    """Provisioning logger with configurable verbosity and output format"""

    def __init__(self, level: LogLevel = LogLevel.USER, format: LogFormat = LogFormat.TEXT):
        self.configure(level, format)

    def configure(self, level: LogLevel, format: LogFormat) -> None:
        self.level = level
        self.format = format
        self._colors_enabled = sys.stdout.isatty() and format == LogFormat.TEXT
        self._json_logger = None

        if format == LogFormat.JSON:
            from tableprov.common.json_formatter import JSONLogger
            self._json_logger = JSONLogger()

    def _timestamp(self) -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _format_message(self, msg: str, prefix: str = "", color: str = "") -> str:
        ts = self._timestamp()
        if self._colors_enabled and color:
            return f"{color}[{ts}]{prefix} {msg}\033[0m"
        return f"[{ts}]{prefix} {msg}"

    @property
    def verbose(self) -> bool:
        return self.level in (LogLevel.DEV, LogLevel.DEBUG)

    # ========== USER-LEVEL LOGGING (Always shown) ==========

    def info(self, msg: str) -> None:
        """Info message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.info(msg)
        else:
            print(self._format_message(msg, color="\033[36m"))  # Cyan

    def success(self, msg: str) -> None:
        """Success message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.success(msg)
        else:
            print(self._format_message(msg, prefix=" [OK]", color="\033[32m"))  # Green

    def warning(self, msg: str) -> None:
        """Warning message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.warning(msg)
        else:
            print(self._format_message(msg, prefix=" [WARN]", color="\033[33m"))  # Yellow

    def error(self, msg: str) -> None:
        """Error message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.error(msg)
        else:
            print(self._format_message(msg, prefix=" [ERROR]", color="\033[31m"))  # Red

    def section(self, title: str) -> None:
        """Section header (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.info(title)
        else:
            line = "=" * 60
            print(f"\n{self._format_message(line, color=_MAGENTA)}")
            print(self._format_message(title.upper(), color=_MAGENTA + "\033[1m"))
            print(f"{self._format_message(line, color=_MAGENTA)}\n")

    # ========== DEV-LEVEL LOGGING (Shown in dev/debug modes) ==========

    def dev(self, msg: str) -> None:
        """Development message (shown only in dev/debug mode)"""
        if self.verbose:
            if self.format == LogFormat.JSON:
                self._json_logger.debug(msg)
            else:
                print(self._format_message(msg, prefix=" [DEV]", color="\033[90m"))  # Gray

    # ========== DEBUG-LEVEL LOGGING (Shown only in debug mode) ==========

    def debug(self, msg: str) -> None:
        """Debug message (shown only in debug mode)"""
        if self.level == LogLevel.DEBUG:
            if self.format == LogFormat.JSON:
                self._json_logger.debug(msg)
            else:
                print(self._format_message(msg, prefix=" [DEBUG]", color="\033[90m"))

    def sql(self, statement: str) -> None:
        """Log SQL sent to the platform"""
        if self.level == LogLevel.DEBUG:
            for line in statement.split("\n"):
                if line.strip():
                    self.debug(f"    {line}")

    # ========== TABLE LOGGING ==========

    def table_start(self, label: str, plan: str) -> None:
        """Log start of one table's provisioning"""
        if self.format == LogFormat.JSON:
            self._json_logger.table_start(label, plan)
        elif self.level == LogLevel.USER:
            print(self._format_message(label, color="\033[36m"))
        else:
            print(self._format_message(f"{label} ({plan})", color="\033[36m"))

    def table_step(self, label: str, step: str, detail: str = "") -> None:
        """Log a platform call for a table (dev/debug only)"""
        if not self.verbose:
            return
        if self.format == LogFormat.JSON:
            self._json_logger.table_step(label, step, detail)
        else:
            msg = f"  {step}"
            if detail:
                msg += f": {detail}"
            self.dev(msg)

    def table_success(self, label: str, status: str) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.table_success(label, status)
        else:
            self.success(f"{label} - {status}")

    def table_failed(self, label: str, step: str, error: str) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.table_failed(label, step, error)
        else:
            self.error(f"{label} FAILED at {step}: {error}")

    def table_excluded(self, label: str, reason: str, kind: str = "") -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.table_excluded(label, reason, kind)
        else:
            self.warning(f"{label} excluded: {reason}")

    def note(self, msg: str, table: str = "") -> None:
        """Informational NOTE line (directive resolution, persistence options)"""
        if self.format == LogFormat.JSON:
            self._json_logger.note(msg, table)
        else:
            print(self._format_message(msg, prefix=" [NOTE]"))

    # ========== BATCH SUMMARY ==========

    def batch_start(self, table_count: int) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.batch_start(table_count)
        else:
            self.info(f"Provisioning {table_count} table(s)")

    def batch_summary(self, counts: Dict[str, int], status: str, elapsed: float) -> None:
        """Log batch summary"""
        if self.format == LogFormat.JSON:
            self._json_logger.batch_summary(counts, status, elapsed)
            return
        line = "=" * 60
        print(f"\n{line}")
        print("BATCH SUMMARY")
        print(line)
        for key in ("loaded", "appended", "net_new", "promoted", "persisted"):
            print(f"  {key.replace('_', '-').capitalize() + ':':<15}{counts.get(key, 0)}")
        if counts.get("excluded", 0) > 0:
            print(f"  {'Excluded:':<15}{counts['excluded']}")
        if counts.get("failed", 0) > 0:
            print(f"  {'Failed:':<15}{counts['failed']}")
        print(f"  {'Status:':<15}{status}")
        print(f"  {'Elapsed Time:':<15}{elapsed:.2f}s")
        print(line)

    # ========== PLATFORM LOGGING ==========

    def platform_connect(self, platform: str, path: str) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.platform_connect(platform, path)
        elif self.level != LogLevel.USER:
            self.info(f"{platform.upper()} connection opened: {path}")

    def staging_created(self, namespace: str) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.staging("created", namespace)
        else:
            self.dev(f"Staging namespace created: {namespace}")

    def staging_released(self, namespace: str) -> None:
        if self.format == LogFormat.JSON:
            self._json_logger.staging("released", namespace)
        else:
            self.dev(f"Staging namespace released: {namespace}")


# Global logger instance
_logger: Optional[Logger] = None


def get_logger() -> Logger:
    """Get the global logger instance"""
    global _logger
    if _logger is None:
        _logger = Logger(LogLevel.USER)
    return _logger


def init_logger(level: LogLevel | str = LogLevel.USER, format: LogFormat | str = LogFormat.TEXT) -> Logger:
    """Initialize and return the global logger"""
    global _logger
    if isinstance(level, str):
        level = LogLevel(level.lower())
    if isinstance(format, str):
        format = LogFormat(format.lower())

    # Reconfigure in place so module-level references stay valid
    if _logger is None:
        _logger = Logger(level, format)
    else:
        _logger.configure(level, format)
    return _logger
