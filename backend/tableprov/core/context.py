"""
Batch execution context

Everything one provisioning batch shares lives here instead of in module
state: the platform handle, resolved options, the logger, the lazily created
staging namespace and the running counters. The staging namespace is
released when the context exits, whether the batch finished or raised.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, asdict, fields
from typing import Dict, Optional

from tableprov.common.config_models import BatchOptions
from tableprov.common.logger import Logger, get_logger
from tableprov.common.utils import sanitize_name
from tableprov.plugins.api import Platform


@dataclass
class BatchCounters:
    """Append-only batch totals (mergeable, one per worker if parallelized)."""
    loaded: int = 0
    appended: int = 0
    net_new: int = 0
    promoted: int = 0
    persisted: int = 0
    failed: int = 0
    excluded: int = 0

    def merge(self, other: "BatchCounters") -> "BatchCounters":
        return BatchCounters(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class BatchContext:
    """Per-batch state passed to every orchestrator step."""

    def __init__(self, platform: Platform, options: BatchOptions, log: Optional[Logger] = None):
        self.platform = platform
        self.options = options
        self.log = log or get_logger()
        self.token = uuid.uuid4().hex[:8]
        self.counters = BatchCounters()
        self.load_failed = False
        self.persist_started = False
        self._staging: Optional[str] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "BatchContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release_staging()

    @property
    def staging_active(self) -> bool:
        return self._staging is not None

    def staging(self) -> str:
        """Staging namespace for this batch, created on first use."""
        with self._lock:
            if self._staging is None:
                self._staging = self.platform.create_staging_namespace()
                self.log.staging_created(self._staging)
            return self._staging

    def release_staging(self) -> None:
        with self._lock:
            if self._staging is None:
                return
            handle, self._staging = self._staging, None
        try:
            self.platform.release_staging_namespace(handle)
            self.log.staging_released(handle)
        except Exception as e:
            self.log.warning(f"Failed to release staging namespace {handle}: {e}")

    def staged_name(self, index: int, destination_name: str) -> str:
        """Unique per-table name for the intermediate copy in staging."""
        return f"{sanitize_name(destination_name)}_{index}_{self.token}"

    def note(self, msg: str, table: str = "") -> None:
        if self.options.notes:
            self.log.note(msg, table)
