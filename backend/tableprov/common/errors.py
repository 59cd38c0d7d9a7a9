# tableprov/common/errors.py
"""
Error taxonomy for a provisioning batch

Fatal (raised before any platform call):
  - DirectiveParseError: malformed directive text
  - ConfigError: invalid batch or platform option

Per-table (recorded, batch continues):
  - TableValidationError: a table fails a precondition and is excluded
  - OperationError: a platform call failed; remaining steps are skipped
"""
from __future__ import annotations

from typing import Optional


class ProvisionError(Exception):
    """Base class for all provisioning errors."""
    pass


class DirectiveParseError(ProvisionError):
    """Directive text could not be tokenized or scanned."""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class ConfigError(ProvisionError):
    """Invalid batch-level or platform configuration."""
    pass


class TableValidationError(ProvisionError):
    """A named table failed a precondition and is excluded from the batch."""

    # kind: missing_source | unassigned_namespace | wrong_engine
    def __init__(self, table: str, reason: str, kind: str = "invalid"):
        self.table = table
        self.reason = reason
        self.kind = kind
        super().__init__(f"{table}: {reason}")


class OperationError(ProvisionError):
    """A platform call failed for one table."""

    def __init__(self, step: str, table: str, cause: Optional[BaseException] = None, message: str = ""):
        self.step = step
        self.table = table
        self.cause = cause
        detail = message or (str(cause) if cause is not None else "operation failed")
        super().__init__(f"{step} failed for {table}: {detail}")
