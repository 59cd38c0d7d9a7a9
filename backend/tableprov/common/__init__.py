from __future__ import annotations
# Re-export common things for convenience
from .utils import safe_mkdir, load_yaml
from .errors import (
    ProvisionError,
    DirectiveParseError,
    ConfigError,
    TableValidationError,
    OperationError,
)

__all__ = []
