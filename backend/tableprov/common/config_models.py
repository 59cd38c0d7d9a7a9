"""
Pydantic models for provisioning configuration

Provides type-safe, validated configuration models for:
- Platform connection (engine type, database path, namespaces, aliases)
- Batch options (promote, persist, append, column handling)
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from tableprov.common.errors import ConfigError


# ============================================================================
# Enums
# ============================================================================

class AppendMode(str, Enum):
    """How a staged table is appended into its destination"""
    NONE = "none"
    NORMAL = "normal"   # fail when columns are incompatible
    FORCE = "force"     # insert matching columns, cast where needed

    @classmethod
    def parse(cls, value: Any) -> "AppendMode":
        text = str(value if value is not None else "none").strip().lower()
        if text in ("", "no", "false", "0"):
            return cls.NONE
        if text in ("yes", "true", "1"):
            return cls.NORMAL
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"append must be one of none, normal, force (got {value!r})") from None


DEFAULT_WIDEN_THRESHOLD = 16

_TRUE = ("yes", "y", "true", "1", "on")
_FALSE = ("no", "n", "false", "0", "off")


def parse_flag(value: Any) -> bool:
    """Parse yes/no style flags used in directives and --set overrides."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"expected yes/no, got {value!r}")


# ============================================================================
# Platform Configuration
# ============================================================================

class NamespaceConfig(BaseModel):
    """A namespace declared in the configuration"""
    engine: Optional[str] = Field(default=None, description="Backing engine; defaults to the platform's own")
    create: bool = Field(default=True, description="Create the namespace on connect if missing")


class PlatformConfig(BaseModel):
    """Connection and catalog settings for the target platform"""
    type: str = Field(default="duckdb", description="Platform engine type (duckdb, sqlite or a plugin name)")
    path: str = Field(default=":memory:", description="Database file path")
    persist_dir: str = Field(default="./out/persist", description="Root directory for persisted tables")
    read_only: bool = Field(default=False)
    namespaces: Dict[str, NamespaceConfig] = Field(default_factory=dict, description="Declared namespaces")
    aliases: Dict[str, str] = Field(default_factory=dict, description="Logical alias -> physical namespace")
    init_sql: List[str] = Field(default_factory=list, description="Statements run after connecting")
    staging_prefix: str = Field(default="_staging", description="Prefix for batch staging namespaces")

    model_config = {"extra": "allow"}

    @field_validator("namespaces", mode="before")
    @classmethod
    def accept_engine_shorthand(cls, v: Any) -> Any:
        """Allow `namespaces: {public: duckdb}` as well as the mapping form."""
        if isinstance(v, Mapping):
            return {k: ({"engine": e} if isinstance(e, str) else (e or {})) for k, e in v.items()}
        if isinstance(v, list):
            return {str(k): {} for k in v}
        return v


# ============================================================================
# Batch Options
# ============================================================================

class BatchOptions(BaseModel):
    """Batch-wide provisioning options"""
    promote: bool = Field(default=False, description="Promote every table unless a directive overrides it")
    persist: bool = Field(default=False, description="Persist promoted tables to durable storage")
    append: AppendMode = Field(default=AppendMode.NONE, description="Batch default append mode")
    preserve_labels: bool = Field(default=False, description="Keep source column labels")
    lowercase_columns: bool = Field(default=False, description="Lowercase column names on create")
    fast_promote: bool = Field(default=True, description="Load into staging, then promote")
    widen_text: bool = Field(default=True, description="Widen long fixed-width text columns")
    widen_threshold: int = Field(default=DEFAULT_WIDEN_THRESHOLD, gt=0, description="Byte length above which text is widened")
    default_namespace: str = Field(default="public", description="Destination namespace when none is given")
    source_namespace: Optional[str] = Field(default=None, description="Source namespace when none is given (defaults to default_namespace)")
    notes: bool = Field(default=True, description="Emit informational NOTE lines")

    model_config = {"extra": "forbid"}

    @field_validator("promote", "persist", "preserve_labels", "lowercase_columns",
                     "fast_promote", "widen_text", "notes", mode="before")
    @classmethod
    def parse_flags(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_flag(v)
        return v

    @field_validator("append", mode="before")
    @classmethod
    def parse_append(cls, v: Any) -> Any:
        if isinstance(v, AppendMode):
            return v
        return AppendMode.parse(v)

    @field_validator("widen_threshold", mode="before")
    @classmethod
    def reject_non_integer(cls, v: Any) -> Any:
        if isinstance(v, bool) or isinstance(v, float):
            raise ValueError(f"widen_threshold must be an integer (got {v!r})")
        if isinstance(v, str):
            text = v.strip()
            if not text.lstrip("-").isdigit():
                raise ValueError(f"widen_threshold must be an integer (got {v!r})")
            return int(text)
        return v

    def threshold_warning(self) -> Optional[str]:
        if self.widen_threshold < DEFAULT_WIDEN_THRESHOLD:
            return (
                f"widen_threshold={self.widen_threshold} is below {DEFAULT_WIDEN_THRESHOLD}; "
                "more text columns will be widened and table size will increase"
            )
        return None


# ============================================================================
# Utility Functions
# ============================================================================

def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def load_batch_options(raw: Optional[Mapping[str, Any]] = None, **overrides: Any) -> BatchOptions:
    """
    Validate batch options from a mapping plus keyword overrides

    Raises:
        ConfigError: If any option is invalid
    """
    data: Dict[str, Any] = dict(raw or {})
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return BatchOptions(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid batch options: {_format_errors(e)}") from e


def load_platform_config(raw: Optional[Mapping[str, Any]] = None) -> PlatformConfig:
    """
    Validate platform configuration

    Raises:
        ConfigError: If the configuration is invalid
    """
    try:
        return PlatformConfig(**dict(raw or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid platform config: {_format_errors(e)}") from e
