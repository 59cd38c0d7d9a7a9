from __future__ import annotations
from importlib import import_module
from importlib.metadata import entry_points
from typing import Any, Dict, Mapping, Type, Union

from tableprov.common.config_models import PlatformConfig, load_platform_config
from tableprov.common.logger import get_logger
from .api import Platform

# Registry
PLATFORMS: Dict[str, Type[Platform]] = {}
_bootstrapped = False


# ---------------- Registration decorator ----------------
def register_platform(cls: Type[Platform]):
    """Decorator for platform engines (DuckDB, SQLite, ...)."""
    PLATFORMS[cls.name] = cls
    return cls


# ---------------- Entry point discovery ----------------
def _discover_entrypoints(group: str) -> None:
    """Allow third-party packages to register platforms via entry points."""
    for ep in entry_points().select(group=group):
        try:
            ep.load()  # importing triggers @register_platform
        except Exception as e:
            get_logger().warning(f"Failed to load platform plugin {ep.name}: {e}")


# ---------------- Bootstrap built-ins + third-party ----------------
_BUILTIN_MODULES = [
    "tableprov.engines.duckdb_engine",
    "tableprov.engines.sqlite_engine",
]


def bootstrap_discovery() -> None:
    """Import built-in platforms and discover external ones."""
    global _bootstrapped
    for mod in _BUILTIN_MODULES:
        import_module(mod)
    _discover_entrypoints("tableprov.platforms")
    _bootstrapped = True


# ---------------- Platform picker ----------------
def get_platform(config: Union[PlatformConfig, Mapping[str, Any], None] = None) -> Platform:
    """Instantiate the platform named by the config's 'type' (default duckdb)."""
    if not _bootstrapped:
        bootstrap_discovery()
    cfg = config if isinstance(config, PlatformConfig) else load_platform_config(config)
    platform_type = cfg.type.strip().lower()
    cls = PLATFORMS.get(platform_type)
    if cls is None:
        raise ValueError(f"No platform registered for type {platform_type!r} (known: {', '.join(sorted(PLATFORMS))})")
    return cls(cfg)
