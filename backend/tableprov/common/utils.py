from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

__all__ = [
    "safe_mkdir",
    "load_yaml",
    "expand_env",
    "set_dotted",
    "sanitize_name",
]

_DOLLAR = re.compile(r"\$\{([^}]+)\}")


def safe_mkdir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def load_yaml(fp: Path) -> Dict[str, Any]:
    return yaml.safe_load(fp.read_text(encoding="utf-8")) or {}


def expand_env(obj: Any, env: Optional[Mapping[str, Any]] = None) -> Any:
    """Recursively expand ${VAR} in strings from the environment."""
    env = os.environ if env is None else env
    if isinstance(obj, str):
        return _DOLLAR.sub(lambda m: str(env.get(m.group(1), "")), obj)
    if isinstance(obj, Mapping):
        return {k: expand_env(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [expand_env(v, env) for v in obj]
    return obj


def set_dotted(config: Dict[str, Any], dotted_key: str, value: str) -> None:
    """Set a value in nested dict using dotted notation"""
    # Parse as YAML so "true" / "32" get proper types
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed_value = value

    parts = dotted_key.split(".")
    current = config
    for part in parts[:-1]:
        if part not in current or not isinstance(current[part], dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = parsed_value


def sanitize_name(name: str) -> str:
    """Make a valid SQL identifier from arbitrary names."""
    if not name:
        return "table"
    s = re.sub(r"[^A-Za-z0-9_]", "_", str(name).strip())
    # Identifier cannot start with a digit
    if s and s[0].isdigit():
        s = "t_" + s
    return s or "table"
