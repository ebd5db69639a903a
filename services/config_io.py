"""Config file I/O for JSON, YAML and TOML.

Format is always inferred from the file extension:
  .json        → JSON
  .yaml / .yml → YAML  (pyyaml)
  .toml        → TOML  (read: stdlib tomllib; write: tomli-w)
"""
from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml

_YAML_EXTS = {".yaml", ".yml"}
_TOML_EXTS = {".toml"}

_CONFIG_NAMES = ["config.json", "config.yaml", "config.yml", "config.toml"]

# Keys whose values are credentials; matched as substrings of lower-cased names.
_SENSITIVE_KEY_PATTERNS = ("token", "secret", "password")


def find_config(directory: Path, override: Path | None = None) -> Path | None:
    """Return *override* if it exists, else the first config file in *directory*."""
    if override is not None:
        return override if override.is_file() else None
    for name in _CONFIG_NAMES:
        p = directory / name
        if p.is_file():
            return p
    return None


def load_config(path: Path) -> dict[str, Any]:
    """Load a config file; format is inferred from the file extension."""
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    if ext in _TOML_EXTS:
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Path) -> None:
    """Save *data* to *path*; format is inferred from the file extension."""
    path.parent.mkdir(parents=True, exist_ok=True)
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
        return
    if ext in _TOML_EXTS:
        import tomli_w
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def collect_sensitive(obj: Any, found: set[str] | None = None) -> set[str]:
    """Recursively gather credential values (passwords, tokens) from raw config."""
    if found is None:
        found = set()
    if isinstance(obj, dict):
        for k, v in obj.items():
            if isinstance(v, str) and v and any(p in str(k).lower() for p in _SENSITIVE_KEY_PATTERNS):
                found.add(v)
            else:
                collect_sensitive(v, found)
    elif isinstance(obj, list):
        for item in obj:
            collect_sensitive(item, found)
    return found
