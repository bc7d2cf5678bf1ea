"""
Settings Loader (``bundle_config.loader``).

Responsibility
--------------
Loads YAML settings files, layers an override file on top of the shipped
defaults, and parses the result into a frozen ``KernelSettings``.  The
single public entry point is ``bundle_config.get_active_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from bundle_config.schema import KernelSettings

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = ("database", "logging", "locations", "orders")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    unknown = set(override) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    merged = {name: dict(base.get(name) or {}) for name in _SECTIONS}
    for name, section in override.items():
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ValueError(f"Settings section {name!r} must be a mapping")
        merged[name].update(section)
    return merged


def _bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be true or false, got {value!r}")


def _int(value: Any, key: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    raise ValueError(f"{key} must be a non-negative integer, got {value!r}")


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """Parse a merged settings dict into ``KernelSettings``."""
    database = data.get("database") or {}
    logging_section = data.get("logging") or {}
    locations = data.get("locations") or {}
    orders = data.get("orders") or {}

    url = database.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ValueError("database.url is required")

    codes = locations.get("codes") or []
    if not isinstance(codes, list):
        raise ValueError("locations.codes must be a list")

    return KernelSettings(
        database_url=url.strip(),
        echo=_bool(database.get("echo", False), "database.echo"),
        pool_size=_int(database.get("pool_size", 20), "database.pool_size"),
        max_overflow=_int(database.get("max_overflow", 10), "database.max_overflow"),
        pool_timeout=_int(database.get("pool_timeout", 30), "database.pool_timeout"),
        log_level=str(logging_section.get("level", "INFO")).upper(),
        location_codes=tuple(str(c).strip().upper() for c in codes if str(c).strip()),
        recompute_order_status=_bool(
            orders.get("recompute_order_status", True),
            "orders.recompute_order_status",
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the merged settings."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
