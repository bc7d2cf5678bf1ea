"""
bundle_config -- single public entrypoint for kernel settings.

Responsibility:
    ``get_active_settings()`` is the only way to obtain settings at
    runtime.  It reads the shipped ``defaults.yaml``, layers an optional
    override file on top, and returns a frozen ``KernelSettings``.

Architecture position:
    Configuration sits above ``bundle_kernel``.  The kernel MUST NEVER
    import from ``bundle_config``; ``bundle_config.bridges`` translates
    settings into kernel objects.

Audit relevance:
    Every call logs ``bundle_config_loaded`` with the settings checksum,
    so a run can be tied to the exact configuration it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bundle_config.loader import DEFAULTS_PATH, load_yaml_file, merge_settings, parse_settings
from bundle_config.schema import KernelSettings

_logger = logging.getLogger("bundle_kernel.config")


def get_active_settings(path: Path | str | None = None) -> KernelSettings:
    """
    Load the active settings.

    Args:
        path: Optional YAML file whose sections override the defaults.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: a value has the wrong type or a section is unknown.
    """
    data = merge_settings(load_yaml_file(DEFAULTS_PATH), {})
    source = str(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))
        source = str(path)

    settings = parse_settings(data)
    _logger.info(
        "bundle_config_loaded",
        extra={
            "source": source,
            "checksum": settings.checksum,
            "location_code_count": len(settings.location_codes),
            "recompute_order_status": settings.recompute_order_status,
        },
    )
    return settings


__all__ = ["KernelSettings", "get_active_settings"]
