"""
Settings schema (``bundle_config.schema``).

Frozen dataclasses produced by the loader.  The kernel never sees these
directly; ``bundle_config.bridges`` turns them into kernel objects.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class KernelSettings:
    """Runtime settings for one kernel instance."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    log_level: str = "INFO"
    location_codes: tuple[str, ...] = ()
    recompute_order_status: bool = True
    checksum: str = ""

    def engine_options(self) -> dict:
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
        }
