"""
Config -> Kernel Bridges.

Turns ``KernelSettings`` into ready kernel objects.  These live in
bundle_config (the producer) because the kernel must NEVER import
bundle_config.

Usage:
    from bundle_config import get_active_settings
    from bundle_config.bridges import build_orchestrator

    orchestrator = build_orchestrator(get_active_settings())
"""

from __future__ import annotations

from sqlalchemy.orm import sessionmaker

from bundle_config.schema import KernelSettings
from bundle_kernel.db.engine import create_kernel_engine, create_tables
from bundle_kernel.db.immutability import register_immutability_listeners
from bundle_kernel.domain.clock import Clock
from bundle_kernel.logging_config import configure_logging
from bundle_kernel.services.bundle_orchestrator import BundleOrchestrator


def build_session_factory(settings: KernelSettings, create_schema: bool = True) -> sessionmaker:
    """Engine + sessionmaker for the configured database."""
    engine = create_kernel_engine(settings.database_url, **settings.engine_options())
    if create_schema:
        create_tables(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def build_orchestrator(
    settings: KernelSettings,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> BundleOrchestrator:
    """Configure logging, guards and storage, and return the facade."""
    configure_logging(level=settings.log_level)
    register_immutability_listeners()
    return BundleOrchestrator(
        build_session_factory(settings, create_schema=create_schema),
        clock=clock,
        location_codes=settings.location_codes,
        recompute_order_status=settings.recompute_order_status,
    )
