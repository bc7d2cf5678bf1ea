"""
Pytest fixtures for the bundle kernel test suite.

Provides:
- In-memory SQLite sessions for domain service tests (one session, real
  flushes, rolled back at teardown)
- File-backed SQLite session factories for orchestrator, concurrency and
  crash tests (real commits, fresh database per test)
- Deterministic clock and order/bundle builders
- Captured structured logs

Environment Variables:
- BUNDLE_TEST_DATABASE_URL: run the committing fixtures against another
  database (e.g. PostgreSQL) instead of a temporary SQLite file.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from bundle_kernel.db.engine import create_kernel_engine, create_tables, drop_tables
from bundle_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from bundle_kernel.domain.clock import DeterministicClock
from bundle_kernel.domain.dtos import NewBundleSpec
from bundle_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from bundle_kernel.services.bundle_orchestrator import BundleOrchestrator
from bundle_kernel.services.cut_order_service import CutOrderService

LOCATION_CODES = tuple(f"C{i}" for i in range(1, 11))
START_TIME = datetime(2024, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def captured_logs():
    """
    Capture bundle_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.apply_bundle_action(...)
            logs = captured_logs()
            assert any(r["message"] == "bundle_action_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("bundle_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    One session on a fresh in-memory database.

    Services flush into it; nothing is committed.  Teardown rolls back and
    disposes the engine.
    """
    engine = create_kernel_engine("sqlite:///:memory:")
    create_tables(engine)
    sess = Session(bind=engine, expire_on_commit=False)
    yield sess
    sess.rollback()
    sess.close()
    engine.dispose()


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """
    A sessionmaker whose sessions really commit.

    Defaults to a SQLite file under tmp_path so several sessions see each
    other's committed work.  Tests using it must not hold two write
    transactions open at once on SQLite.
    """
    url = os.environ.get("BUNDLE_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'bundles.db'}"
    engine = create_kernel_engine(url)
    drop_tables(engine)
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


# =============================================================================
# Orchestrator and builders
# =============================================================================


@pytest.fixture
def orchestrator(session_factory, deterministic_clock) -> BundleOrchestrator:
    return BundleOrchestrator(
        session_factory,
        clock=deterministic_clock,
        location_codes=LOCATION_CODES,
    )


@pytest.fixture
def create_order(session, deterministic_clock):
    """
    Factory fixture: create an order in the in-memory ``session``.

    Returns the order id.  ``sheets`` is one int per bundle.
    """

    def _create(sheets=(100, 50), code="1001", location="C1", declared=None):
        return CutOrderService(session, LOCATION_CODES).create(
            code,
            date(2024, 3, 1),
            [NewBundleSpec(sheets=s) for s in sheets],
            now=deterministic_clock.now(),
            default_location_code=location,
            declared_bundle_count=declared,
        )

    return _create
