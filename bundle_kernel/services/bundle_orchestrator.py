"""
Bundle Orchestrator - the caller-facing facade of the bundle kernel.

The Orchestrator ties together:
- Lifecycle validation (pure): shape of the action request
- BundleActionService: batch move / assign / use
- SplitService: plan + compare-and-swap commit
- CutOrderService: order creation with initial bundles
- CutOrderSelector + projection: the read model
- OrderStatusService: post-commit, best-effort order deactivation

Transaction boundary:
    Every public operation opens its own session from the injected
    ``sessionmaker`` and commits on success / rolls back on any exception.
    The order status recompute runs afterwards in a second session; its
    failures are logged as ``order_status_recompute_failed`` and never
    reach the caller.

Error mapping:
    Kernel exceptions propagate unchanged.  Inside split_bundle a lost lock
    race (SQLite "database is locked", PostgreSQL deadlock, serialization or
    lock-not-available) becomes SplitConflictError.  Otherwise SQLAlchemy
    OperationalError and TimeoutError become PersistenceError(retryable=True)
    and any other SQLAlchemyError becomes PersistenceError(retryable=False).

Write operations begin with begin_write(), so on SQLite concurrent writers
queue on the database lock at BEGIN rather than failing mid-transaction.
"""

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from bundle_kernel.db.engine import begin_write, is_lock_conflict, session_scope
from bundle_kernel.domain.clock import Clock, SystemClock
from bundle_kernel.domain.dtos import (
    BundleActionResult,
    BundleIdentifiers,
    CutOrder,
    HistoryEntry,
    Location,
    NewBundleSpec,
    OrderStatusChange,
    SplitResult,
)
from bundle_kernel.domain.lifecycle import (
    BundleAction,
    build_action_command,
    coerce_bundle_ids,
    normalize_location_code,
)
from bundle_kernel.domain.projection import project_cut_order
from bundle_kernel.exceptions import (
    CutOrderNotFoundError,
    PersistenceError,
    SplitConflictError,
)
from bundle_kernel.logging_config import LogContext, get_logger
from bundle_kernel.selectors.cut_order_selector import CutOrderSelector
from bundle_kernel.services.bundle_action_service import BundleActionService
from bundle_kernel.services.cut_order_service import CutOrderService
from bundle_kernel.services.location_service import LocationService
from bundle_kernel.services.order_status_service import OrderStatusService
from bundle_kernel.services.split_service import SplitService

logger = get_logger("services.bundle_orchestrator")


def _order_uuid(order_id: UUID | str) -> UUID:
    if isinstance(order_id, UUID):
        return order_id
    try:
        return UUID(str(order_id))
    except ValueError:
        raise CutOrderNotFoundError(order_id) from None


class BundleOrchestrator:
    """
    Facade over the bundle lifecycle.

    Contract:
        Each method is one transaction.  Results are frozen dataclasses;
        domain failures are typed exceptions from bundle_kernel.exceptions.

    Non-goals:
        No retries.  Retryable errors (``e.retryable``) are for the caller
        to act on.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        location_codes: Iterable[str] = (),
        recompute_order_status: bool = True,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._location_codes = tuple(
            code for code in (normalize_location_code(c) for c in location_codes) if code
        )
        self._recompute = recompute_order_status

    @property
    def location_codes(self) -> tuple[str, ...]:
        return self._location_codes

    @contextmanager
    def _transaction(
        self,
        operation: str,
        write: bool = False,
        on_lock_conflict: Callable[[DBAPIError], Exception] | None = None,
    ) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                if write:
                    begin_write(session)
                yield session
        except DBAPIError as exc:
            if on_lock_conflict is not None and is_lock_conflict(exc):
                raise on_lock_conflict(exc) from exc
            retryable = isinstance(exc, OperationalError)
            raise PersistenceError(operation, str(exc), retryable=retryable) from exc
        except PoolTimeoutError as exc:
            raise PersistenceError(operation, str(exc), retryable=True) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, str(exc), retryable=False) from exc

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def apply_bundle_action(
        self,
        bundle_ids: Iterable[UUID | str],
        action: BundleAction | str,
        destination_code: str | None = None,
        order_number: str | None = None,
    ) -> BundleActionResult:
        """
        Move, assign or use a batch of bundles, all or nothing.

        Raises:
            EmptyBundleSelectionError, UnsupportedActionError,
            MissingDestinationError, InvalidLocationCodeError,
            MissingWorkOrderError, BundleNotFoundError,
            BundlesNotAssignedError, InvalidBundleTransitionError,
            OptimisticLockError, PersistenceError.
        """
        command = build_action_command(
            bundle_ids,
            action,
            destination_code=destination_code,
            order_number=order_number,
            allowed_location_codes=self._location_codes,
        )
        with LogContext.bind(correlation_id=str(uuid4()), action=command.action.value):
            with self._transaction(
                f"apply_bundle_action:{command.action.value}", write=True
            ) as session:
                result = BundleActionService(session, self._location_codes).apply(
                    command, self._clock.now()
                )
            changes = self._recompute_after(result.bundle_ids)
        return replace(result, status_changes=changes)

    def split_bundle(
        self,
        bundle_id: UUID | str,
        order_id: UUID | str,
        sheets: int,
        original_identifiers: BundleIdentifiers,
        new_identifiers: BundleIdentifiers,
        expected_version: int | None = None,
    ) -> SplitResult:
        """
        Split ``sheets`` off a bundle into a new sibling.

        Raises:
            BundleNotFoundError, BundleOrderMismatchError,
            SplitQuantityError, MissingBundleIdentifiersError,
            UnresolvableBundleNumberError, SplitVariantExhaustedError,
            OptimisticLockError (stale expected_version),
            SplitConflictError, PersistenceError.
        """
        (bundle_uuid,) = coerce_bundle_ids([bundle_id])
        order_uuid = _order_uuid(order_id)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            action=BundleAction.SPLIT.value,
            bundle_id=str(bundle_uuid),
            order_id=str(order_uuid),
        ):
            with self._transaction(
                "split_bundle",
                write=True,
                on_lock_conflict=lambda exc: SplitConflictError(
                    bundle_uuid, None, None, "sibling group locked by a concurrent split"
                ),
            ) as session:
                result = SplitService(session).split(
                    bundle_uuid,
                    order_uuid,
                    sheets,
                    original_identifiers,
                    new_identifiers,
                    now=self._clock.now(),
                    expected_version=expected_version,
                )
            changes = self._recompute_after(
                [result.original_bundle_id, result.new_bundle_id]
            )
        return replace(result, status_changes=changes)

    def create_cut_order(
        self,
        code: str,
        order_date: date,
        bundles: Sequence[NewBundleSpec],
        default_location_code: str | None = None,
        declared_bundle_count: int | None = None,
    ) -> CutOrder:
        """Create an order and its initial bundles; returns the projection."""
        with LogContext.bind(correlation_id=str(uuid4())):
            with self._transaction("create_cut_order", write=True) as session:
                order_id = CutOrderService(session, self._location_codes).create(
                    code,
                    order_date,
                    bundles,
                    now=self._clock.now(),
                    default_location_code=default_location_code,
                    declared_bundle_count=declared_bundle_count,
                )
                return CutOrderSelector(session).get_order(order_id)

    def recompute_order_status(
        self,
        bundle_ids: Iterable[UUID | str],
    ) -> tuple[OrderStatusChange, ...]:
        """Explicit best-effort recompute; never raises store errors."""
        return self._recompute_after(coerce_bundle_ids(bundle_ids), force=True)

    def _recompute_after(
        self,
        bundle_ids: Iterable[UUID],
        force: bool = False,
    ) -> tuple[OrderStatusChange, ...]:
        if not (self._recompute or force):
            return ()
        bundle_ids = list(bundle_ids)
        try:
            with self._transaction("recompute_order_status", write=True) as session:
                return OrderStatusService(session).recompute_for_bundles(
                    bundle_ids, self._clock.now()
                )
        except Exception:
            # Best effort: the triggering action has already committed.
            logger.warning(
                "order_status_recompute_failed",
                extra={"bundle_ids": [str(i) for i in bundle_ids]},
                exc_info=True,
            )
            return ()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def project_cut_order(raw_order: Mapping) -> CutOrder:
        """Pure projection of a raw order mapping (no I/O)."""
        return project_cut_order(raw_order)

    def list_cut_orders(self) -> list[CutOrder]:
        """All orders, newest first."""
        with self._transaction("list_cut_orders") as session:
            return CutOrderSelector(session).list_orders()

    def get_cut_order(self, order_id: UUID | str) -> CutOrder:
        order_uuid = _order_uuid(order_id)
        with self._transaction("get_cut_order") as session:
            return CutOrderSelector(session).get_order(order_uuid)

    def bundle_history(self, bundle_id: UUID | str) -> tuple[HistoryEntry, ...]:
        (bundle_uuid,) = coerce_bundle_ids([bundle_id])
        with self._transaction("bundle_history") as session:
            return CutOrderSelector(session).bundle_history(bundle_uuid)

    def list_locations(self) -> list[Location]:
        with self._transaction("list_locations") as session:
            return LocationService(session, self._location_codes).list_locations()
