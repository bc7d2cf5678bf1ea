"""
CutOrderService -- create a cut order together with its initial bundles.

Responsibility:
    Validates the order input, resolves every bundle's starting location,
    inserts the order and its bundles (numbered 1..n, all ``available``)
    and records one ``move`` history entry per bundle at its starting
    location.

Architecture position:
    Kernel > Services -- imperative shell.  Called by BundleOrchestrator.

Invariants enforced:
    - Initial bundles get consecutive legacy numbers 1..n (variant 1).
    - Every bundle starts with a location and a history entry.
    - NON_NEGATIVE_SHEETS via NewBundleSpec and the table CHECK.

Failure modes:
    - InvalidCutOrderError for a blank code, a non-date order date or a
      negative declared count.
    - MissingDestinationError when a bundle has no location and no default
      is given.
    - InvalidLocationCodeError for codes outside the allow-list.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from bundle_kernel.domain.dtos import HistoryEntryDraft, NewBundleSpec
from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus, normalize_location_code
from bundle_kernel.exceptions import InvalidCutOrderError, MissingDestinationError
from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.cut_order import CutOrderModel
from bundle_kernel.services.base import BaseService
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.history_ledger import HistoryLedger
from bundle_kernel.services.location_service import LocationService

logger = get_logger("services.cut_order")


class CutOrderService(BaseService):
    """Order creation.  Flush-only; the caller commits."""

    def __init__(self, session: Session, allowed_location_codes: Iterable[str] = ()):
        super().__init__(session)
        self._locations = LocationService(session, allowed_location_codes)

    def create(
        self,
        code: str,
        order_date: date,
        bundles: Sequence[NewBundleSpec],
        now: datetime,
        default_location_code: str | None = None,
        declared_bundle_count: int | None = None,
    ) -> UUID:
        code = (code or "").strip()
        if not code:
            raise InvalidCutOrderError("order code is required")
        if isinstance(order_date, datetime) or not isinstance(order_date, date):
            raise InvalidCutOrderError("order_date must be a date", code)
        declared = len(bundles) if declared_bundle_count is None else declared_bundle_count
        if declared < 0:
            raise InvalidCutOrderError("declared bundle count must be >= 0", code)

        default_code = normalize_location_code(default_location_code)
        bundle_codes = []
        for spec in bundles:
            location_code = normalize_location_code(spec.location_code) or default_code
            if location_code is None:
                raise MissingDestinationError("create")
            bundle_codes.append(location_code)
        locations = self._locations.ensure_locations(bundle_codes)

        order = CutOrderModel(
            code=code,
            order_date=order_date,
            declared_bundle_count=declared,
            active=True,
            created_at=now,
        )
        self.session.add(order)
        self.session.flush()

        store = BundleStore(self.session)
        drafts = []
        for number, (spec, location_code) in enumerate(zip(bundles, bundle_codes), start=1):
            location = locations[location_code]
            bundle = store.insert_bundle(
                cut_order_id=order.id,
                number=number,
                sheets=spec.sheets,
                status=BundleStatus.AVAILABLE,
                location_id=location.id,
                created_at=now,
                sscc=spec.sscc,
                luid=spec.luid,
                coil_number=spec.coil_number,
            )
            drafts.append(
                HistoryEntryDraft(
                    bundle_id=bundle.id,
                    action=BundleAction.MOVE,
                    timestamp=now,
                    destination_location_id=location.id,
                )
            )
        HistoryLedger(self.session).append(drafts)

        logger.info(
            "cut_order_created",
            extra={
                "order_id": str(order.id),
                "order_code": code,
                "bundle_count": len(bundles),
                "declared_bundle_count": declared,
            },
        )
        return order.id
