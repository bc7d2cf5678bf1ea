"""
LocationService -- resolve location codes to rows, creating them on demand.

Responsibility:
    Normalises location codes, enforces the configured allow-list, and
    returns a read-only code -> Location mapping for the codes an operation
    needs.  Missing rows are created inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Codes are stored trimmed and upper-case.
    - When an allow-list is configured, no other code is ever created.

Failure modes:
    - InvalidLocationCodeError for blank codes or codes outside the
      allow-list.
    - IntegrityError from a concurrent insert of the same code is absorbed
      by a savepoint and the winner's row is re-read.

Design note:
    There is no process-wide cache.  Each operation resolves exactly the
    codes it touches, so a location created by another process is always
    visible.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bundle_kernel.domain.dtos import Location
from bundle_kernel.domain.lifecycle import check_location_code
from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.location import LocationModel
from bundle_kernel.services.base import BaseService

logger = get_logger("services.location")


class LocationService(BaseService):
    """
    Get-or-create access to locations.

    Contract:
        ``ensure_locations`` returns a mapping containing every requested
        (normalised) code.
    """

    def __init__(self, session: Session, allowed_codes: Iterable[str] = ()):
        super().__init__(session)
        self.allowed_codes = tuple(allowed_codes)

    def list_locations(self) -> list[Location]:
        """All known locations, ordered by code."""
        rows = self.session.scalars(
            select(LocationModel).order_by(LocationModel.code)
        ).all()
        return [row.to_dto() for row in rows]

    def ensure_locations(self, codes: Iterable[str]) -> Mapping[str, Location]:
        normalized = sorted({check_location_code(c, self.allowed_codes) for c in codes})
        if not normalized:
            return MappingProxyType({})

        found = {
            row.code: row
            for row in self.session.scalars(
                select(LocationModel).where(LocationModel.code.in_(normalized))
            )
        }
        for code in normalized:
            if code not in found:
                found[code] = self._create(code)

        return MappingProxyType({code: found[code].to_dto() for code in normalized})

    def _create(self, code: str) -> LocationModel:
        savepoint = self.session.begin_nested()
        try:
            row = LocationModel(code=code)
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("location_create_race_retry", extra={"location_code": code})
            return self.session.execute(
                select(LocationModel).where(LocationModel.code == code)
            ).scalar_one()

        logger.info(
            "location_created",
            extra={"location_code": code, "location_id": str(row.id)},
        )
        return row
