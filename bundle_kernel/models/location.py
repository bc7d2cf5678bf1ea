"""
Module: bundle_kernel.models.location
Responsibility: ORM persistence for physical locations bundles sit at.
Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside to_dto()).

Invariants enforced:
    - code is unique and stored normalised (trimmed, upper-case); the
      service layer normalises before insert or lookup.

Failure modes:
    - IntegrityError on duplicate code (uq_location_code), which
      LocationService treats as a lost get-or-create race.
"""

from typing import TYPE_CHECKING

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bundle_kernel.db.base import Base

if TYPE_CHECKING:
    from bundle_kernel.domain.dtos import Location


class LocationModel(Base):
    """
    A site code such as ``C1``.

    Non-goals:
        No geocoding or hierarchy; bundles reference locations by identity.
    """

    __tablename__ = "locations"

    __table_args__ = (UniqueConstraint("code", name="uq_location_code"),)

    code: Mapped[str] = mapped_column(String(32), nullable=False)

    def to_raw(self) -> dict:
        return {"id": self.id, "code": self.code}

    def to_dto(self) -> "Location":
        from bundle_kernel.domain.dtos import Location

        return Location(id=self.id, code=self.code)

    def __repr__(self) -> str:
        return f"<LocationModel {self.code}>"
