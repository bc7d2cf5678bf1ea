"""
Module: bundle_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per sequence name (uq_sequence_name).  The row is locked
      FOR UPDATE while a value is allocated, so values are strictly
      monotonic per name.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bundle_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (UniqueConstraint("name", name="uq_sequence_name"),)

    # Sequence name (e.g., "bundle_history")
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
