"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for history entries.
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) to guarantee uniqueness and ordering under
    concurrent access.  A batch reserves a contiguous block in one step.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by HistoryLedger.

Invariants enforced:
    - Sequence monotonicity: the locked counter row is the sole source of
      truth for the next value.  MAX(seq)+1 is never used.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the values.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Strictly monotonic values per sequence name.
        - ``next_block(name, n)`` returns ``n`` consecutive values.

    Non-goals:
        Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    BUNDLE_HISTORY = "bundle_history"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _get_or_create_counter(self, sequence_name: str) -> SequenceCounter:
        counter = self._locked_counter(sequence_name)
        if counter is not None:
            return counter

        # First use.  Another transaction may create it at the same time;
        # the savepoint keeps the caller's work if we lose that race.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            return self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == sequence_name)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def next_block(self, sequence_name: str, count: int) -> range:
        """
        Reserve ``count`` consecutive values.

        Returns:
            ``range(first, first + count)``; every value is > 0.
        """
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")

        counter = self._get_or_create_counter(sequence_name)
        first = counter.current_value + 1
        counter.current_value += count
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={
                "sequence_name": sequence_name,
                "first": first,
                "count": count,
            },
        )
        return range(first, first + count)

    def next_value(self, sequence_name: str) -> int:
        """Get the next value for a named sequence."""
        return self.next_block(sequence_name, 1)[0]

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
