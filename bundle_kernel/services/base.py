"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    BATCH_ATOMICITY -- services flush within the caller's transaction and
    never commit or roll back themselves.  BundleOrchestrator (or a test)
    owns the transaction, so a split or a batch action lands entirely or
    not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.

    Non-goals:
        Read-only queries belong in ``bundle_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
