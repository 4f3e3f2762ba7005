"""
BaseService -- abstract base for all rental services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every persistence-backed service.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``session_scope`` or a test harness) owns commit/rollback, so a
      ledger mutation is persisted whole or not at all.

Failure modes:
    - SQLAlchemy ``StaleDataError`` on flush is translated to
      ``ConflictError`` by ``_flush``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rental_kernel.db.base import Base
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import ConflictError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for rental services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT retry on conflict.  Callers reload and retry.
    """

    entity_type: str = "entity"

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _flush(self, entity_id) -> None:
        """Flush pending changes, translating stale-version failures."""
        try:
            self.session.flush()
        except StaleDataError as e:
            raise ConflictError(self.entity_type, str(entity_id)) from e
