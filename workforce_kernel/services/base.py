"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer, and the compare-and-set write that
    every lifecycle state change goes through.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's unit of
      work and never commit or roll back themselves.  The transaction
      coordinator (or test harness) owns commit/rollback.
    - Compare-and-set: a state write is
      ``UPDATE ... SET state=:new, version=version+1 WHERE id=:id AND state=:expected``;
      zero affected rows means a concurrent writer won and is reported as
      ConflictRetryable.

Failure modes:
    - ConflictRetryable when the compare-and-set affects no row.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from workforce_kernel.db.base import Base
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.exceptions import ConflictRetryable
from workforce_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _compare_and_set(
        self,
        entity: Any,
        state_attr: str,
        expected: str,
        new_state: str,
        actor_id: UUID,
        expected_version: int | None = None,
        **values: Any,
    ) -> None:
        """
        Move ``entity`` from ``expected`` to ``new_state`` or raise.

        Extra ``values`` are written by the same statement.  With
        ``expected_version`` the row must also still carry that version.
        The entity is refreshed afterwards so that callers see the
        committed row image.
        """
        model = type(entity)
        self.session.flush()

        assignments: dict[str, Any] = {
            state_attr: new_state,
            "updated_by_id": actor_id,
            **values,
        }
        if hasattr(model, "version"):
            assignments["version"] = model.version + 1

        stmt = (
            update(model)
            .where(model.id == entity.id, getattr(model, state_attr) == expected)
            .values(**assignments)
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "compare_and_set_conflict",
                extra={
                    "entity_type": model.__name__,
                    "entity_id": str(entity.id),
                    "expected_state": expected,
                    "new_state": new_state,
                },
            )
            raise ConflictRetryable(model.__name__, str(entity.id), expected)

        self.session.refresh(entity)
