"""
LifecycleStore -- persists workflow decisions.

Responsibility:
    Writes an approved transition with a compare-and-set on the workflow's
    state attribute, plus any columns the transition sets.

Architecture position:
    Kernel > Services.  The workflow engine decides; this service applies.
    Called by the lifecycle services inside a TransactionCoordinator unit
    of work.

Invariants enforced:
    - The write only lands if the row is still in the state the decision
      was made from.  Otherwise ConflictRetryable and nothing changes.
    - A revision keeps the state and also requires the version the caller
      read.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from workforce_kernel.domain.workflow import Workflow
from workforce_kernel.logging_config import get_logger
from workforce_kernel.services.base import BaseService

logger = get_logger("services.lifecycle_store")


class LifecycleStore(BaseService[Any]):
    """Applies (from_state -> to_state) to any workflow-bearing entity."""

    def apply(
        self,
        workflow: Workflow,
        entity: Any,
        from_state: str,
        to_state: str,
        actor_id: UUID,
        **values: Any,
    ) -> None:
        self._compare_and_set(
            entity,
            workflow.state_attr,
            from_state,
            to_state,
            actor_id,
            **values,
        )
        logger.info(
            "transition_applied",
            extra={
                "workflow": workflow.name,
                "entity_id": str(entity.id),
                "from_state": from_state,
                "to_state": to_state,
                "version": getattr(entity, "version", None),
            },
        )

    def revise(
        self,
        workflow: Workflow,
        entity: Any,
        actor_id: UUID,
        expected_version: int,
        **values: Any,
    ) -> None:
        """Write ``values`` in place if state and version are still as read."""
        state = getattr(entity, workflow.state_attr)
        self._compare_and_set(
            entity,
            workflow.state_attr,
            state,
            state,
            actor_id,
            expected_version=expected_version,
            **values,
        )
        logger.info(
            "record_revised",
            extra={
                "workflow": workflow.name,
                "entity_id": str(entity.id),
                "state": state,
                "fields": sorted(values),
                "version": entity.version,
            },
        )
