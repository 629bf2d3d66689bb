"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The remittance ledger is the record of every money movement.  Once an entry
is appended, its amount, parties, milestone and key are facts; only its
settlement progress (status, notes, completed_at) moves on.  Signatures on
contract participants are likewise evidence and are never cleared.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable          | What may still change
---------------------|-------------------------|--------------------------------
Remittance           | ALWAYS (from creation)  | status, notes, completed_at, audit
ContractParticipant  | After signed_at is set  | everything except signed_at

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id are audit metadata and may always change.

2. Inline model imports avoid the models -> db -> models import cycle.

3. Core ``UPDATE`` statements bypass these listeners.  The ledger issues
   exactly one, the compare-and-set in ``RemittanceLedger.advance_status``,
   and it writes only columns listed in ``REMITTANCE_MUTABLE_FIELDS``.

===============================================================================
USAGE
===============================================================================

    from workforce_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup (idempotent)

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from workforce_kernel.exceptions import ImmutabilityViolationError
from workforce_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_remittance_immutability(mapper, connection, target):
    """Block changes to any remittance column outside the mutable set."""
    from workforce_kernel.models.remittance import (
        REMITTANCE_MUTABLE_FIELDS,
        Remittance,
    )

    if not isinstance(target, Remittance):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in REMITTANCE_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Remittance",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="Remittance",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a remittance",
            )


def _check_remittance_delete(mapper, connection, target):
    """Remittances are never deleted."""
    from workforce_kernel.models.remittance import Remittance

    if not isinstance(target, Remittance):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Remittance",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Remittance",
        entity_id=str(target.id),
        reason="Remittances cannot be deleted",
    )


def _check_participant_signature(mapper, connection, target):
    """A recorded signature is never cleared or rewritten."""
    from workforce_kernel.models.contract import ContractParticipant

    if not isinstance(target, ContractParticipant):
        return

    history = get_history(target, "signed_at")
    if history.deleted and history.deleted[0] is not None:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "ContractParticipant",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "field": "signed_at",
            },
        )
        raise ImmutabilityViolationError(
            entity_type="ContractParticipant",
            entity_id=str(target.id),
            reason="A recorded signature cannot be changed",
        )


_LISTENERS = (
    ("Remittance", "before_update", _check_remittance_immutability),
    ("Remittance", "before_delete", _check_remittance_delete),
    ("ContractParticipant", "before_update", _check_participant_signature),
)


def _models() -> dict:
    from workforce_kernel.models.contract import ContractParticipant
    from workforce_kernel.models.remittance import Remittance

    return {"Remittance": Remittance, "ContractParticipant": ContractParticipant}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already present is not added
    twice.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        model = models[model_name]
        if not event.contains(model, event_name, fn):
            event.listen(model, event_name, fn)


def _safe_remove_listener(target, identifier, fn):
    """Remove a listener only if it is registered."""
    if event.contains(target, identifier, fn):
        event.remove(target, identifier, fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        _safe_remove_listener(models[model_name], event_name, fn)
