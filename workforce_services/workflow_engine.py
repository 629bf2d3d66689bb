"""
workforce_services.workflow_engine -- table-driven transition evaluation.

Responsibility:
    Decides whether an actor may move a contract, invoice or timesheet
    from its current state to a requested state.  One generic evaluator
    parameterized by the Workflow tables in workforce_kernel.domain.lifecycles.

Architecture position:
    Services layer.  Pure over already-fetched data: the entity, its
    participants and the actor's access snapshot are handed in.  The engine
    never persists; the lifecycle services compare-and-set the returned
    next state inside a TransactionCoordinator boundary.

Invariants enforced:
    - Evaluation order is fixed: table lookup, then gates, then action
      scope.  The first failing step raises and later steps do not run.
    - Every outcome (success or rejection) is emitted as one structured
      ``workflow_transition`` record.
    - A gate without a registered evaluator is a configuration error,
      never a silent pass or fail.

Failure modes:
    - InvalidTransitionError: (from, to) not in the table.
    - GateNotSatisfiedError: a gate evaluated false (carries the gate name).
    - ForbiddenError: no scope at which the actor holds the edge's
      permission covers the record.
    - ConfigurationError: missing gate evaluator.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Callable, Mapping
from uuid import UUID

from workforce_kernel.domain import participants as aggregates
from workforce_kernel.domain.permissions import ScopeClass, scopes_for
from workforce_kernel.domain.scope import AccessSnapshot, Actor, ScopeResolver
from workforce_kernel.domain.states import ParticipantRole
from workforce_kernel.domain.workflow import Guard, Transition, Workflow
from workforce_kernel.exceptions import (
    ConfigurationError,
    ForbiddenError,
    GateNotSatisfiedError,
    InvalidTransitionError,
)
from workforce_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_engine")

# Trace message and outcome codes for structured logging and traceability
TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_GATE_FAILED = "gate_failed"
OUTCOME_FORBIDDEN = "forbidden"


def _emit_workflow_trace(
    workflow_name: str,
    action: str | None,
    entity_type: str,
    entity_id: UUID,
    from_state: str,
    to_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    actor_id: UUID | None = None,
    scope: str | None = None,
    milestones: tuple[str, ...] = (),
    outcome_sink: Callable[[dict], None] | None = None,
) -> None:
    """Emit a structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "workflow": workflow_name,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "to_state": to_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if actor_id is not None:
        record["actor_id"] = str(actor_id)
    if scope is not None:
        record["scope"] = scope
    if milestones:
        record["milestones"] = list(milestones)
    for key, value in LogContext.get_all().items():
        record.setdefault(key, value)
    # LogRecord reserves "message"; use log msg as first arg, not in extra
    extra_for_log = {k: v for k, v in record.items() if k != "message"}
    if outcome == OUTCOME_SUCCESS:
        logger.info("workflow_transition", extra=extra_for_log)
    else:
        logger.warning("workflow_transition", extra=extra_for_log)
    record["message"] = "workflow_transition"
    if outcome_sink is not None:
        outcome_sink(record)


# ---------------------------------------------------------------------------
# Gate evaluation
# ---------------------------------------------------------------------------


def _get(context: Mapping[str, Any] | None, key: str, default: Any = None) -> Any:
    if context is None:
        return default
    return context.get(key, default)


def _entity_attr(context: Mapping[str, Any] | None, attr: str) -> Any:
    return getattr(_get(context, "entity"), attr, None)


def _participants(context: Mapping[str, Any] | None) -> list[Any]:
    return list(_get(context, "participants") or ())


def _text_present(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _positive(value: Any) -> bool:
    if value is None or isinstance(value, (bool, float)):
        return False
    try:
        return Decimal(str(value)) > 0
    except ArithmeticError:
        return False


def _counterpart_assigned(context: Mapping[str, Any] | None) -> bool:
    """An active agency participant is attached."""
    return aggregates.has_role(_participants(context), ParticipantRole.AGENCY)


def _all_approvers_approved(context: Mapping[str, Any] | None) -> bool:
    return aggregates.all_approvers_approved(_participants(context))


def _counterpart_signatures_complete(context: Mapping[str, Any] | None) -> bool:
    return aggregates.counterpart_signatures_complete(_participants(context))


def _all_signatures_complete(context: Mapping[str, Any] | None) -> bool:
    return aggregates.all_signatures_complete(_participants(context))


def _end_date_set(context: Mapping[str, Any] | None) -> bool:
    return _entity_attr(context, "end_date") is not None


def _termination_reason(context: Mapping[str, Any] | None) -> bool:
    return _text_present(_get(context, "termination_reason"))


def _amount_present(context: Mapping[str, Any] | None) -> bool:
    return _positive(_entity_attr(context, "amount"))


def _rejection_reason(context: Mapping[str, Any] | None) -> bool:
    return _text_present(_get(context, "rejection_reason"))


def _changes_note(context: Mapping[str, Any] | None) -> bool:
    return _text_present(_get(context, "changes_note"))


def _amount_received(context: Mapping[str, Any] | None) -> bool:
    return _positive(_get(context, "amount_received"))


def _contractor_known(context: Mapping[str, Any] | None) -> bool:
    """An explicit contractor, or an active contractor participant with a user."""
    if _get(context, "contractor_user_id") is not None:
        return True
    return aggregates.primary_user(_participants(context), ParticipantRole.CONTRACTOR) is not None


def _payroll_recipient_set(context: Mapping[str, Any] | None) -> bool:
    return _get(context, "payroll_recipient_id") is not None


def _split_amounts_valid(context: Mapping[str, Any] | None) -> bool:
    """Both portions positive and summing to the amount received."""
    contractor = _get(context, "contractor_amount")
    payroll = _get(context, "payroll_amount")
    received = _entity_attr(context, "amount_received")
    if not (_positive(contractor) and _positive(payroll) and _positive(received)):
        return False
    return Decimal(str(contractor)) + Decimal(str(payroll)) == Decimal(str(received))


def _hours_positive(context: Mapping[str, Any] | None) -> bool:
    return _positive(_entity_attr(context, "total_hours"))


class GateExecutor:
    """Evaluates workflow gates against a context mapping.

    Gates are declared on transitions (name + description).  This executor
    holds the evaluation logic per gate name and is called by the
    WorkflowEngine before a transition is allowed.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Mapping[str, Any] | None], bool]] = {}

    def register(
        self,
        gate_name: str,
        evaluator: Callable[[Mapping[str, Any] | None], bool],
    ) -> None:
        """Register an evaluator for a gate by name."""
        self._evaluators[gate_name] = evaluator

    def is_registered(self, gate_name: str) -> bool:
        return gate_name in self._evaluators

    def evaluate(self, guard: Guard, context: Mapping[str, Any] | None = None) -> bool:
        """Evaluate a gate.  Evaluator exceptions propagate to the caller."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.error("gate_no_evaluator", extra={"gate": guard.name})
            raise ConfigurationError(
                f"No evaluator registered for gate '{guard.name}'", setting="gates"
            )
        return bool(fn(context))


def default_gate_executor() -> GateExecutor:
    """Return a GateExecutor with every lifecycle gate registered."""
    ex = GateExecutor()
    # Contract
    ex.register("counterpart_assigned", _counterpart_assigned)
    ex.register("all_approvers_approved", _all_approvers_approved)
    ex.register("counterpart_signatures_complete", _counterpart_signatures_complete)
    ex.register("all_signatures_complete", _all_signatures_complete)
    ex.register("end_date_set", _end_date_set)
    ex.register("termination_reason", _termination_reason)
    # Invoice
    ex.register("amount_present", _amount_present)
    ex.register("rejection_reason", _rejection_reason)
    ex.register("changes_note", _changes_note)
    ex.register("amount_received", _amount_received)
    ex.register("contractor_known", _contractor_known)
    ex.register("payroll_recipient_set", _payroll_recipient_set)
    ex.register("split_amounts_valid", _split_amounts_valid)
    # Timesheet
    ex.register("hours_positive", _hours_positive)
    return ex


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionDecision:
    """An approved transition, ready for the caller to persist."""

    workflow: str
    entity_id: UUID
    from_state: str
    to_state: str
    action: str
    scope: ScopeClass
    milestones: tuple[str, ...] = ()

    @property
    def is_money_movement(self) -> bool:
        return bool(self.milestones)


@dataclass(frozen=True)
class AvailableTransition:
    """An edge the actor could request from the entity's current state."""

    action: str
    to_state: str
    permission: str
    gates: tuple[str, ...]


class WorkflowEngine:
    """
    Generic state-machine evaluator.

    Contract:
        ``request_transition`` returns a TransitionDecision or raises.  It
        reads ``entity.<workflow.state_attr>`` and never writes.

    Non-goals:
        - Does NOT persist the next state (compare-and-set is the caller's).
        - Does NOT load participants; they arrive in ``context``.
    """

    def __init__(
        self,
        resolver: ScopeResolver | None = None,
        gates: GateExecutor | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ) -> None:
        self._resolver = resolver or ScopeResolver()
        self._gates = gates or default_gate_executor()
        self._outcome_sink = outcome_sink

    def request_transition(
        self,
        workflow: Workflow,
        entity: Any,
        to_state: str,
        actor: Actor,
        access: AccessSnapshot | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> TransitionDecision:
        """
        Validate ``entity -> to_state`` for ``actor``.

        Args:
            workflow: Table to evaluate against.
            entity: Record carrying the state attribute, tenant and owner ids.
            to_state: Requested next state.
            actor: Authenticated caller.
            access: Children/delegation snapshot for the parent scope.
            context: Gate inputs (participants, reasons, amounts).

        Raises:
            InvalidTransitionError, GateNotSatisfiedError, ForbiddenError.
        """
        start = time.monotonic()
        from_state = str(getattr(entity, workflow.state_attr))
        to_state = str(getattr(to_state, "value", to_state))
        entity_id = entity.id

        def trace(outcome: str, reason: str, transition: Transition | None = None,
                  scope: ScopeClass | None = None) -> None:
            _emit_workflow_trace(
                workflow_name=workflow.name,
                action=transition.action if transition else None,
                entity_type=workflow.entity_type,
                entity_id=entity_id,
                from_state=from_state,
                to_state=to_state,
                outcome=outcome,
                reason=reason,
                duration_ms=(time.monotonic() - start) * 1000,
                actor_id=actor.user_id,
                scope=scope.value if scope else None,
                milestones=transition.milestones if transition else (),
                outcome_sink=self._outcome_sink,
            )

        # 1. Table lookup
        transition = workflow.find(from_state, to_state)
        if transition is None:
            trace(OUTCOME_NO_TRANSITION, "not_in_table")
            raise InvalidTransitionError(workflow.name, from_state, to_state)

        # 2. Gates
        gate_context = dict(context or {})
        gate_context.setdefault("entity", entity)
        for guard in transition.guards:
            if not self._gates.evaluate(guard, gate_context):
                trace(OUTCOME_GATE_FAILED, guard.name, transition)
                raise GateNotSatisfiedError(guard.name, guard.description)

        # 3. Action scope
        scope = self._covering_scope(transition, entity, actor, access)
        if scope is None:
            trace(OUTCOME_FORBIDDEN, transition.permission, transition)
            raise ForbiddenError(transition.permission, entity_id=str(entity_id))

        trace(OUTCOME_SUCCESS, "ok", transition, scope)
        return TransitionDecision(
            workflow=workflow.name,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            action=transition.action,
            scope=scope,
            milestones=transition.milestones,
        )

    def available_transitions(
        self,
        workflow: Workflow,
        entity: Any,
        actor: Actor,
        access: AccessSnapshot | None = None,
    ) -> list[AvailableTransition]:
        """Edges from the current state whose permission covers the record.

        Gates are not evaluated; a listed edge may still be refused.
        """
        from_state = str(getattr(entity, workflow.state_attr))
        return [
            AvailableTransition(
                action=t.action,
                to_state=t.to_state,
                permission=t.permission,
                gates=tuple(g.name for g in t.guards),
            )
            for t in workflow.outgoing(from_state)
            if self._covering_scope(t, entity, actor, access) is not None
        ]

    def _covering_scope(
        self,
        transition: Transition,
        entity: Any,
        actor: Actor,
        access: AccessSnapshot | None,
    ) -> ScopeClass | None:
        """Broadest scope at which the actor holds the permission and covers ``entity``."""
        for scope in scopes_for(actor, transition.resource, transition.permission_action):
            predicate = self._resolver.resolve(actor, scope, access)
            if predicate.matches(entity):
                return scope
        return None
