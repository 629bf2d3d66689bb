"""
Lifecycle tables (``workforce_kernel.domain.lifecycles``).

Responsibility
--------------
Declares the state machines for contracts, invoices and timesheets, and the
forward-only status table for remittances.  Gates name the preconditions a
transition needs; the evaluation logic lives in the services layer.

Architecture position
---------------------
**Kernel domain layer** -- declarative workflow definitions.  Imports
canonical Guard, Transition, Workflow from ``workforce_kernel.domain.workflow``.
Consumed by the workflow engine at runtime.

Invariants enforced
-------------------
* All tables are frozen and validated at import.
* Money-movement edges name their remittance milestones, so the ledger entry
  is appended by the same unit of work that moves the invoice.
"""

from workforce_kernel.domain.states import (
    ContractWorkflowStatus as C,
    InvoiceState as I,
    RemittanceMilestone,
    RemittanceStatus,
    TimesheetState as T,
)
from workforce_kernel.domain.workflow import Guard, Transition, Workflow
from workforce_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")


# -----------------------------------------------------------------------------
# Contract gates
# -----------------------------------------------------------------------------

COUNTERPART_ASSIGNED = Guard(
    name="counterpart_assigned",
    description="An active agency participant is attached to the contract",
)

ALL_APPROVERS_APPROVED = Guard(
    name="all_approvers_approved",
    description="At least one approver exists and every approver has approved",
)

COUNTERPART_SIGNATURES_COMPLETE = Guard(
    name="counterpart_signatures_complete",
    description="Every signature-required non-contractor participant has signed",
)

ALL_SIGNATURES_COMPLETE = Guard(
    name="all_signatures_complete",
    description="At least one signer exists and every required signature is present",
)

END_DATE_SET = Guard(
    name="end_date_set",
    description="The contract has an end date",
)

TERMINATION_REASON = Guard(
    name="termination_reason",
    description="A termination reason is supplied",
)


CONTRACT_WORKFLOW = Workflow(
    name="contract",
    entity_type="Contract",
    description="Contract drafting, signature and execution lifecycle",
    initial_state=C.DRAFT.value,
    states=tuple(s.value for s in C),
    state_attr="workflow_status",
    transitions=(
        Transition(
            from_state=C.DRAFT.value,
            to_state=C.PENDING_AGENCY_SIGN.value,
            action="send_for_signature",
            permission="contract.submit",
            guards=(COUNTERPART_ASSIGNED, ALL_APPROVERS_APPROVED),
        ),
        Transition(
            from_state=C.PENDING_AGENCY_SIGN.value,
            to_state=C.PENDING_CONTRACTOR_SIGN.value,
            action="agency_signed",
            permission="contract.sign",
            guards=(COUNTERPART_SIGNATURES_COMPLETE,),
        ),
        Transition(
            from_state=C.PENDING_CONTRACTOR_SIGN.value,
            to_state=C.ACTIVE.value,
            action="contractor_signed",
            permission="contract.sign",
            guards=(ALL_SIGNATURES_COMPLETE,),
        ),
        Transition(
            from_state=C.ACTIVE.value,
            to_state=C.PAUSED.value,
            action="pause",
            permission="contract.update",
        ),
        Transition(
            from_state=C.PAUSED.value,
            to_state=C.ACTIVE.value,
            action="resume",
            permission="contract.update",
        ),
        Transition(
            from_state=C.ACTIVE.value,
            to_state=C.COMPLETED.value,
            action="complete",
            permission="contract.update",
            guards=(END_DATE_SET,),
        ),
        Transition(
            from_state=C.ACTIVE.value,
            to_state=C.TERMINATED.value,
            action="terminate",
            permission="contract.update",
            guards=(TERMINATION_REASON,),
        ),
        Transition(
            from_state=C.PAUSED.value,
            to_state=C.TERMINATED.value,
            action="terminate",
            permission="contract.update",
            guards=(TERMINATION_REASON,),
        ),
        Transition(
            from_state=C.DRAFT.value,
            to_state=C.CANCELLED.value,
            action="cancel",
            permission="contract.cancel",
        ),
        Transition(
            from_state=C.PENDING_AGENCY_SIGN.value,
            to_state=C.CANCELLED.value,
            action="cancel",
            permission="contract.cancel",
        ),
        Transition(
            from_state=C.PENDING_CONTRACTOR_SIGN.value,
            to_state=C.CANCELLED.value,
            action="cancel",
            permission="contract.cancel",
        ),
    ),
    terminal_states=(
        C.COMPLETED.value,
        C.CANCELLED.value,
        C.TERMINATED.value,
    ),
)


# -----------------------------------------------------------------------------
# Invoice gates
# -----------------------------------------------------------------------------

AMOUNT_PRESENT = Guard(
    name="amount_present",
    description="Invoice amount is greater than zero",
)

REJECTION_REASON = Guard(
    name="rejection_reason",
    description="A rejection reason is supplied",
)

CHANGES_NOTE = Guard(
    name="changes_note",
    description="A note describing the requested changes is supplied",
)

AMOUNT_RECEIVED = Guard(
    name="amount_received",
    description="The received amount is supplied and greater than zero",
)

CONTRACTOR_KNOWN = Guard(
    name="contractor_known",
    description="The contract has an active contractor participant to pay",
)

PAYROLL_RECIPIENT_SET = Guard(
    name="payroll_recipient_set",
    description="A payroll recipient is supplied",
)

SPLIT_AMOUNTS_VALID = Guard(
    name="split_amounts_valid",
    description="Contractor and payroll portions are positive and sum to the amount received",
)

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    entity_type="Invoice",
    description="Invoice review, delivery and settlement lifecycle",
    initial_state=I.DRAFT.value,
    states=tuple(s.value for s in I),
    transitions=(
        Transition(I.DRAFT.value, I.REVIEWING.value, "submit", "invoice.submit",
                   guards=(AMOUNT_PRESENT,)),
        Transition(I.REVIEWING.value, I.APPROVED.value, "approve", "invoice.approve"),
        Transition(I.REVIEWING.value, I.CHANGES_REQUESTED.value, "request_changes",
                   "invoice.approve", guards=(CHANGES_NOTE,)),
        Transition(I.CHANGES_REQUESTED.value, I.REVIEWING.value, "resubmit",
                   "invoice.submit", guards=(AMOUNT_PRESENT,)),
        Transition(I.REVIEWING.value, I.REJECTED.value, "reject", "invoice.approve",
                   guards=(REJECTION_REASON,)),
        Transition(I.APPROVED.value, I.SENT.value, "send", "invoice.send"),
        Transition(I.SENT.value, I.PAYMENT_RECEIVED.value, "record_payment", "invoice.pay",
                   guards=(AMOUNT_RECEIVED,),
                   milestones=(RemittanceMilestone.PAYMENT_RECEIVED.value,)),
        Transition(I.PAYMENT_RECEIVED.value, I.SELF_BILLED.value, "pay_contractor",
                   "invoice.pay", guards=(CONTRACTOR_KNOWN,),
                   milestones=(RemittanceMilestone.CONTRACTOR_PAYMENT_SENT.value,)),
        Transition(I.PAYMENT_RECEIVED.value, I.PAYROLL_ROUTED.value, "route_to_payroll",
                   "invoice.pay", guards=(PAYROLL_RECIPIENT_SET,),
                   milestones=(RemittanceMilestone.PAYROLL_PAYMENT_SENT.value,)),
        Transition(I.PAYMENT_RECEIVED.value, I.SPLIT.value, "split_payment", "invoice.pay",
                   guards=(CONTRACTOR_KNOWN, PAYROLL_RECIPIENT_SET, SPLIT_AMOUNTS_VALID),
                   milestones=(
                       RemittanceMilestone.CONTRACTOR_PAYMENT_SENT.value,
                       RemittanceMilestone.PAYROLL_PAYMENT_SENT.value,
                   )),
        Transition(I.DRAFT.value, I.CANCELLED.value, "cancel", "invoice.cancel"),
    ),
    terminal_states=(
        I.SELF_BILLED.value,
        I.PAYROLL_ROUTED.value,
        I.SPLIT.value,
        I.REJECTED.value,
        I.CANCELLED.value,
    ),
)

# States never projected as overdue
CLOSED_INVOICE_STATES: frozenset[str] = frozenset(
    {I.CANCELLED.value, I.REJECTED.value}
)


# -----------------------------------------------------------------------------
# Timesheet
# -----------------------------------------------------------------------------

HOURS_POSITIVE = Guard(
    name="hours_positive",
    description="Total hours are greater than zero",
)

_REVIEWABLE = (T.SUBMITTED.value, T.UNDER_REVIEW.value)

TIMESHEET_WORKFLOW = Workflow(
    name="timesheet",
    entity_type="Timesheet",
    description="Timesheet submission and review lifecycle",
    initial_state=T.DRAFT.value,
    states=tuple(s.value for s in T),
    transitions=(
        Transition(T.DRAFT.value, T.SUBMITTED.value, "submit", "timesheet.submit",
                   guards=(HOURS_POSITIVE,)),
        Transition(T.SUBMITTED.value, T.UNDER_REVIEW.value, "start_review",
                   "timesheet.approve"),
        *(
            Transition(src, T.APPROVED.value, "approve", "timesheet.approve")
            for src in _REVIEWABLE
        ),
        *(
            Transition(src, T.REJECTED.value, "reject", "timesheet.approve",
                       guards=(REJECTION_REASON,))
            for src in _REVIEWABLE
        ),
        *(
            Transition(src, T.CHANGES_REQUESTED.value, "request_changes",
                       "timesheet.approve", guards=(CHANGES_NOTE,))
            for src in _REVIEWABLE
        ),
        Transition(T.CHANGES_REQUESTED.value, T.SUBMITTED.value, "resubmit",
                   "timesheet.submit", guards=(HOURS_POSITIVE,)),
        Transition(T.APPROVED.value, T.SENT.value, "send_to_agency", "timesheet.send"),
    ),
    terminal_states=(T.REJECTED.value, T.SENT.value),
)


# -----------------------------------------------------------------------------
# Remittance status (forward only)
# -----------------------------------------------------------------------------

REMITTANCE_TRANSITIONS: dict[RemittanceStatus, frozenset[RemittanceStatus]] = {
    RemittanceStatus.PENDING: frozenset({
        RemittanceStatus.PROCESSING,
        RemittanceStatus.COMPLETED,
        RemittanceStatus.FAILED,
    }),
    RemittanceStatus.PROCESSING: frozenset({
        RemittanceStatus.COMPLETED,
        RemittanceStatus.FAILED,
    }),
    RemittanceStatus.COMPLETED: frozenset(),
    RemittanceStatus.FAILED: frozenset(),
}


WORKFLOWS: dict[str, Workflow] = {
    w.name: w for w in (CONTRACT_WORKFLOW, INVOICE_WORKFLOW, TIMESHEET_WORKFLOW)
}

logger.debug(
    "lifecycle_tables_defined",
    extra={
        "workflows": {
            w.name: {"states": len(w.states), "transitions": len(w.transitions)}
            for w in WORKFLOWS.values()
        },
    },
)
