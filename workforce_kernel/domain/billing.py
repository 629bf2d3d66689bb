"""
Invoice read projection.

Responsibility:
    Derives the values an invoice exposes on read but never stores as
    authoritative: ``total_amount`` (amount + tax) and the ``overdue``
    status.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  ``today`` comes from the
    caller's Clock.

Invariants enforced:
    - total is always recomputed from its parts; a stored total that
      disagrees is reported, never trusted.
    - overdue is a projection only: due date in the past, no ``paid_at``,
      and not cancelled or rejected.  The stored workflow state is unchanged.
"""

from datetime import date, datetime
from decimal import Decimal

from workforce_kernel.domain.lifecycles import CLOSED_INVOICE_STATES
from workforce_kernel.domain.states import OVERDUE


def invoice_total(amount: Decimal, tax_amount: Decimal | None) -> Decimal:
    return amount + (tax_amount or Decimal("0"))


def is_overdue(
    workflow_state: str,
    due_date: date | None,
    paid_at: datetime | None,
    today: date,
) -> bool:
    if due_date is None or paid_at is not None:
        return False
    if workflow_state in CLOSED_INVOICE_STATES:
        return False
    return due_date < today


def project_invoice_status(
    workflow_state: str,
    due_date: date | None,
    paid_at: datetime | None,
    today: date,
) -> str:
    """The status string shown to readers: ``overdue`` or the workflow state."""
    if is_overdue(workflow_state, due_date, paid_at, today):
        return OVERDUE
    return workflow_state
