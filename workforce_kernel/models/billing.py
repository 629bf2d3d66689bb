"""
Module: workforce_kernel.models.billing
Responsibility: ORM persistence for invoices and timesheets.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain layer only.

Invariants enforced:
    - ``Invoice.total_amount`` equals ``amount + tax_amount`` on every flush;
      the validators keep it in step with its parts.  Readers recompute it
      anyway (domain.billing.invoice_total).
    - uq_invoice_timesheet: a timesheet produces at most one invoice.
    - ``overdue`` is never stored; it is a read projection.

Failure modes:
    - IntegrityError on a second invoice for the same timesheet.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from workforce_kernel.db.base import TrackedBase, UUIDString
from workforce_kernel.db.types import Hours, Money
from workforce_kernel.domain.billing import invoice_total
from workforce_kernel.domain.states import InvoiceState, TimesheetState


class Invoice(TrackedBase):
    """
    A bill raised against a contract.

    Contract:
        ``workflow_state`` moves only through the invoice workflow table by
        compare-and-set; ``version`` is bumped on every such write.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("timesheet_id", name="uq_invoice_timesheet"),
        Index("idx_invoice_tenant_state", "tenant_id", "workflow_state"),
        Index("idx_invoice_contract", "contract_id"),
        Index("idx_invoice_due_date", "due_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    timesheet_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
        doc="Timesheet this invoice was generated from",
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Money] = mapped_column(nullable=False)

    tax_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    total_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    workflow_state: Mapped[InvoiceState] = mapped_column(
        String(40),
        nullable=False,
        default=InvoiceState.DRAFT.value,
    )

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    amount_received: Mapped[Decimal | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    changes_note: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=True,
    )

    owner_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    @validates("amount", "tax_amount")
    def _sync_total(self, key: str, value: Decimal | None) -> Decimal | None:
        amount = value if key == "amount" else self.amount
        tax = value if key == "tax_amount" else self.tax_amount
        if amount is not None:
            self.total_amount = invoice_total(amount, tax)
        return value

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} [{self.workflow_state}]>"


class Timesheet(TrackedBase):
    """Hours a contractor worked on a contract over one period."""

    __tablename__ = "timesheets"

    __table_args__ = (
        Index("idx_timesheet_tenant_state", "tenant_id", "workflow_state"),
        Index("idx_timesheet_contract", "contract_id"),
        Index("idx_timesheet_owner", "owner_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    total_hours: Mapped[Hours] = mapped_column(nullable=False)

    total_amount: Mapped[Money] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    workflow_state: Mapped[TimesheetState] = mapped_column(
        String(40),
        nullable=False,
        default=TimesheetState.DRAFT.value,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    changes_note: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=True,
    )

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
        doc="The contractor who worked the hours",
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<Timesheet {self.period_start}..{self.period_end} [{self.workflow_state}]>"
