"""
Module: workforce_kernel.models.remittance
Responsibility: ORM persistence for the append-only remittance ledger.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain vocabularies only.

Invariants enforced:
    - uq_remittance_idempotency_key: one entry per (invoice or contract,
      milestone).  A repeated append resolves to the existing row.
    - Append-only: after INSERT only ``status``, ``notes``, ``completed_at``
      and the audit columns may change; rows are never deleted.  Enforced
      by db/immutability.py listeners.
    - ck_remittance_amount_positive: amounts are strictly positive.

Audit relevance:
    Every movement of money into or out of the platform has exactly one row
    here, stamped with ``recorded_at`` from the injected clock.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workforce_kernel.db.base import TrackedBase, UUIDString
from workforce_kernel.db.types import Money
from workforce_kernel.domain.states import (
    PaymentDirection,
    RecipientType,
    RemittanceMilestone,
    RemittanceStatus,
)

# Columns that may change after insert
REMITTANCE_MUTABLE_FIELDS: frozenset[str] = frozenset({
    "status",
    "notes",
    "completed_at",
    "updated_at",
    "updated_by_id",
})


class Remittance(TrackedBase):
    """One money movement tied to an invoice or contract milestone."""

    __tablename__ = "remittances"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_remittance_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_remittance_amount_positive"),
        Index("idx_remittance_invoice", "invoice_id"),
        Index("idx_remittance_recipient", "tenant_id", "recipient_id"),
        Index("idx_remittance_sender", "tenant_id", "sender_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=True,
    )

    amount: Mapped[Money] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    payment_type: Mapped[PaymentDirection] = mapped_column(String(10), nullable=False)

    recipient_type: Mapped[RecipientType] = mapped_column(String(20), nullable=False)

    recipient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sender_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[RemittanceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RemittanceStatus.PENDING.value,
    )

    milestone: Mapped[RemittanceMilestone] = mapped_column(String(40), nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Remittance {self.milestone} {self.amount} {self.currency} [{self.status}]>"
