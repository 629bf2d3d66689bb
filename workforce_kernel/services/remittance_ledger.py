"""
RemittanceLedger -- append-only record of money movements.

Responsibility:
    Appends one remittance per (invoice or contract, milestone), advances
    settlement status forward only, and answers the ledger queries.

Architecture position:
    Kernel > Services.  Called by the billing lifecycle inside the same unit
    of work as the invoice transition that produced the milestone.

Invariants enforced:
    - Idempotency: the key ``<anchor>:<anchor_id>:<milestone>`` is unique.
      A repeated append resolves to the existing row and writes nothing.
      The insert is ``INSERT ... ON CONFLICT (idempotency_key) DO NOTHING``
      so a concurrent duplicate never aborts the surrounding transaction.
    - Append-only: rows are never deleted and only status, notes and
      completed_at change (ORM listeners in db/immutability.py).
    - Status moves forward only (REMITTANCE_TRANSITIONS).

Failure modes:
    - ValidationError: non-positive amount, bad currency, no anchor,
      backwards status move.
    - RecordNotFoundError: unknown remittance id in advance_status.
    - ConflictRetryable: a concurrent status change won.
    - ConfigurationError: database dialect without ON CONFLICT support.

Audit relevance:
    recorded_at is stamped from the injected clock; each append and status
    change is logged with the idempotency key.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.dialects import postgresql, sqlite

from workforce_kernel.db.engine import DATABASE_URL_ENV
from workforce_kernel.db.types import round_money, to_decimal, validate_currency
from workforce_kernel.domain.lifecycles import REMITTANCE_TRANSITIONS
from workforce_kernel.domain.states import (
    PaymentDirection,
    RecipientType,
    RemittanceMilestone,
    RemittanceStatus,
)
from workforce_kernel.exceptions import (
    ConfigurationError,
    RecordNotFoundError,
    ValidationError,
)
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.remittance import Remittance
from workforce_kernel.services.base import BaseService
from workforce_kernel.utils.idempotency import generate_idempotency_key

logger = get_logger("services.remittance_ledger")


@dataclass(frozen=True)
class _MilestoneRule:
    direction: PaymentDirection
    recipient_type: RecipientType
    status: RemittanceStatus


_MILESTONE_RULES: dict[RemittanceMilestone, _MilestoneRule] = {
    RemittanceMilestone.PAYMENT_RECEIVED: _MilestoneRule(
        PaymentDirection.RECEIVED, RecipientType.ADMIN, RemittanceStatus.COMPLETED,
    ),
    RemittanceMilestone.CONTRACTOR_PAYMENT_SENT: _MilestoneRule(
        PaymentDirection.SENT, RecipientType.CONTRACTOR, RemittanceStatus.PENDING,
    ),
    RemittanceMilestone.PAYROLL_PAYMENT_SENT: _MilestoneRule(
        PaymentDirection.SENT, RecipientType.PAYROLL, RemittanceStatus.PENDING,
    ),
}


@dataclass(frozen=True)
class RemittanceParams:
    """What the caller knows about a money movement."""

    tenant_id: UUID
    amount: Decimal
    currency: str
    recipient_id: UUID
    sender_id: UUID
    actor_id: UUID
    invoice_id: UUID | None = None
    contract_id: UUID | None = None
    description: str | None = None


@dataclass(frozen=True)
class RemittanceInfo:
    """Immutable DTO for a remittance entry."""

    id: UUID
    tenant_id: UUID
    invoice_id: UUID | None
    contract_id: UUID | None
    amount: Decimal
    currency: str
    payment_type: PaymentDirection
    recipient_type: RecipientType
    recipient_id: UUID
    sender_id: UUID
    status: RemittanceStatus
    milestone: RemittanceMilestone
    idempotency_key: str
    description: str | None
    notes: str | None
    recorded_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class RemittanceSummary:
    """Totals for one user, per currency."""

    user_id: UUID
    received: dict[str, Decimal]
    sent: dict[str, Decimal]
    pending_count: int


class RemittanceLedger(BaseService[Remittance]):
    """
    Append-only remittance ledger.

    Contract:
        ``append`` is safe to call any number of times for the same
        milestone; only the first call writes.

    Non-goals:
        - Does NOT move money; it records that a movement happened or is due.
    """

    def _to_dto(self, r: Remittance) -> RemittanceInfo:
        return RemittanceInfo(
            id=r.id,
            tenant_id=r.tenant_id,
            invoice_id=r.invoice_id,
            contract_id=r.contract_id,
            amount=r.amount,
            currency=r.currency,
            payment_type=PaymentDirection(r.payment_type),
            recipient_type=RecipientType(r.recipient_type),
            recipient_id=r.recipient_id,
            sender_id=r.sender_id,
            status=RemittanceStatus(r.status),
            milestone=RemittanceMilestone(r.milestone),
            idempotency_key=r.idempotency_key,
            description=r.description,
            notes=r.notes,
            recorded_at=r.recorded_at,
            completed_at=r.completed_at,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(
        self,
        milestone: RemittanceMilestone | str,
        params: RemittanceParams,
    ) -> RemittanceInfo:
        """
        Record the remittance for ``milestone`` unless it already exists.

        Raises:
            ValidationError: unknown milestone, no anchor, bad amount/currency.
        """
        try:
            ms = RemittanceMilestone(milestone)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown remittance milestone '{milestone}'", field="milestone"
            ) from exc
        rule = _MILESTONE_RULES[ms]

        if params.invoice_id is not None:
            key = generate_idempotency_key("invoice", params.invoice_id, ms.value)
        elif params.contract_id is not None:
            key = generate_idempotency_key("contract", params.contract_id, ms.value)
        else:
            raise ValidationError(
                "A remittance needs an invoice or a contract", field="invoice_id"
            )

        amount = round_money(to_decimal(params.amount, "amount"))
        if amount <= 0:
            raise ValidationError("Remittance amount must be positive", field="amount")
        currency = validate_currency(params.currency)

        existing = self._get_by_key(key)
        if existing is not None:
            logger.info(
                "remittance_append_deduplicated",
                extra={"idempotency_key": key, "remittance_id": str(existing.id)},
            )
            return self._to_dto(existing)

        now = self._clock.now_utc()
        row: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": params.tenant_id,
            "invoice_id": params.invoice_id,
            "contract_id": params.contract_id,
            "amount": amount,
            "currency": currency,
            "payment_type": rule.direction.value,
            "recipient_type": rule.recipient_type.value,
            "recipient_id": params.recipient_id,
            "sender_id": params.sender_id,
            "status": rule.status.value,
            "milestone": ms.value,
            "idempotency_key": key,
            "description": params.description,
            "recorded_at": now,
            "completed_at": now if rule.status is RemittanceStatus.COMPLETED else None,
            "created_at": now,
            "updated_at": now,
            "created_by_id": params.actor_id,
        }
        self.session.flush()
        result = self.session.execute(self._insert_ignoring_duplicate(row))

        stored = self._get_by_key(key)
        if stored is None:
            raise RecordNotFoundError("Remittance", key)
        if result.rowcount == 1:
            logger.info(
                "remittance_appended",
                extra={
                    "idempotency_key": key,
                    "remittance_id": str(stored.id),
                    "milestone": ms.value,
                    "amount": amount,
                    "currency": currency,
                    "status": rule.status.value,
                },
            )
        else:
            logger.info(
                "remittance_append_deduplicated",
                extra={"idempotency_key": key, "remittance_id": str(stored.id)},
            )
        return self._to_dto(stored)

    def advance_status(
        self,
        remittance_id: UUID,
        tenant_id: UUID,
        to_status: RemittanceStatus | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> RemittanceInfo:
        """
        Move a remittance forward (pending -> processing -> completed|failed).

        Raises:
            ValidationError: backwards, repeated or unknown status.
            RecordNotFoundError: unknown remittance in this tenant.
            ConflictRetryable: a concurrent status change won.
        """
        remittance = self.session.get(Remittance, remittance_id)
        if remittance is None or remittance.tenant_id != tenant_id:
            raise RecordNotFoundError("Remittance", remittance_id)
        try:
            target = RemittanceStatus(to_status)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown remittance status '{to_status}'", field="status"
            ) from exc

        current = RemittanceStatus(remittance.status)
        if target not in REMITTANCE_TRANSITIONS[current]:
            raise ValidationError(
                f"Remittance cannot move from '{current.value}' to '{target.value}'",
                field="status",
            )

        values: dict[str, Any] = {}
        if target is RemittanceStatus.COMPLETED:
            values["completed_at"] = self._clock.now_utc()
        if notes is not None:
            values["notes"] = notes
        self._compare_and_set(
            remittance, "status", current.value, target.value, actor_id, **values
        )
        logger.info(
            "remittance_status_advanced",
            extra={
                "remittance_id": str(remittance_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return self._to_dto(remittance)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, remittance_id: UUID, tenant_id: UUID) -> RemittanceInfo:
        remittance = self.session.get(Remittance, remittance_id)
        if remittance is None or remittance.tenant_id != tenant_id:
            raise RecordNotFoundError("Remittance", remittance_id)
        return self._to_dto(remittance)

    def by_invoice(self, tenant_id: UUID, invoice_id: UUID) -> list[RemittanceInfo]:
        """Entries for one invoice, newest first."""
        stmt = (
            select(Remittance)
            .where(Remittance.tenant_id == tenant_id, Remittance.invoice_id == invoice_id)
            .order_by(Remittance.recorded_at.desc(), Remittance.created_at.desc())
        )
        return [self._to_dto(r) for r in self.session.execute(stmt).scalars()]

    def by_user(
        self,
        tenant_id: UUID,
        user_id: UUID,
        direction: PaymentDirection | str | None = None,
    ) -> list[RemittanceInfo]:
        """
        Entries where the user is recipient or sender, newest first.

        ``direction`` narrows to money the user received (recipient) or
        sent (sender); None (or "both") returns either side.
        """
        if direction in (None, "both"):
            side = or_(Remittance.recipient_id == user_id, Remittance.sender_id == user_id)
        else:
            try:
                wanted = PaymentDirection(direction)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown payment direction '{direction}'", field="direction"
                ) from exc
            if wanted is PaymentDirection.RECEIVED:
                side = Remittance.recipient_id == user_id
            else:
                side = Remittance.sender_id == user_id
        stmt = (
            select(Remittance)
            .where(Remittance.tenant_id == tenant_id, side)
            .order_by(Remittance.recorded_at.desc(), Remittance.created_at.desc())
        )
        return [self._to_dto(r) for r in self.session.execute(stmt).scalars()]

    def summary_for_user(self, tenant_id: UUID, user_id: UUID) -> RemittanceSummary:
        """Completed totals per currency, plus the count still pending."""
        received: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        sent: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        pending = 0
        for r in self.by_user(tenant_id, user_id):
            if r.status in (RemittanceStatus.PENDING, RemittanceStatus.PROCESSING):
                pending += 1
                continue
            if r.status is not RemittanceStatus.COMPLETED:
                continue
            if r.recipient_id == user_id:
                received[r.currency] += r.amount
            if r.sender_id == user_id:
                sent[r.currency] += r.amount
        return RemittanceSummary(
            user_id=user_id,
            received=dict(received),
            sent=dict(sent),
            pending_count=pending,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _get_by_key(self, key: str) -> Remittance | None:
        return self.session.execute(
            select(Remittance).where(Remittance.idempotency_key == key)
        ).scalar_one_or_none()

    def _insert_ignoring_duplicate(self, row: dict[str, Any]):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(Remittance.__table__)
        elif dialect == "sqlite":
            stmt = sqlite.insert(Remittance.__table__)
        else:
            raise ConfigurationError(
                f"Remittance ledger does not support the '{dialect}' dialect",
                setting=DATABASE_URL_ENV,
            )
        return stmt.values(**row).on_conflict_do_nothing(
            index_elements=["idempotency_key"]
        )
