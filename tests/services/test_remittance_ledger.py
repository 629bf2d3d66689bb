"""
Remittance ledger: idempotent append, forward-only status, immutability.
"""

from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import select

from workforce_kernel.db.engine import session_scope
from workforce_kernel.domain.states import (
    PaymentDirection,
    RecipientType,
    RemittanceMilestone,
    RemittanceStatus,
)
from workforce_kernel.exceptions import (
    ImmutabilityViolationError,
    RecordNotFoundError,
    ValidationError,
)
from workforce_kernel.models.remittance import Remittance
from workforce_kernel.services.remittance_ledger import RemittanceLedger, RemittanceParams
from workforce_kernel.utils.idempotency import generate_idempotency_key, parse_idempotency_key


@pytest.fixture
def invoice(sent_invoice):
    return sent_invoice()


@pytest.fixture
def params(world, invoice):
    return RemittanceParams(
        tenant_id=world.tenant_id,
        amount=Decimal("1000.00"),
        currency="usd",
        recipient_id=world.admin.user_id,
        sender_id=world.agency_user.user_id,
        actor_id=world.admin.user_id,
        invoice_id=invoice.id,
        contract_id=invoice.contract_id,
        description="wire 42",
    )


def _append(clock, milestone, params):
    with session_scope() as s:
        return RemittanceLedger(s, clock).append(milestone, params)


class TestAppend:
    def test_payment_received_is_completed_on_insert(self, clock, params, invoice):
        info = _append(clock, RemittanceMilestone.PAYMENT_RECEIVED, params)

        assert info.status is RemittanceStatus.COMPLETED
        assert info.completed_at is not None
        assert info.payment_type is PaymentDirection.RECEIVED
        assert info.recipient_type is RecipientType.ADMIN
        assert info.currency == "USD"
        assert info.idempotency_key == generate_idempotency_key(
            "invoice", invoice.id, "payment_received"
        )

    @pytest.mark.parametrize(
        "milestone,recipient_type",
        [
            ("contractor_payment_sent", RecipientType.CONTRACTOR),
            ("payroll_payment_sent", RecipientType.PAYROLL),
        ],
    )
    def test_outgoing_milestones_start_pending(self, clock, params, milestone, recipient_type):
        info = _append(clock, milestone, params)
        assert info.status is RemittanceStatus.PENDING
        assert info.completed_at is None
        assert info.payment_type is PaymentDirection.SENT
        assert info.recipient_type is recipient_type

    def test_repeat_append_returns_first_entry(self, clock, params, world, invoice, captured_logs):
        first = _append(clock, "payment_received", params)
        again = _append(clock, "payment_received", replace(params, amount=Decimal("5.00")))

        assert again.id == first.id
        assert again.amount == Decimal("1000.00")
        with session_scope() as s:
            assert len(RemittanceLedger(s, clock).by_invoice(world.tenant_id, invoice.id)) == 1
        assert any(r["message"] == "remittance_append_deduplicated" for r in captured_logs())

    def test_contract_anchor_when_no_invoice(self, clock, params, invoice):
        info = _append(clock, "contractor_payment_sent", replace(params, invoice_id=None))
        anchor, anchor_id, milestone = parse_idempotency_key(info.idempotency_key)
        assert (anchor, anchor_id, milestone) == (
            "contract", str(invoice.contract_id), "contractor_payment_sent"
        )

    def test_anchor_required(self, clock, params):
        with pytest.raises(ValidationError):
            _append(clock, "payment_received", replace(params, invoice_id=None, contract_id=None))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1.00")])
    def test_amount_must_be_positive(self, clock, params, amount):
        with pytest.raises(ValidationError):
            _append(clock, "payment_received", replace(params, amount=amount))

    def test_unknown_milestone(self, clock, params):
        with pytest.raises(ValidationError):
            _append(clock, "refund_issued", params)


class TestAdvanceStatus:
    def _pending(self, clock, params):
        return _append(clock, "contractor_payment_sent", params)

    def test_forward_path(self, clock, params, world):
        entry = self._pending(clock, params)
        with session_scope() as s:
            ledger = RemittanceLedger(s, clock)
            ledger.advance_status(entry.id, world.tenant_id, "processing", world.admin.user_id)
            done = ledger.advance_status(
                entry.id, world.tenant_id, RemittanceStatus.COMPLETED, world.admin.user_id,
                notes="cleared",
            )
        assert done.status is RemittanceStatus.COMPLETED
        assert done.completed_at is not None
        assert done.notes == "cleared"

    def test_status_change_leaves_facts_alone(self, clock, params, world):
        entry = self._pending(clock, params)
        with session_scope() as s:
            done = RemittanceLedger(s, clock).advance_status(
                entry.id, world.tenant_id, "completed", world.admin.user_id
            )
        unchanged = ("amount", "currency", "recipient_id", "sender_id", "idempotency_key")
        assert {f: getattr(done, f) for f in unchanged} == {
            f: getattr(entry, f) for f in unchanged
        }

    @pytest.mark.parametrize("target", ["pending", "settled"])
    def test_backwards_or_unknown_rejected(self, clock, params, world, target):
        entry = self._pending(clock, params)
        with pytest.raises(ValidationError):
            with session_scope() as s:
                RemittanceLedger(s, clock).advance_status(
                    entry.id, world.tenant_id, target, world.admin.user_id
                )

    def test_completed_is_final(self, clock, params, world):
        entry = _append(clock, "payment_received", params)
        with pytest.raises(ValidationError):
            with session_scope() as s:
                RemittanceLedger(s, clock).advance_status(
                    entry.id, world.tenant_id, "failed", world.admin.user_id
                )

    def test_other_tenant_cannot_see_entry(self, clock, params, world):
        entry = self._pending(clock, params)
        with pytest.raises(RecordNotFoundError):
            with session_scope() as s:
                RemittanceLedger(s, clock).advance_status(
                    entry.id, world.other_tenant_id, "processing", world.outsider.user_id
                )


class TestQueries:
    def test_by_user_direction(self, clock, params, world):
        _append(clock, "payment_received", params)
        _append(
            clock,
            "contractor_payment_sent",
            replace(
                params,
                recipient_id=world.contractor.user_id,
                sender_id=world.admin.user_id,
            ),
        )
        with session_scope() as s:
            ledger = RemittanceLedger(s, clock)
            received = ledger.by_user(world.tenant_id, world.admin.user_id, "received")
            sent = ledger.by_user(world.tenant_id, world.admin.user_id, PaymentDirection.SENT)
            both = ledger.by_user(world.tenant_id, world.admin.user_id)

        assert [r.milestone for r in received] == [RemittanceMilestone.PAYMENT_RECEIVED]
        assert [r.milestone for r in sent] == [RemittanceMilestone.CONTRACTOR_PAYMENT_SENT]
        assert len(both) == 2

    def test_unknown_direction_is_a_validation_error(self, world, billing):
        with pytest.raises(ValidationError) as exc_info:
            billing.my_remittances(world.admin, "sideways")
        assert exc_info.value.field == "direction"

    def test_summary_counts_completed_and_pending(self, clock, params, world):
        _append(clock, "payment_received", params)
        _append(clock, "payroll_payment_sent", replace(params, sender_id=world.admin.user_id))
        with session_scope() as s:
            summary = RemittanceLedger(s, clock).summary_for_user(
                world.tenant_id, world.admin.user_id
            )
        assert summary.received == {"USD": Decimal("1000.00")}
        assert summary.sent == {}
        assert summary.pending_count == 1


class TestImmutability:
    def test_amount_cannot_be_rewritten(self, clock, params):
        entry = _append(clock, "payment_received", params)
        with pytest.raises(ImmutabilityViolationError):
            with session_scope() as s:
                row = s.get(Remittance, entry.id)
                row.amount = Decimal("1.00")
                s.flush()

    def test_entries_cannot_be_deleted(self, clock, params):
        entry = _append(clock, "payment_received", params)
        with pytest.raises(ImmutabilityViolationError):
            with session_scope() as s:
                s.delete(s.get(Remittance, entry.id))
                s.flush()

        with session_scope() as s:
            assert s.execute(
                select(Remittance).where(Remittance.id == entry.id)
            ).scalar_one_or_none() is not None
