"""
BillingLifecycle: invoice review and settlement, timesheets, and the
remittance read surface.
"""

from datetime import date
from decimal import Decimal

import pytest

from workforce_kernel.domain.states import (
    InvoiceState,
    PaymentDirection,
    RemittanceMilestone,
    RemittanceStatus,
    TimesheetState,
)
from workforce_kernel.exceptions import (
    ForbiddenError,
    GateNotSatisfiedError,
    InvalidTransitionError,
    ValidationError,
)
from workforce_services.billing_lifecycle import InvoiceDraft, PaymentDetails, TimesheetDraft

DAY = 86_400


@pytest.fixture
def paid_invoice(world, sent_invoice, billing):
    """An invoice whose payment has been received from the agency."""
    invoice = sent_invoice()
    return billing.transition_invoice(
        world.admin, invoice.id, "payment_received",
        payment=PaymentDetails(
            amount_received=Decimal("1000.00"), payer_id=world.agency_user.user_id
        ),
    )


@pytest.fixture
def approved_timesheet(world, active_contract, billing):
    contract = active_contract()
    sheet = billing.create_timesheet(
        world.contractor,
        TimesheetDraft(
            contract_id=contract.id,
            period_start=date(2024, 3, 4),
            period_end=date(2024, 3, 8),
            total_hours=Decimal("10"),
        ),
    )
    billing.transition_timesheet(world.contractor, sheet.id, "submitted")
    return billing.transition_timesheet(world.admin, sheet.id, TimesheetState.APPROVED)


class TestInvoiceCreation:
    def test_due_date_follows_payment_terms(self, world, active_contract, billing, dispatched):
        contract = active_contract()
        invoice = billing.create_invoice(
            world.admin,
            InvoiceDraft(
                contract_id=contract.id, amount=Decimal("1000"), tax_amount=Decimal("200"),
            ),
        )

        assert invoice.issue_date == date(2024, 3, 1)
        assert invoice.due_date == date(2024, 3, 31)
        assert invoice.total_amount == Decimal("1200.00")
        assert invoice.currency == "USD"
        assert invoice.status == "draft"
        assert "invoice.created" in dispatched.names()

    def test_contract_must_be_active(self, world, contracts, billing, make_draft):
        draft = contracts.create_contract(world.admin, make_draft())
        with pytest.raises(ValidationError):
            billing.create_invoice(
                world.admin, InvoiceDraft(contract_id=draft.id, amount=Decimal("10"))
            )

    def test_negative_amount_rejected(self, world, active_contract, billing):
        contract = active_contract()
        with pytest.raises(ValidationError):
            billing.create_invoice(
                world.admin, InvoiceDraft(contract_id=contract.id, amount=Decimal("-1"))
            )

    def test_due_before_issue_rejected(self, world, active_contract, billing):
        contract = active_contract()
        with pytest.raises(ValidationError):
            billing.create_invoice(
                world.admin,
                InvoiceDraft(
                    contract_id=contract.id, amount=Decimal("10"), due_date=date(2024, 2, 1)
                ),
            )

    def test_contractor_cannot_invoice(self, world, active_contract, billing):
        contract = active_contract()
        with pytest.raises(ForbiddenError):
            billing.create_invoice(
                world.contractor, InvoiceDraft(contract_id=contract.id, amount=Decimal("10"))
            )


class TestInvoiceReview:
    def test_changes_loop_then_reject(self, world, active_contract, billing):
        contract = active_contract()
        invoice = billing.create_invoice(
            world.admin, InvoiceDraft(contract_id=contract.id, amount=Decimal("10"))
        )
        billing.transition_invoice(world.admin, invoice.id, "reviewing")

        with pytest.raises(GateNotSatisfiedError):
            billing.transition_invoice(world.admin, invoice.id, "changes_requested")
        changed = billing.transition_invoice(
            world.admin, invoice.id, "changes_requested", changes_note="Add PO number"
        )
        assert changed.changes_note == "Add PO number"

        billing.transition_invoice(world.admin, invoice.id, "reviewing")
        rejected = billing.transition_invoice(
            world.admin, invoice.id, InvoiceState.REJECTED, rejection_reason="Duplicate"
        )
        assert rejected.workflow_state is InvoiceState.REJECTED
        assert rejected.rejection_reason == "Duplicate"

    def test_zero_amount_cannot_be_submitted(self, world, active_contract, billing):
        contract = active_contract()
        invoice = billing.create_invoice(
            world.admin, InvoiceDraft(contract_id=contract.id, amount=Decimal("0"))
        )
        with pytest.raises(GateNotSatisfiedError):
            billing.transition_invoice(world.admin, invoice.id, "reviewing")

    def test_skipping_review_is_not_a_transition(self, world, active_contract, billing):
        contract = active_contract()
        invoice = billing.create_invoice(
            world.admin, InvoiceDraft(contract_id=contract.id, amount=Decimal("10"))
        )
        with pytest.raises(InvalidTransitionError):
            billing.transition_invoice(world.admin, invoice.id, "sent")


class TestOverdueProjection:
    def test_unpaid_invoice_past_due_reads_overdue(self, world, sent_invoice, billing, clock):
        invoice = sent_invoice()
        assert invoice.status == "sent"

        clock.advance(30 * DAY)
        assert billing.get_invoice(world.admin, invoice.id).status == "sent"

        clock.advance(DAY)
        late = billing.get_invoice(world.admin, invoice.id)
        assert late.status == "overdue"
        assert late.workflow_state is InvoiceState.SENT
        assert [i.id for i in billing.list_invoices(world.admin, workflow_state="sent")] == [
            invoice.id
        ]

    def test_paid_invoice_is_never_overdue(self, world, paid_invoice, billing, clock):
        clock.advance(90 * DAY)
        assert billing.get_invoice(world.admin, paid_invoice.id).status == "payment_received"


class TestSettlement:
    def test_payment_appends_completed_receipt(self, world, paid_invoice, billing, dispatched):
        assert paid_invoice.workflow_state is InvoiceState.PAYMENT_RECEIVED
        assert paid_invoice.amount_received == Decimal("1000.00")
        assert paid_invoice.paid_at is not None

        [entry] = billing.remittances_for_invoice(world.admin, paid_invoice.id)
        assert entry.milestone is RemittanceMilestone.PAYMENT_RECEIVED
        assert entry.status is RemittanceStatus.COMPLETED
        assert entry.payment_type is PaymentDirection.RECEIVED
        assert entry.recipient_id == world.admin.user_id
        assert entry.sender_id == world.agency_user.user_id
        assert "invoice.record_payment" in dispatched.names()

    def test_pay_contractor_appends_pending_payout(self, world, paid_invoice, billing):
        settled = billing.transition_invoice(world.admin, paid_invoice.id, "self_billed")
        assert settled.workflow_state is InvoiceState.SELF_BILLED

        [payout] = billing.my_remittances(world.contractor, PaymentDirection.RECEIVED)
        assert payout.milestone is RemittanceMilestone.CONTRACTOR_PAYMENT_SENT
        assert payout.status is RemittanceStatus.PENDING
        assert payout.amount == Decimal("1000.00")
        assert billing.my_remittance_summary(world.contractor).pending_count == 1

    def test_split_must_balance(self, world, paid_invoice, billing):
        unbalanced = PaymentDetails(
            payroll_recipient_id=world.manager.user_id,
            contractor_amount=Decimal("600.00"),
            payroll_amount=Decimal("300.00"),
        )
        with pytest.raises(GateNotSatisfiedError):
            billing.transition_invoice(world.admin, paid_invoice.id, "split", payment=unbalanced)
        assert len(billing.remittances_for_invoice(world.admin, paid_invoice.id)) == 1

        balanced = PaymentDetails(
            payroll_recipient_id=world.manager.user_id,
            contractor_amount=Decimal("600.00"),
            payroll_amount=Decimal("400.00"),
        )
        billing.transition_invoice(world.admin, paid_invoice.id, "split", payment=balanced)
        amounts = {
            r.milestone: r.amount
            for r in billing.remittances_for_invoice(world.admin, paid_invoice.id)
        }
        assert amounts == {
            RemittanceMilestone.PAYMENT_RECEIVED: Decimal("1000.00"),
            RemittanceMilestone.CONTRACTOR_PAYMENT_SENT: Decimal("600.00"),
            RemittanceMilestone.PAYROLL_PAYMENT_SENT: Decimal("400.00"),
        }

    def test_payroll_needs_recipient(self, world, paid_invoice, billing):
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            billing.transition_invoice(world.admin, paid_invoice.id, "payroll_routed")
        assert exc_info.value.gate == "payroll_recipient_set"

    def test_advancing_payout_needs_global_update(self, world, paid_invoice, billing):
        billing.transition_invoice(world.admin, paid_invoice.id, "self_billed")
        [payout] = billing.my_remittances(world.contractor, "received")

        with pytest.raises(ForbiddenError):
            billing.advance_remittance(world.manager, payout.id, "completed")

        done = billing.advance_remittance(world.admin, payout.id, RemittanceStatus.COMPLETED)
        assert done.completed_at is not None
        summary = billing.my_remittance_summary(world.contractor)
        assert summary.received == {"USD": Decimal("1000.00")}
        assert summary.pending_count == 0


class TestTimesheets:
    def test_amount_defaults_to_hours_times_rate(self, world, approved_timesheet):
        assert approved_timesheet.total_amount == Decimal("500.00")
        assert approved_timesheet.owner_id == world.contractor.user_id
        assert approved_timesheet.approved_at is not None

    def test_send_creates_one_invoice(self, world, approved_timesheet, billing):
        sent = billing.send_timesheet_to_agency(world.contractor, approved_timesheet.id)

        assert sent.timesheet.workflow_state is TimesheetState.SENT
        assert sent.timesheet.invoice_id == sent.invoice.id
        assert sent.invoice.timesheet_id == approved_timesheet.id
        assert sent.invoice.amount == Decimal("500.00")
        assert sent.invoice.workflow_state is InvoiceState.DRAFT
        assert billing.remittances_for_invoice(world.admin, sent.invoice.id) == []

        with pytest.raises(InvalidTransitionError):
            billing.send_timesheet_to_agency(world.contractor, approved_timesheet.id)

    def test_transition_to_sent_goes_through_agency_send(self, world, approved_timesheet, billing):
        sheet = billing.transition_timesheet(world.contractor, approved_timesheet.id, "sent")
        assert sheet.invoice_id is not None
        assert [i.timesheet_id for i in billing.list_invoices(world.contractor)] == [sheet.id]

    def test_zero_hours_cannot_be_submitted(self, world, active_contract, billing):
        contract = active_contract()
        sheet = billing.create_timesheet(
            world.contractor,
            TimesheetDraft(
                contract_id=contract.id, period_start=date(2024, 3, 4),
                period_end=date(2024, 3, 8), total_hours=Decimal("0"),
            ),
        )
        with pytest.raises(GateNotSatisfiedError):
            billing.transition_timesheet(world.contractor, sheet.id, "submitted")

    def test_inverted_period_rejected(self, world, active_contract, billing):
        contract = active_contract()
        with pytest.raises(ValidationError):
            billing.create_timesheet(
                world.contractor,
                TimesheetDraft(
                    contract_id=contract.id, period_start=date(2024, 3, 8),
                    period_end=date(2024, 3, 4), total_hours=Decimal("8"),
                ),
            )

    def test_review_outcomes_need_text(self, world, active_contract, billing):
        contract = active_contract()
        sheet = billing.create_timesheet(
            world.contractor,
            TimesheetDraft(
                contract_id=contract.id, period_start=date(2024, 3, 4),
                period_end=date(2024, 3, 8), total_hours=Decimal("8"),
            ),
        )
        billing.transition_timesheet(world.contractor, sheet.id, "submitted")
        billing.transition_timesheet(world.admin, sheet.id, "under_review")
        with pytest.raises(GateNotSatisfiedError):
            billing.transition_timesheet(world.admin, sheet.id, "rejected")
        rejected = billing.transition_timesheet(
            world.admin, sheet.id, "rejected", rejection_reason="Wrong week"
        )
        assert rejected.rejection_reason == "Wrong week"

    def test_contractor_lists_own_timesheets(self, world, approved_timesheet, billing):
        assert [t.id for t in billing.list_timesheets(world.contractor)] == [
            approved_timesheet.id
        ]
        assert billing.list_timesheets(world.outsider) == []
