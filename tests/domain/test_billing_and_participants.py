"""Pure billing projections and participant aggregates."""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from workforce_kernel.domain.billing import invoice_total, is_overdue, project_invoice_status
from workforce_kernel.domain.participants import (
    all_approvers_approved,
    all_signatures_complete,
    counterpart_signatures_complete,
    has_role,
    primary_user,
)
from workforce_kernel.domain.states import OVERDUE, ParticipantRole

SIGNED = datetime(2024, 2, 1, tzinfo=timezone.utc)
TODAY = date(2024, 3, 1)


def _p(role, *, approved=False, requires_signature=False, signed_at=None,
       is_active=True, is_primary=False, user_id=None):
    return SimpleNamespace(
        role=role.value,
        approved=approved,
        requires_signature=requires_signature,
        signed_at=signed_at,
        is_active=is_active,
        is_primary=is_primary,
        user_id=user_id,
    )


class TestInvoiceTotal:
    def test_sum(self):
        assert invoice_total(Decimal("100.00"), Decimal("20.00")) == Decimal("120.00")

    def test_missing_tax(self):
        assert invoice_total(Decimal("100.00"), None) == Decimal("100.00")


class TestOverdueProjection:
    def test_past_due_unpaid_is_overdue(self):
        assert project_invoice_status("sent", date(2024, 2, 1), None, TODAY) == OVERDUE

    def test_due_today_is_not_overdue(self):
        assert project_invoice_status("sent", TODAY, None, TODAY) == "sent"

    def test_paid_is_never_overdue(self):
        assert project_invoice_status("payment_received", date(2024, 1, 1), SIGNED, TODAY) == "payment_received"

    @pytest.mark.parametrize("state", ["cancelled", "rejected"])
    def test_closed_states_are_never_overdue(self, state):
        assert not is_overdue(state, date(2024, 1, 1), None, TODAY)


class TestApprovals:
    def test_no_approvers_is_not_approved(self):
        assert all_approvers_approved([]) is False
        assert all_approvers_approved([_p(ParticipantRole.CLIENT, approved=True)]) is False

    def test_every_approver_must_approve(self):
        one = _p(ParticipantRole.APPROVER, approved=True)
        two = _p(ParticipantRole.APPROVER)
        assert all_approvers_approved([one, two]) is False
        assert all_approvers_approved([one]) is True

    def test_inactive_approvers_ignored(self):
        ps = [
            _p(ParticipantRole.APPROVER, approved=True),
            _p(ParticipantRole.APPROVER, is_active=False),
        ]
        assert all_approvers_approved(ps) is True


class TestSignatures:
    def test_no_signers_is_not_signed(self):
        assert all_signatures_complete([]) is False
        assert all_signatures_complete([_p(ParticipantRole.CLIENT)]) is False
        assert counterpart_signatures_complete([_p(ParticipantRole.CONTRACTOR, requires_signature=True)]) is False

    def test_counterpart_ignores_contractor(self):
        ps = [
            _p(ParticipantRole.AGENCY, requires_signature=True, signed_at=SIGNED),
            _p(ParticipantRole.CONTRACTOR, requires_signature=True),
        ]
        assert counterpart_signatures_complete(ps) is True
        assert all_signatures_complete(ps) is False

    def test_all_signed(self):
        ps = [
            _p(ParticipantRole.AGENCY, requires_signature=True, signed_at=SIGNED),
            _p(ParticipantRole.CONTRACTOR, requires_signature=True, signed_at=SIGNED),
            _p(ParticipantRole.ADDITIONAL),
        ]
        assert all_signatures_complete(ps) is True


class TestRoleLookups:
    def test_has_role_skips_inactive(self):
        assert not has_role([_p(ParticipantRole.AGENCY, is_active=False)], ParticipantRole.AGENCY)

    def test_primary_user_preferred(self):
        first, primary = uuid4(), uuid4()
        ps = [
            _p(ParticipantRole.CONTRACTOR, user_id=first),
            _p(ParticipantRole.CONTRACTOR, user_id=primary, is_primary=True),
        ]
        assert primary_user(ps, ParticipantRole.CONTRACTOR) == primary

    def test_primary_user_falls_back_to_first_with_user(self):
        only = uuid4()
        ps = [
            _p(ParticipantRole.AGENCY, is_primary=True),
            _p(ParticipantRole.AGENCY, user_id=only),
        ]
        assert primary_user(ps, ParticipantRole.AGENCY) == only
        assert primary_user([], ParticipantRole.AGENCY) is None
