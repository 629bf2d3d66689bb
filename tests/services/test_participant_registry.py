"""
Participant registry: approver assignment, approver-never-signs, duplicates,
primary demotion, protected removal and signature immutability.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from workforce_kernel.db.engine import session_scope
from workforce_kernel.domain.states import ParticipantRole
from workforce_kernel.exceptions import (
    ImmutabilityViolationError,
    InvariantViolation,
    NoEligibleApproverError,
    RecordNotFoundError,
    ValidationError,
)
from workforce_kernel.models.contract import ContractParticipant
from workforce_kernel.services.identity_service import IdentityService
from workforce_kernel.services.participant_service import ParticipantRegistry


@pytest.fixture
def draft_contract(world, contracts, make_draft):
    return contracts.create_contract(world.admin, make_draft())


def _participants(clock, contract):
    with session_scope() as s:
        return ParticipantRegistry(s, clock).list_participants(contract.id, contract.tenant_id)


class TestApproverAssignment:
    def test_oldest_eligible_user_is_assigned(self, world, clock, draft_contract):
        participants = _participants(clock, draft_contract)
        approvers = [p for p in participants if p.role is ParticipantRole.APPROVER]

        assert len(approvers) == 1
        assert approvers[0].user_id == world.admin.user_id
        assert approvers[0].requires_signature is False
        assert approvers[0].approved is False

    def test_assignment_is_idempotent(self, world, clock, draft_contract):
        before = [p for p in _participants(clock, draft_contract) if p.role is ParticipantRole.APPROVER]
        with session_scope() as s:
            again = ParticipantRegistry(s, clock).assign_approver(
                draft_contract.id, world.tenant_id, world.manager.user_id
            )
        assert again.id == before[0].id

    def test_inactive_users_are_skipped(self, world, clock, contracts, make_draft):
        with session_scope() as s:
            IdentityService(s, clock).deactivate_user(world.admin.user_id)

        created = contracts.create_contract(world.manager, make_draft())
        approvers = [
            p for p in _participants(clock, created) if p.role is ParticipantRole.APPROVER
        ]
        assert [p.user_id for p in approvers] == [world.backup_approver.user_id]

    def test_no_eligible_approver_aborts_creation(
        self, world, clock, contracts, make_draft, captured_logs
    ):
        with session_scope() as s:
            identity = IdentityService(s, clock)
            identity.deactivate_user(world.admin.user_id)
            identity.deactivate_user(world.backup_approver.user_id)

        with pytest.raises(NoEligibleApproverError):
            contracts.create_contract(world.manager, make_draft())

        assert contracts.list_contracts(world.manager) == []
        alerts = [r for r in captured_logs() if r["message"] == "no_eligible_approver"]
        assert alerts and alerts[0]["level"] == "CRITICAL"


class TestApproverNeverSigns:
    def test_registry_rejects_signing_approver(self, world, clock, draft_contract, captured_logs):
        with pytest.raises(InvariantViolation):
            with session_scope() as s:
                ParticipantRegistry(s, clock).add_participant(
                    contract_id=draft_contract.id,
                    tenant_id=world.tenant_id,
                    role=ParticipantRole.APPROVER,
                    actor_id=world.admin.user_id,
                    user_id=world.backup_approver.user_id,
                    requires_signature=True,
                )

        approvers = [
            p for p in _participants(clock, draft_contract) if p.role is ParticipantRole.APPROVER
        ]
        assert len(approvers) == 1
        assert any(
            r["message"] == "invariant_violation" and r.get("invariant") == "approver_never_signs"
            for r in captured_logs()
        )

    def test_lifecycle_surface_rejects_it_too(self, world, contracts, draft_contract):
        with pytest.raises(InvariantViolation):
            contracts.add_participant(
                world.admin, draft_contract.id, "approver",
                user_id=world.backup_approver.user_id, requires_signature=True,
            )


class TestAddAndRemove:
    def test_duplicate_returns_existing(self, world, contracts, draft_contract, captured_logs):
        first = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.AGENCY,
            company_id=world.agency_company_id, requires_signature=True,
        )
        second = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.AGENCY,
            company_id=world.agency_company_id, requires_signature=True,
        )
        assert second.id == first.id
        assert any(r["message"] == "participant_duplicate_skipped" for r in captured_logs())

    def test_new_primary_demotes_previous(self, world, clock, contracts, draft_contract):
        first = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.CONTRACTOR,
            user_id=world.contractor.user_id, is_primary=True,
        )
        second = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.CONTRACTOR,
            user_id=world.backup_approver.user_id, is_primary=True,
        )
        by_id = {p.id: p for p in _participants(clock, draft_contract)}
        assert by_id[second.id].is_primary is True
        assert by_id[first.id].is_primary is False

    def test_needs_user_or_company(self, world, contracts, draft_contract):
        with pytest.raises(ValidationError):
            contracts.add_participant(world.admin, draft_contract.id, ParticipantRole.ADDITIONAL)

    def test_foreign_user_rejected(self, world, contracts, draft_contract):
        with pytest.raises(ValidationError):
            contracts.add_participant(
                world.admin, draft_contract.id, ParticipantRole.ADDITIONAL,
                user_id=world.outsider.user_id,
            )

    def test_unknown_role_rejected(self, world, contracts, draft_contract):
        with pytest.raises(ValidationError):
            contracts.add_participant(
                world.admin, draft_contract.id, "sponsor", user_id=world.manager.user_id
            )

    def test_protected_role_cannot_be_removed(self, world, clock, contracts, draft_contract):
        approver = next(
            p for p in _participants(clock, draft_contract) if p.role is ParticipantRole.APPROVER
        )
        with pytest.raises(ValidationError):
            contracts.remove_participant(world.admin, draft_contract.id, approver.id)

    def test_additional_participant_can_be_removed(self, world, clock, contracts, draft_contract):
        extra = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.ADDITIONAL,
            user_id=world.manager.user_id,
        )
        removed = contracts.remove_participant(world.admin, draft_contract.id, extra.id)

        assert removed.is_active is False
        assert extra.id not in {p.id for p in _participants(clock, draft_contract)}

    def test_participant_of_another_contract_is_not_found(
        self, world, clock, contracts, make_draft
    ):
        hidden = contracts.create_contract(
            world.admin, make_draft(company_id=world.agency_company_id)
        )
        with pytest.raises(RecordNotFoundError):
            contracts.get_contract(world.manager, hidden.id)
        signer = contracts.add_participant(
            world.admin, hidden.id, ParticipantRole.SIGNER, user_id=world.agency_user.user_id,
        )
        own = contracts.create_contract(world.manager, make_draft())

        with pytest.raises(RecordNotFoundError):
            contracts.remove_participant(world.manager, own.id, signer.id)
        assert signer.id in {p.id for p in _participants(clock, hidden)}

    def test_roster_frozen_after_cancel(self, world, clock, contracts, draft_contract):
        extra = contracts.add_participant(
            world.admin, draft_contract.id, ParticipantRole.ADDITIONAL,
            user_id=world.manager.user_id,
        )
        contracts.transition(world.admin, draft_contract.id, "cancelled")

        with pytest.raises(ValidationError) as exc_info:
            contracts.remove_participant(world.admin, draft_contract.id, extra.id)
        assert exc_info.value.field == "contract_id"
        assert extra.id in {p.id for p in _participants(clock, draft_contract)}

    def test_roster_closes_once_active(self, world, contracts, active_contract):
        contract = active_contract()
        with pytest.raises(ValidationError):
            contracts.add_participant(
                world.admin, contract.id, ParticipantRole.ADDITIONAL,
                user_id=world.manager.user_id,
            )


class TestSignatures:
    def test_recorded_signature_is_immutable(self, world, active_contract):
        contract = active_contract()
        with pytest.raises(ImmutabilityViolationError):
            with session_scope() as s:
                signed = s.execute(
                    select(ContractParticipant).where(
                        ContractParticipant.contract_id == contract.id,
                        ContractParticipant.signed_at.is_not(None),
                    )
                ).scalars().first()
                signed.signed_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
                s.flush()

    def test_nothing_left_to_sign(self, world, contracts, active_contract):
        contract = active_contract()
        with session_scope() as s:
            with pytest.raises(ValidationError):
                ParticipantRegistry(s).record_signature(
                    contract.id, world.tenant_id, world.contractor.user_id
                )
