"""
ParticipantRegistry -- who is attached to a contract, and in what role.

Responsibility:
    Adds and removes contract participants, auto-assigns the platform
    approver, records approvals and signatures, and answers the aggregate
    questions the contract workflow gates ask.

Architecture position:
    Kernel > Services.  Consumed by the contract lifecycle service and by
    the gate evaluators of the workflow engine.

Invariants enforced:
    - An approver participant never requires a signature.  The write is
      rejected with InvariantViolation (logged at ERROR) before any row
      exists; the database check constraint backs this up.
    - "All approved" and "all signed" are false when there is nobody to
      approve or sign.
    - Participants are only added while the contract is in draft or a
      pending signature state.

Failure modes:
    - ValidationError: neither user nor company, unknown role, closed contract,
      removing a protected role, nothing to sign.
    - InvariantViolation: approver that requires a signature.
    - NoEligibleApproverError: no active user with contract.approve.global
      (logged at CRITICAL for operators).
    - RecordNotFoundError: contract or participant outside the tenant.
    - ForbiddenError: approving as a user who is not an approver.

Audit relevance:
    approved_at and signed_at come from the injected clock and are the
    evidence that a contract moved to active legitimately.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from workforce_kernel.domain import participants as aggregates
from workforce_kernel.domain.permissions import CONTRACT_APPROVE_GLOBAL
from workforce_kernel.domain.states import (
    PROTECTED_PARTICIPANT_ROLES,
    ContractWorkflowStatus,
    ParticipantRole,
)
from workforce_kernel.exceptions import (
    ForbiddenError,
    InvariantViolation,
    NoEligibleApproverError,
    RecordNotFoundError,
    ValidationError,
)
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.contract import Contract, ContractParticipant
from workforce_kernel.models.identity import Company, User
from workforce_kernel.services.base import BaseService
from workforce_kernel.services.identity_service import IdentityService

logger = get_logger("services.participants")

OPEN_CONTRACT_STATES: frozenset[str] = frozenset({
    ContractWorkflowStatus.DRAFT.value,
    ContractWorkflowStatus.PENDING_AGENCY_SIGN.value,
    ContractWorkflowStatus.PENDING_CONTRACTOR_SIGN.value,
})


@dataclass(frozen=True)
class ParticipantInfo:
    """Immutable DTO for a contract participant."""

    id: UUID
    contract_id: UUID
    user_id: UUID | None
    company_id: UUID | None
    role: ParticipantRole
    approved: bool
    approved_at: datetime | None
    requires_signature: bool
    signed_at: datetime | None
    is_primary: bool
    is_active: bool
    document_url: str | None

    @property
    def is_signed(self) -> bool:
        return self.signed_at is not None


class ParticipantRegistry(BaseService[ContractParticipant]):
    """
    Service for contract participants.

    Contract:
        All writes flush within the caller's unit of work.  Read helpers
        only consider active participants.
    """

    def _to_dto(self, p: ContractParticipant) -> ParticipantInfo:
        return ParticipantInfo(
            id=p.id,
            contract_id=p.contract_id,
            user_id=p.user_id,
            company_id=p.company_id,
            role=ParticipantRole(p.role),
            approved=p.approved,
            approved_at=p.approved_at,
            requires_signature=p.requires_signature,
            signed_at=p.signed_at,
            is_primary=p.is_primary,
            is_active=p.is_active,
            document_url=p.document_url,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_participant(
        self,
        contract_id: UUID,
        tenant_id: UUID,
        role: ParticipantRole | str,
        actor_id: UUID,
        user_id: UUID | None = None,
        company_id: UUID | None = None,
        requires_signature: bool = False,
        approved: bool = False,
        is_primary: bool = False,
        document_url: str | None = None,
    ) -> ParticipantInfo:
        """
        Attach a participant; a duplicate returns the existing one.

        Raises:
            ValidationError, InvariantViolation, RecordNotFoundError.
        """
        if user_id is None and company_id is None:
            raise ValidationError(
                "A participant needs a user, a company, or both", field="user_id"
            )
        participant_role = self._coerce_role(role)
        self._check_approver_signature(contract_id, participant_role, requires_signature)

        contract = self._get_contract(contract_id, tenant_id)
        if contract.workflow_status not in OPEN_CONTRACT_STATES:
            raise ValidationError(
                f"Participants cannot be added to a contract in state "
                f"'{contract.workflow_status}'",
                field="contract_id",
            )
        self._check_identity(tenant_id, user_id, company_id)

        existing = self._find_existing(contract_id, participant_role, user_id, company_id)
        if existing is not None:
            logger.warning(
                "participant_duplicate_skipped",
                extra={
                    "contract_id": str(contract_id),
                    "participant_id": str(existing.id),
                    "role": participant_role.value,
                },
            )
            return self._to_dto(existing)

        participant = self._insert(
            contract=contract,
            role=participant_role,
            actor_id=actor_id,
            user_id=user_id,
            company_id=company_id,
            requires_signature=requires_signature,
            approved=approved,
            is_primary=is_primary,
            document_url=document_url,
        )
        return self._to_dto(participant)

    def assign_approver(
        self,
        contract_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
    ) -> ParticipantInfo:
        """
        Ensure the contract has an approver participant.

        Idempotent: an existing active approver is returned unchanged.
        Otherwise the oldest-created active user of the tenant holding
        ``contract.approve.global`` is attached.
        """
        contract = self._get_contract(contract_id, tenant_id)
        current = self.session.execute(
            select(ContractParticipant)
            .where(
                ContractParticipant.contract_id == contract_id,
                ContractParticipant.role == ParticipantRole.APPROVER.value,
                ContractParticipant.is_active.is_(True),
            )
            .order_by(ContractParticipant.created_at)
        ).scalars().first()
        if current is not None:
            return self._to_dto(current)

        identity = IdentityService(self.session, self._clock)
        candidates = identity.users_with_permission(tenant_id, CONTRACT_APPROVE_GLOBAL)
        if not candidates:
            logger.critical(
                "no_eligible_approver",
                extra={
                    "alert": "operators",
                    "tenant_id": str(tenant_id),
                    "contract_id": str(contract_id),
                    "permission": str(CONTRACT_APPROVE_GLOBAL),
                },
            )
            raise NoEligibleApproverError(str(tenant_id), str(CONTRACT_APPROVE_GLOBAL))

        approver = candidates[0]
        participant = self._insert(
            contract=contract,
            role=ParticipantRole.APPROVER,
            actor_id=actor_id,
            user_id=approver.id,
            company_id=None,
            requires_signature=False,
            approved=False,
            is_primary=True,
            document_url=None,
        )
        logger.info(
            "approver_assigned",
            extra={
                "contract_id": str(contract_id),
                "approver_user_id": str(approver.id),
                "candidate_count": len(candidates),
            },
        )
        return self._to_dto(participant)

    def record_approval(
        self,
        contract_id: UUID,
        tenant_id: UUID,
        user_id: UUID,
    ) -> ParticipantInfo:
        """Mark the user's approver participation approved (idempotent)."""
        self._get_contract(contract_id, tenant_id)
        participant = self.session.execute(
            select(ContractParticipant).where(
                ContractParticipant.contract_id == contract_id,
                ContractParticipant.role == ParticipantRole.APPROVER.value,
                ContractParticipant.user_id == user_id,
                ContractParticipant.is_active.is_(True),
            )
        ).scalars().first()
        if participant is None:
            raise ForbiddenError("contract.approve", entity_id=str(contract_id))
        if not participant.approved:
            participant.approved = True
            participant.approved_at = self._clock.now_utc()
            participant.updated_by_id = user_id
            self.session.flush()
            logger.info(
                "participant_approved",
                extra={"contract_id": str(contract_id), "participant_id": str(participant.id)},
            )
        return self._to_dto(participant)

    def record_signature(
        self,
        contract_id: UUID,
        tenant_id: UUID,
        user_id: UUID,
        company_ids: Iterable[UUID] = (),
        roles: Iterable[ParticipantRole] | None = None,
        document_url: str | None = None,
    ) -> list[ParticipantInfo]:
        """
        Sign every unsigned, signature-required participation of the user
        (directly, or through one of ``company_ids``).

        ``roles`` narrows which participations are signed.

        Raises:
            ValidationError: nothing left for this user to sign.
        """
        self._get_contract(contract_id, tenant_id)
        companies = set(company_ids)
        wanted = {ParticipantRole(r).value for r in roles} if roles is not None else None

        signed: list[ContractParticipant] = []
        now = self._clock.now_utc()
        for p in self._active(contract_id):
            if not p.requires_signature or p.signed_at is not None:
                continue
            if wanted is not None and p.role not in wanted:
                continue
            if p.user_id == user_id or (p.user_id is None and p.company_id in companies):
                p.signed_at = now
                p.updated_by_id = user_id
                if document_url is not None:
                    p.document_url = document_url
                signed.append(p)

        if not signed:
            raise ValidationError("There is nothing left for this user to sign")
        self.session.flush()
        logger.info(
            "participant_signed",
            extra={
                "contract_id": str(contract_id),
                "signer_user_id": str(user_id),
                "participant_ids": [str(p.id) for p in signed],
            },
        )
        return [self._to_dto(p) for p in signed]

    def remove_participant(
        self,
        contract_id: UUID,
        participant_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
    ) -> ParticipantInfo:
        """
        Deactivate a participant of ``contract_id``.

        Anchoring roles cannot be removed, and the roster is frozen once the
        contract leaves its open states.  A participant of another contract
        is reported as not found.
        """
        contract = self._get_contract(contract_id, tenant_id)
        participant = self.session.get(ContractParticipant, participant_id)
        if participant is None or participant.contract_id != contract.id:
            raise RecordNotFoundError("ContractParticipant", participant_id)
        if contract.workflow_status not in OPEN_CONTRACT_STATES:
            raise ValidationError(
                f"Participants cannot be removed from a contract in state "
                f"'{contract.workflow_status}'",
                field="contract_id",
            )
        if ParticipantRole(participant.role) in PROTECTED_PARTICIPANT_ROLES:
            raise ValidationError(
                f"A '{participant.role}' participant cannot be removed", field="role"
            )
        participant.is_active = False
        participant.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "participant_removed",
            extra={
                "contract_id": str(contract_id),
                "participant_id": str(participant_id),
                "role": participant.role,
            },
        )
        return self._to_dto(participant)

    # -------------------------------------------------------------------------
    # Aggregate reads (gate inputs)
    # -------------------------------------------------------------------------

    def list_participants(self, contract_id: UUID, tenant_id: UUID) -> list[ParticipantInfo]:
        """Active participants, primary first."""
        self._get_contract(contract_id, tenant_id)
        rows = sorted(
            self._active(contract_id),
            key=lambda p: (not p.is_primary, p.created_at),
        )
        return [self._to_dto(p) for p in rows]

    def has_active_role(self, contract_id: UUID, role: ParticipantRole) -> bool:
        return aggregates.has_role(self._active(contract_id), role)

    def all_approvers_approved(self, contract_id: UUID) -> bool:
        return aggregates.all_approvers_approved(self._active(contract_id))

    def all_signatures_complete(self, contract_id: UUID) -> bool:
        return aggregates.all_signatures_complete(self._active(contract_id))

    def counterpart_signatures_complete(self, contract_id: UUID) -> bool:
        return aggregates.counterpart_signatures_complete(self._active(contract_id))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _active(self, contract_id: UUID) -> list[ContractParticipant]:
        return list(
            self.session.execute(
                select(ContractParticipant)
                .where(
                    ContractParticipant.contract_id == contract_id,
                    ContractParticipant.is_active.is_(True),
                )
                .order_by(ContractParticipant.created_at, ContractParticipant.id)
            ).scalars()
        )

    def _get_contract(self, contract_id: UUID, tenant_id: UUID) -> Contract:
        contract = self.session.get(Contract, contract_id)
        if contract is None or contract.tenant_id != tenant_id:
            raise RecordNotFoundError("Contract", contract_id)
        return contract

    @staticmethod
    def _coerce_role(role: ParticipantRole | str) -> ParticipantRole:
        try:
            return ParticipantRole(role)
        except ValueError as exc:
            raise ValidationError(f"Unknown participant role '{role}'", field="role") from exc

    @staticmethod
    def _check_approver_signature(
        contract_id: UUID,
        role: ParticipantRole,
        requires_signature: bool,
    ) -> None:
        if role is ParticipantRole.APPROVER and requires_signature:
            logger.error(
                "invariant_violation",
                extra={
                    "invariant": "approver_never_signs",
                    "contract_id": str(contract_id),
                },
            )
            raise InvariantViolation(
                "approver_never_signs",
                "An approver participant cannot require a signature",
            )

    def _check_identity(
        self,
        tenant_id: UUID,
        user_id: UUID | None,
        company_id: UUID | None,
    ) -> None:
        if user_id is not None:
            user = self.session.get(User, user_id)
            if user is None or user.tenant_id != tenant_id:
                raise ValidationError("User does not belong to this tenant", field="user_id")
        if company_id is not None:
            company = self.session.get(Company, company_id)
            if company is None or company.tenant_id != tenant_id:
                raise ValidationError(
                    "Company does not belong to this tenant", field="company_id"
                )

    def _find_existing(
        self,
        contract_id: UUID,
        role: ParticipantRole,
        user_id: UUID | None,
        company_id: UUID | None,
    ) -> ContractParticipant | None:
        for p in self._active(contract_id):
            if p.role == role.value and p.user_id == user_id and p.company_id == company_id:
                return p
        return None

    def _insert(
        self,
        contract: Contract,
        role: ParticipantRole,
        actor_id: UUID,
        user_id: UUID | None,
        company_id: UUID | None,
        requires_signature: bool,
        approved: bool,
        is_primary: bool,
        document_url: str | None,
    ) -> ContractParticipant:
        self._check_approver_signature(contract.id, role, requires_signature)
        now = self._clock.now_utc()
        if is_primary:
            for p in self._active(contract.id):
                if p.role == role.value and p.is_primary:
                    p.is_primary = False
                    p.updated_by_id = actor_id
        participant = ContractParticipant(
            tenant_id=contract.tenant_id,
            contract_id=contract.id,
            user_id=user_id,
            company_id=company_id,
            role=role.value,
            approved=approved,
            approved_at=now if approved else None,
            requires_signature=requires_signature,
            is_primary=is_primary,
            document_url=document_url,
            created_by_id=actor_id,
            created_at=now,
        )
        self.session.add(participant)
        self.session.flush()
        logger.info(
            "participant_added",
            extra={
                "contract_id": str(contract.id),
                "participant_id": str(participant.id),
                "role": role.value,
                "requires_signature": requires_signature,
            },
        )
        return participant
