"""
workforce_services.contract_lifecycle -- contract write and read paths.

Responsibility:
    Creates contracts (validating the parent MSA of a SOW or norm and
    assigning the platform approver), manages participants, records
    approvals and signatures, and moves contracts through their workflow.

Architecture position:
    Services layer.  Each public method is one TransactionCoordinator unit
    of work composed of kernel services and the workflow engine.

Invariants enforced:
    - A SOW references an MSA of the same tenant that is neither cancelled
      nor terminated; otherwise nothing is persisted.
    - Legacy ``status`` always mirrors ``workflow_status``.
    - Signing the last required signature of a signing stage advances the
      contract in the same unit of work.

Failure modes:
    - InvalidParentContractError, ValidationError on bad input.
    - RecordNotFoundError for missing and out-of-scope contracts alike.
    - ForbiddenError, InvalidTransitionError, GateNotSatisfiedError from
      the permission and workflow checks.
    - ConflictRetryable when a concurrent transition won.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_kernel.db.types import round_money, to_decimal, validate_country, validate_currency
from workforce_kernel.domain.lifecycles import CONTRACT_WORKFLOW
from workforce_kernel.domain.participants import (
    all_signatures_complete,
    counterpart_signatures_complete,
)
from workforce_kernel.domain.scope import AccessSnapshot, Actor
from workforce_kernel.domain.states import (
    LEGACY_CONTRACT_STATUS,
    ContractStatus,
    ContractType,
    ContractWorkflowStatus,
    ParticipantRole,
)
from workforce_kernel.exceptions import InvalidParentContractError, ValidationError
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.contract import Contract
from workforce_kernel.services.identity_service import IdentityService
from workforce_kernel.services.lifecycle_store import LifecycleStore
from workforce_kernel.services.participant_service import ParticipantInfo, ParticipantRegistry
from workforce_services.lifecycle_base import LifecycleService
from workforce_services.transaction_coordinator import UnitOfWork
from workforce_services.workflow_engine import AvailableTransition

logger = get_logger("services.contract_lifecycle")

UNUSABLE_PARENT_STATES = frozenset({
    ContractWorkflowStatus.CANCELLED.value,
    ContractWorkflowStatus.TERMINATED.value,
})

SIGNING_STATES = frozenset({
    ContractWorkflowStatus.PENDING_AGENCY_SIGN.value,
    ContractWorkflowStatus.PENDING_CONTRACTOR_SIGN.value,
})


@dataclass(frozen=True)
class ContractDraft:
    """Input for a new contract."""

    title: str
    contract_type: ContractType | str
    parent_id: UUID | None = None
    currency: str | None = None
    country_code: str | None = None
    rate_amount: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    payment_terms_days: int | None = None
    company_id: UUID | None = None
    owner_id: UUID | None = None


@dataclass(frozen=True)
class ContractChanges:
    """Edits to a draft contract; None leaves a field as it is."""

    title: str | None = None
    currency: str | None = None
    country_code: str | None = None
    rate_amount: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    payment_terms_days: int | None = None

    def as_values(self) -> dict:
        return {k: v for k, v in vars(self).items() if v is not None}


@dataclass(frozen=True)
class ContractInfo:
    """Immutable DTO for a contract."""

    id: UUID
    tenant_id: UUID
    title: str
    contract_type: ContractType
    parent_id: UUID | None
    status: ContractStatus
    workflow_status: ContractWorkflowStatus
    currency: str
    country_code: str
    rate_amount: Decimal | None
    start_date: date | None
    end_date: date | None
    payment_terms_days: int
    company_id: UUID | None
    owner_id: UUID | None
    created_by_id: UUID
    termination_reason: str | None
    version: int


def _check_dates(start: date | None, end: date | None) -> None:
    if start and end and end < start:
        raise ValidationError("End date is before start date", field="end_date")


def _checked_rate(value) -> Decimal | None:
    if value is None:
        return None
    rate = round_money(to_decimal(value, "rate_amount"))
    if rate < 0:
        raise ValidationError("Rate cannot be negative", field="rate_amount")
    return rate


def _check_terms(days: int) -> None:
    if days < 0:
        raise ValidationError("Payment terms cannot be negative", field="payment_terms_days")


def _to_info(c: Contract) -> ContractInfo:
    return ContractInfo(
        id=c.id,
        tenant_id=c.tenant_id,
        title=c.title,
        contract_type=ContractType(c.contract_type),
        parent_id=c.parent_id,
        status=ContractStatus(c.status),
        workflow_status=ContractWorkflowStatus(c.workflow_status),
        currency=c.currency,
        country_code=c.country_code,
        rate_amount=c.rate_amount,
        start_date=c.start_date,
        end_date=c.end_date,
        payment_terms_days=c.payment_terms_days,
        company_id=c.company_id,
        owner_id=c.owner_id,
        created_by_id=c.created_by_id,
        termination_reason=c.termination_reason,
        version=c.version,
    )


class ContractLifecycle(LifecycleService):
    """Contract operations, one unit of work each."""

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_contract(self, actor: Actor, draft: ContractDraft) -> ContractInfo:
        """
        Create a draft contract and attach the platform approver.

        Raises:
            ForbiddenError: actor holds no contract.create.
            InvalidParentContractError: unusable parent MSA.
            ValidationError: malformed fields.
            NoEligibleApproverError: nobody can approve in this tenant.
        """

        def work(uow: UnitOfWork) -> ContractInfo:
            self._check_actor(actor)
            self._require_any_scope(actor, "contract", "create")
            contract = self._build_contract(uow.session, actor, draft)
            uow.session.add(contract)
            uow.session.flush()

            ParticipantRegistry(uow.session, self._clock).assign_approver(
                contract.id, contract.tenant_id, actor.user_id
            )
            logger.info(
                "contract_created",
                extra={
                    "contract_id": str(contract.id),
                    "contract_type": contract.contract_type,
                    "parent_id": str(contract.parent_id) if contract.parent_id else None,
                },
            )
            info = _to_info(contract)
            self._notify_on_commit(
                uow, "contract.created", {"contract_id": str(contract.id)}
            )
            return info

        return self._run("contracts.create_contract", actor, work)

    def _build_contract(self, session: Session, actor: Actor, draft: ContractDraft) -> Contract:
        if not draft.title or not draft.title.strip():
            raise ValidationError("Contract title is required", field="title")
        try:
            ctype = ContractType(draft.contract_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown contract type '{draft.contract_type}'", field="contract_type"
            ) from exc

        parent = self._validate_parent(session, actor, ctype, draft.parent_id)
        currency = draft.currency or (parent.currency if parent else None)
        country = draft.country_code or (parent.country_code if parent else None)
        if country is None:
            raise ValidationError("Country code is required", field="country_code")
        _check_dates(draft.start_date, draft.end_date)
        rate = _checked_rate(draft.rate_amount)

        terms = draft.payment_terms_days
        if terms is None:
            terms = parent.payment_terms_days if parent else self._settings.default_payment_terms_days
        _check_terms(terms)

        now = self._clock.now_utc()
        return Contract(
            tenant_id=actor.tenant_id,
            title=draft.title.strip(),
            contract_type=ctype.value,
            parent_id=parent.id if parent else None,
            status=ContractStatus.DRAFT.value,
            workflow_status=ContractWorkflowStatus.DRAFT.value,
            currency=validate_currency(currency or self._settings.default_currency),
            country_code=validate_country(country),
            rate_amount=rate,
            start_date=draft.start_date,
            end_date=draft.end_date,
            payment_terms_days=terms,
            company_id=draft.company_id or actor.company_id,
            owner_id=draft.owner_id,
            created_by_id=actor.user_id,
            created_at=now,
        )

    @staticmethod
    def _validate_parent(
        session: Session,
        actor: Actor,
        ctype: ContractType,
        parent_id: UUID | None,
    ) -> Contract | None:
        if ctype is ContractType.MSA:
            if parent_id is not None:
                raise ValidationError("An MSA cannot have a parent contract", field="parent_id")
            return None
        if parent_id is None:
            if ctype is ContractType.SOW:
                raise ValidationError("A SOW must reference a parent MSA", field="parent_id")
            return None

        parent = session.get(Contract, parent_id)
        if parent is None or parent.tenant_id != actor.tenant_id:
            raise InvalidParentContractError(str(parent_id), "parent contract does not exist")
        if parent.contract_type != ContractType.MSA.value:
            raise InvalidParentContractError(str(parent_id), "parent is not an MSA")
        if parent.workflow_status in UNUSABLE_PARENT_STATES:
            raise InvalidParentContractError(
                str(parent_id), f"parent MSA is {parent.workflow_status}"
            )
        return parent

    def update_draft(
        self,
        actor: Actor,
        contract_id: UUID,
        changes: ContractChanges,
        expected_version: int | None = None,
    ) -> ContractInfo:
        """
        Edit the commercial terms of a draft contract.

        ``expected_version`` is the version the caller last read; without it
        the version loaded here is used.

        Raises:
            ValidationError: not a draft, nothing to change, or bad values.
            ForbiddenError: actor holds no contract.update over the contract.
            ConflictRetryable: the contract changed since it was read.
        """

        def work(uow: UnitOfWork) -> ContractInfo:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            self._require(actor, access, contract, "contract", "update")
            if contract.workflow_status != ContractWorkflowStatus.DRAFT.value:
                raise ValidationError(
                    "Only draft contracts can be edited", field="workflow_status"
                )

            values = changes.as_values()
            if not values:
                raise ValidationError("No changes given")
            if "title" in values:
                values["title"] = values["title"].strip()
                if not values["title"]:
                    raise ValidationError("Contract title is required", field="title")
            if "currency" in values:
                values["currency"] = validate_currency(values["currency"])
            if "country_code" in values:
                values["country_code"] = validate_country(values["country_code"])
            if "rate_amount" in values:
                values["rate_amount"] = _checked_rate(values["rate_amount"])
            if "payment_terms_days" in values:
                _check_terms(values["payment_terms_days"])
            _check_dates(
                values.get("start_date", contract.start_date),
                values.get("end_date", contract.end_date),
            )

            version = contract.version if expected_version is None else expected_version
            LifecycleStore(uow.session, self._clock).revise(
                CONTRACT_WORKFLOW, contract, actor.user_id, version, **values
            )
            logger.info(
                "contract_draft_updated",
                extra={"contract_id": str(contract.id), "fields": sorted(values)},
            )
            self._notify_on_commit(
                uow, "contract.updated", {"contract_id": str(contract.id)}
            )
            return _to_info(contract)

        return self._run("contracts.update_draft", actor, work, contract_id)

    # -------------------------------------------------------------------------
    # Participants
    # -------------------------------------------------------------------------

    def add_participant(
        self,
        actor: Actor,
        contract_id: UUID,
        role: ParticipantRole | str,
        user_id: UUID | None = None,
        company_id: UUID | None = None,
        requires_signature: bool = False,
        is_primary: bool = False,
        document_url: str | None = None,
    ) -> ParticipantInfo:
        """Attach a participant; requires contract.update over the contract."""

        def work(uow: UnitOfWork) -> ParticipantInfo:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            self._require(actor, access, contract, "contract", "update")
            return ParticipantRegistry(uow.session, self._clock).add_participant(
                contract_id=contract.id,
                tenant_id=contract.tenant_id,
                role=role,
                actor_id=actor.user_id,
                user_id=user_id,
                company_id=company_id,
                requires_signature=requires_signature,
                is_primary=is_primary,
                document_url=document_url,
            )

        return self._run("contracts.add_participant", actor, work, contract_id)

    def remove_participant(self, actor: Actor, contract_id: UUID, participant_id: UUID) -> ParticipantInfo:
        def work(uow: UnitOfWork) -> ParticipantInfo:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            self._require(actor, access, contract, "contract", "update")
            return ParticipantRegistry(uow.session, self._clock).remove_participant(
                contract.id, participant_id, contract.tenant_id, actor.user_id
            )

        return self._run("contracts.remove_participant", actor, work, contract_id)

    def list_participants(self, actor: Actor, contract_id: UUID) -> list[ParticipantInfo]:
        def work(uow: UnitOfWork) -> list[ParticipantInfo]:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            return ParticipantRegistry(uow.session, self._clock).list_participants(
                contract.id, contract.tenant_id
            )

        return self._run("contracts.list_participants", actor, work, contract_id, read_only=True)

    def approve(self, actor: Actor, contract_id: UUID) -> ParticipantInfo:
        """Record the actor's approval as the contract's approver."""

        def work(uow: UnitOfWork) -> ParticipantInfo:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            if contract.workflow_status != ContractWorkflowStatus.DRAFT.value:
                raise ValidationError(
                    "Only draft contracts can be approved", field="workflow_status"
                )
            participant = ParticipantRegistry(uow.session, self._clock).record_approval(
                contract.id, contract.tenant_id, actor.user_id
            )
            self._notify_on_commit(
                uow,
                "contract.approve",
                {"contract_id": str(contract.id), "approver_user_id": str(actor.user_id)},
            )
            return participant

        return self._run("contracts.approve", actor, work, contract_id)

    def sign(
        self,
        actor: Actor,
        contract_id: UUID,
        document_url: str | None = None,
    ) -> ContractInfo:
        """
        Record the actor's signature(s), directly or via their companies.

        When the signature completes the current signing stage the contract
        advances (agency stage -> contractor stage -> active) in the same
        unit of work, through both stages if the contractor signed early.
        """

        def work(uow: UnitOfWork) -> ContractInfo:
            session = uow.session
            access = self._access(session, actor)
            contract = self._load_visible(session, Contract, contract_id, actor, access, "contract")
            self._require(actor, access, contract, "contract", "sign")
            if contract.workflow_status not in SIGNING_STATES:
                raise ValidationError(
                    f"Contract in state '{contract.workflow_status}' is not awaiting signatures",
                    field="workflow_status",
                )

            registry = ParticipantRegistry(session, self._clock)
            company_ids = IdentityService(session, self._clock).company_ids_for(actor.user_id)
            registry.record_signature(
                contract.id,
                contract.tenant_id,
                actor.user_id,
                company_ids=company_ids,
                document_url=document_url,
            )
            self._notify_on_commit(
                uow, "contract.signed", {"contract_id": str(contract.id), "signer": str(actor.user_id)}
            )

            participants = registry.list_participants(contract.id, contract.tenant_id)
            target = self._next_signing_state(contract.workflow_status, participants)
            while target is not None:
                self._apply(uow, contract, target, actor, access, participants)
                target = self._next_signing_state(contract.workflow_status, participants)
            return _to_info(contract)

        return self._run("contracts.sign", actor, work, contract_id)

    @staticmethod
    def _next_signing_state(current: str, participants: list[ParticipantInfo]) -> str | None:
        if (
            current == ContractWorkflowStatus.PENDING_AGENCY_SIGN.value
            and counterpart_signatures_complete(participants)
        ):
            return ContractWorkflowStatus.PENDING_CONTRACTOR_SIGN.value
        if (
            current == ContractWorkflowStatus.PENDING_CONTRACTOR_SIGN.value
            and all_signatures_complete(participants)
        ):
            return ContractWorkflowStatus.ACTIVE.value
        return None

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def transition(
        self,
        actor: Actor,
        contract_id: UUID,
        to_state: ContractWorkflowStatus | str,
        termination_reason: str | None = None,
    ) -> ContractInfo:
        """Move a contract to ``to_state`` through the workflow engine."""

        def work(uow: UnitOfWork) -> ContractInfo:
            session = uow.session
            access = self._access(session, actor)
            contract = self._load_visible(session, Contract, contract_id, actor, access, "contract")
            participants = ParticipantRegistry(session, self._clock).list_participants(
                contract.id, contract.tenant_id
            )
            self._apply(
                uow, contract, str(getattr(to_state, "value", to_state)), actor, access,
                participants, termination_reason=termination_reason,
            )
            return _to_info(contract)

        return self._run("contracts.transition", actor, work, contract_id)

    def _apply(
        self,
        uow: UnitOfWork,
        contract: Contract,
        to_state: str,
        actor: Actor,
        access: AccessSnapshot,
        participants: list[ParticipantInfo],
        termination_reason: str | None = None,
    ) -> None:
        decision = self._engine.request_transition(
            CONTRACT_WORKFLOW,
            contract,
            to_state,
            actor,
            access,
            context={
                "participants": participants,
                "termination_reason": termination_reason,
            },
        )
        target = ContractWorkflowStatus(decision.to_state)
        values = {"status": LEGACY_CONTRACT_STATUS[target].value}
        if target is ContractWorkflowStatus.TERMINATED:
            values["termination_reason"] = termination_reason.strip()
        LifecycleStore(uow.session, self._clock).apply(
            CONTRACT_WORKFLOW,
            contract,
            decision.from_state,
            decision.to_state,
            actor.user_id,
            **values,
        )
        self._notify_on_commit(
            uow,
            f"contract.{decision.action}",
            {
                "contract_id": str(contract.id),
                "from_state": decision.from_state,
                "to_state": decision.to_state,
            },
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_contract(self, actor: Actor, contract_id: UUID) -> ContractInfo:
        def work(uow: UnitOfWork) -> ContractInfo:
            access = self._access(uow.session, actor)
            return _to_info(
                self._load_visible(uow.session, Contract, contract_id, actor, access, "contract")
            )

        return self._run("contracts.get_contract", actor, work, contract_id, read_only=True)

    def list_contracts(
        self,
        actor: Actor,
        workflow_status: ContractWorkflowStatus | str | None = None,
        parent_id: UUID | None = None,
    ) -> list[ContractInfo]:
        """Contracts the actor may view, newest first."""

        def work(uow: UnitOfWork) -> list[ContractInfo]:
            access = self._access(uow.session, actor)
            stmt = select(Contract).where(
                self._visible_clause(actor, access, Contract, "contract")
            )
            if workflow_status is not None:
                stmt = stmt.where(
                    Contract.workflow_status == ContractWorkflowStatus(workflow_status).value
                )
            if parent_id is not None:
                stmt = stmt.where(Contract.parent_id == parent_id)
            stmt = stmt.order_by(Contract.created_at.desc(), Contract.id)
            return [_to_info(c) for c in uow.session.execute(stmt).scalars()]

        return self._run("contracts.list_contracts", actor, work, read_only=True)

    def available_actions(self, actor: Actor, contract_id: UUID) -> list[AvailableTransition]:
        def work(uow: UnitOfWork) -> list[AvailableTransition]:
            access = self._access(uow.session, actor)
            contract = self._load_visible(
                uow.session, Contract, contract_id, actor, access, "contract"
            )
            return self._engine.available_transitions(CONTRACT_WORKFLOW, contract, actor, access)

        return self._run("contracts.available_actions", actor, work, contract_id, read_only=True)
