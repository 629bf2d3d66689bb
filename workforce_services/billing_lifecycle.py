"""
workforce_services.billing_lifecycle -- invoices, timesheets and remittances.

Responsibility:
    Creates invoices and timesheets against active contracts, moves them
    through their workflows, appends remittance ledger entries for the
    money-movement milestones, and serves the scoped read surface
    (including the overdue projection).

Architecture position:
    Services layer.  Each public method is one TransactionCoordinator unit
    of work.  Kernel services (LifecycleStore, RemittanceLedger,
    ParticipantRegistry) flush; the coordinator commits.

Invariants enforced:
    - A money-movement transition and its ledger entries commit together.
    - ``send_timesheet_to_agency`` creates exactly one invoice and moves
      the timesheet to ``sent`` atomically; a failure leaves the timesheet
      ``approved`` with no invoice.
    - ``overdue`` is a read projection and is never stored.

Failure modes:
    - ValidationError on bad input or on a contract that is not active.
    - RecordNotFoundError for missing and out-of-scope records alike.
    - ForbiddenError, InvalidTransitionError, GateNotSatisfiedError from
      the permission and workflow checks.
    - ConflictRetryable when a concurrent transition won.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_kernel.db.types import round_money, to_decimal, validate_currency
from workforce_kernel.domain.billing import invoice_total, project_invoice_status
from workforce_kernel.domain.lifecycles import INVOICE_WORKFLOW, TIMESHEET_WORKFLOW
from workforce_kernel.domain.participants import primary_user
from workforce_kernel.domain.permissions import PermissionKey, ScopeClass, has_permission
from workforce_kernel.domain.scope import AccessSnapshot, Actor
from workforce_kernel.domain.states import (
    ContractWorkflowStatus,
    InvoiceState,
    ParticipantRole,
    PaymentDirection,
    RemittanceMilestone,
    RemittanceStatus,
    TimesheetState,
)
from workforce_kernel.exceptions import ForbiddenError, ValidationError
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.billing import Invoice, Timesheet
from workforce_kernel.models.contract import Contract
from workforce_kernel.services.lifecycle_store import LifecycleStore
from workforce_kernel.services.participant_service import ParticipantInfo, ParticipantRegistry
from workforce_kernel.services.remittance_ledger import (
    RemittanceInfo,
    RemittanceLedger,
    RemittanceParams,
    RemittanceSummary,
)
from workforce_services.lifecycle_base import LifecycleService
from workforce_services.transaction_coordinator import UnitOfWork

logger = get_logger("services.billing_lifecycle")

BILLABLE_CONTRACT_STATES = frozenset({ContractWorkflowStatus.ACTIVE.value})

REMITTANCE_UPDATE_GLOBAL = PermissionKey.of("remittance", "update", ScopeClass.GLOBAL)


# -----------------------------------------------------------------------------
# Inputs and DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceDraft:
    contract_id: UUID
    amount: Decimal
    tax_amount: Decimal = Decimal("0")
    currency: str | None = None
    issue_date: date | None = None
    due_date: date | None = None
    invoice_number: str | None = None
    owner_id: UUID | None = None


@dataclass(frozen=True)
class TimesheetDraft:
    contract_id: UUID
    period_start: date
    period_end: date
    total_hours: Decimal
    total_amount: Decimal | None = None
    currency: str | None = None
    owner_id: UUID | None = None


@dataclass(frozen=True)
class PaymentDetails:
    """Inputs for the invoice settlement transitions."""

    amount_received: Decimal | None = None
    payer_id: UUID | None = None
    contractor_user_id: UUID | None = None
    payroll_recipient_id: UUID | None = None
    contractor_amount: Decimal | None = None
    payroll_amount: Decimal | None = None


@dataclass(frozen=True)
class InvoiceInfo:
    """
    Read projection of an invoice.

    ``status`` is ``overdue`` when the due date has passed without payment,
    otherwise the workflow state.  ``total_amount`` is recomputed from
    amount and tax.
    """

    id: UUID
    tenant_id: UUID
    contract_id: UUID
    timesheet_id: UUID | None
    invoice_number: str
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str
    workflow_state: InvoiceState
    status: str
    issue_date: date
    due_date: date
    sent_at: datetime | None
    paid_at: datetime | None
    amount_received: Decimal | None
    rejection_reason: str | None
    changes_note: str | None
    version: int


@dataclass(frozen=True)
class TimesheetInfo:
    id: UUID
    tenant_id: UUID
    contract_id: UUID
    period_start: date
    period_end: date
    total_hours: Decimal
    total_amount: Decimal
    currency: str
    workflow_state: TimesheetState
    invoice_id: UUID | None
    owner_id: UUID
    submitted_at: datetime | None
    approved_at: datetime | None
    rejection_reason: str | None
    changes_note: str | None
    version: int


@dataclass(frozen=True)
class SentTimesheet:
    """Result of sending a timesheet to the agency."""

    timesheet: TimesheetInfo
    invoice: InvoiceInfo


def _timesheet_info(t: Timesheet) -> TimesheetInfo:
    return TimesheetInfo(
        id=t.id,
        tenant_id=t.tenant_id,
        contract_id=t.contract_id,
        period_start=t.period_start,
        period_end=t.period_end,
        total_hours=t.total_hours,
        total_amount=t.total_amount,
        currency=t.currency,
        workflow_state=TimesheetState(t.workflow_state),
        invoice_id=t.invoice_id,
        owner_id=t.owner_id,
        submitted_at=t.submitted_at,
        approved_at=t.approved_at,
        rejection_reason=t.rejection_reason,
        changes_note=t.changes_note,
        version=t.version,
    )


class BillingLifecycle(LifecycleService):
    """Invoice, timesheet and remittance operations, one unit of work each."""

    def _invoice_info(self, inv: Invoice) -> InvoiceInfo:
        total = invoice_total(inv.amount, inv.tax_amount)
        if inv.total_amount is not None and inv.total_amount != total:
            logger.warning(
                "invoice_total_divergence",
                extra={
                    "invoice_id": str(inv.id),
                    "stored_total": inv.total_amount,
                    "computed_total": total,
                },
            )
        return InvoiceInfo(
            id=inv.id,
            tenant_id=inv.tenant_id,
            contract_id=inv.contract_id,
            timesheet_id=inv.timesheet_id,
            invoice_number=inv.invoice_number,
            amount=inv.amount,
            tax_amount=inv.tax_amount,
            total_amount=total,
            currency=inv.currency,
            workflow_state=InvoiceState(inv.workflow_state),
            status=project_invoice_status(
                inv.workflow_state, inv.due_date, inv.paid_at, self._clock.today()
            ),
            issue_date=inv.issue_date,
            due_date=inv.due_date,
            sent_at=inv.sent_at,
            paid_at=inv.paid_at,
            amount_received=inv.amount_received,
            rejection_reason=inv.rejection_reason,
            changes_note=inv.changes_note,
            version=inv.version,
        )

    def _billable_contract(
        self,
        session: Session,
        actor: Actor,
        access: AccessSnapshot,
        contract_id: UUID,
    ) -> Contract:
        contract = self._load_visible(session, Contract, contract_id, actor, access, "contract")
        if contract.workflow_status not in BILLABLE_CONTRACT_STATES:
            raise ValidationError(
                f"Contract in state '{contract.workflow_status}' cannot be billed",
                field="contract_id",
            )
        return contract

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def create_invoice(self, actor: Actor, draft: InvoiceDraft) -> InvoiceInfo:
        def work(uow: UnitOfWork) -> InvoiceInfo:
            access = self._access(uow.session, actor)
            self._require_any_scope(actor, "invoice", "create")
            contract = self._billable_contract(uow.session, actor, access, draft.contract_id)
            invoice = self._new_invoice(
                contract,
                actor,
                amount=draft.amount,
                tax_amount=draft.tax_amount,
                currency=draft.currency,
                issue_date=draft.issue_date,
                due_date=draft.due_date,
                invoice_number=draft.invoice_number,
                owner_id=draft.owner_id,
            )
            uow.session.add(invoice)
            uow.session.flush()
            logger.info(
                "invoice_created",
                extra={"invoice_id": str(invoice.id), "contract_id": str(contract.id)},
            )
            self._notify_on_commit(uow, "invoice.created", {"invoice_id": str(invoice.id)})
            return self._invoice_info(invoice)

        return self._run("billing.create_invoice", actor, work)

    def _new_invoice(
        self,
        contract: Contract,
        actor: Actor,
        amount: Any,
        tax_amount: Any = Decimal("0"),
        currency: str | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        invoice_number: str | None = None,
        owner_id: UUID | None = None,
        timesheet_id: UUID | None = None,
    ) -> Invoice:
        amount_d = round_money(to_decimal(amount, "amount"))
        tax_d = round_money(to_decimal(tax_amount, "tax_amount"))
        if amount_d < 0:
            raise ValidationError("Invoice amount cannot be negative", field="amount")
        if tax_d < 0:
            raise ValidationError("Tax amount cannot be negative", field="tax_amount")
        issued = issue_date or self._clock.today()
        due = due_date or issued + timedelta(days=contract.payment_terms_days)
        if due < issued:
            raise ValidationError("Due date is before issue date", field="due_date")
        now = self._clock.now_utc()
        return Invoice(
            tenant_id=contract.tenant_id,
            contract_id=contract.id,
            timesheet_id=timesheet_id,
            invoice_number=invoice_number or f"INV-{issued:%Y%m%d}-{now:%H%M%S%f}",
            amount=amount_d,
            tax_amount=tax_d,
            currency=validate_currency(currency or contract.currency),
            workflow_state=InvoiceState.DRAFT.value,
            issue_date=issued,
            due_date=due,
            company_id=contract.company_id,
            owner_id=owner_id,
            created_by_id=actor.user_id,
            created_at=now,
        )

    def transition_invoice(
        self,
        actor: Actor,
        invoice_id: UUID,
        to_state: InvoiceState | str,
        rejection_reason: str | None = None,
        changes_note: str | None = None,
        payment: PaymentDetails | None = None,
    ) -> InvoiceInfo:
        """
        Move an invoice through its workflow.

        Settlement edges append their remittance milestones in the same
        unit of work; a repeated milestone resolves to the existing entry.
        """
        pay = payment or PaymentDetails()

        def work(uow: UnitOfWork) -> InvoiceInfo:
            session = uow.session
            access = self._access(session, actor)
            invoice = self._load_visible(session, Invoice, invoice_id, actor, access, "invoice")
            participants = ParticipantRegistry(session, self._clock).list_participants(
                invoice.contract_id, invoice.tenant_id
            )
            decision = self._engine.request_transition(
                INVOICE_WORKFLOW,
                invoice,
                str(getattr(to_state, "value", to_state)),
                actor,
                access,
                context={
                    "participants": participants,
                    "rejection_reason": rejection_reason,
                    "changes_note": changes_note,
                    "amount_received": pay.amount_received,
                    "contractor_user_id": pay.contractor_user_id,
                    "payroll_recipient_id": pay.payroll_recipient_id,
                    "contractor_amount": pay.contractor_amount,
                    "payroll_amount": pay.payroll_amount,
                },
            )

            target = InvoiceState(decision.to_state)
            now = self._clock.now_utc()
            values: dict[str, Any] = {}
            if target is InvoiceState.REJECTED:
                values["rejection_reason"] = rejection_reason.strip()
            elif target is InvoiceState.CHANGES_REQUESTED:
                values["changes_note"] = changes_note.strip()
            elif target is InvoiceState.SENT:
                values["sent_at"] = now
            elif target is InvoiceState.PAYMENT_RECEIVED:
                values["paid_at"] = now
                values["amount_received"] = round_money(
                    to_decimal(pay.amount_received, "amount_received")
                )
            LifecycleStore(session, self._clock).apply(
                INVOICE_WORKFLOW,
                invoice,
                decision.from_state,
                decision.to_state,
                actor.user_id,
                **values,
            )

            for milestone in decision.milestones:
                self._append_milestone(
                    session, invoice, RemittanceMilestone(milestone), actor, pay, participants
                )

            self._notify_on_commit(
                uow,
                f"invoice.{decision.action}",
                {
                    "invoice_id": str(invoice.id),
                    "from_state": decision.from_state,
                    "to_state": decision.to_state,
                },
            )
            return self._invoice_info(invoice)

        return self._run("billing.transition_invoice", actor, work, invoice_id)

    def _append_milestone(
        self,
        session: Session,
        invoice: Invoice,
        milestone: RemittanceMilestone,
        actor: Actor,
        pay: PaymentDetails,
        participants: list[ParticipantInfo],
    ) -> RemittanceInfo:
        split = pay.contractor_amount is not None and pay.payroll_amount is not None
        received = invoice.amount_received

        if milestone is RemittanceMilestone.PAYMENT_RECEIVED:
            amount = received
            recipient = actor.user_id
            sender = (
                pay.payer_id
                or primary_user(participants, ParticipantRole.AGENCY)
                or primary_user(participants, ParticipantRole.CLIENT)
                or invoice.created_by_id
            )
            description = f"Payment received for invoice {invoice.invoice_number}"
        elif milestone is RemittanceMilestone.CONTRACTOR_PAYMENT_SENT:
            amount = pay.contractor_amount if split else received
            recipient = pay.contractor_user_id or primary_user(
                participants, ParticipantRole.CONTRACTOR
            )
            sender = actor.user_id
            description = f"Contractor payment for invoice {invoice.invoice_number}"
        else:
            amount = pay.payroll_amount if split else received
            recipient = pay.payroll_recipient_id
            sender = actor.user_id
            description = f"Payroll payment for invoice {invoice.invoice_number}"

        return RemittanceLedger(session, self._clock).append(
            milestone,
            RemittanceParams(
                tenant_id=invoice.tenant_id,
                amount=amount,
                currency=invoice.currency,
                recipient_id=recipient,
                sender_id=sender,
                actor_id=actor.user_id,
                invoice_id=invoice.id,
                contract_id=invoice.contract_id,
                description=description,
            ),
        )

    def get_invoice(self, actor: Actor, invoice_id: UUID) -> InvoiceInfo:
        def work(uow: UnitOfWork) -> InvoiceInfo:
            access = self._access(uow.session, actor)
            return self._invoice_info(
                self._load_visible(uow.session, Invoice, invoice_id, actor, access, "invoice")
            )

        return self._run("billing.get_invoice", actor, work, invoice_id, read_only=True)

    def list_invoices(
        self,
        actor: Actor,
        workflow_state: InvoiceState | str | None = None,
        contract_id: UUID | None = None,
    ) -> list[InvoiceInfo]:
        """Invoices the actor may view, newest first."""

        def work(uow: UnitOfWork) -> list[InvoiceInfo]:
            access = self._access(uow.session, actor)
            stmt = select(Invoice).where(self._visible_clause(actor, access, Invoice, "invoice"))
            if workflow_state is not None:
                stmt = stmt.where(Invoice.workflow_state == InvoiceState(workflow_state).value)
            if contract_id is not None:
                stmt = stmt.where(Invoice.contract_id == contract_id)
            stmt = stmt.order_by(Invoice.created_at.desc(), Invoice.id)
            return [self._invoice_info(i) for i in uow.session.execute(stmt).scalars()]

        return self._run("billing.list_invoices", actor, work, read_only=True)

    # -------------------------------------------------------------------------
    # Timesheets
    # -------------------------------------------------------------------------

    def create_timesheet(self, actor: Actor, draft: TimesheetDraft) -> TimesheetInfo:
        def work(uow: UnitOfWork) -> TimesheetInfo:
            access = self._access(uow.session, actor)
            self._require_any_scope(actor, "timesheet", "create")
            contract = self._billable_contract(uow.session, actor, access, draft.contract_id)
            if draft.period_end < draft.period_start:
                raise ValidationError("Period end is before period start", field="period_end")
            hours = to_decimal(draft.total_hours, "total_hours")
            if hours < 0:
                raise ValidationError("Hours cannot be negative", field="total_hours")
            if draft.total_amount is not None:
                total = round_money(to_decimal(draft.total_amount, "total_amount"))
            else:
                total = round_money(hours * (contract.rate_amount or Decimal("0")))
            if total < 0:
                raise ValidationError("Amount cannot be negative", field="total_amount")

            timesheet = Timesheet(
                tenant_id=contract.tenant_id,
                contract_id=contract.id,
                period_start=draft.period_start,
                period_end=draft.period_end,
                total_hours=hours,
                total_amount=total,
                currency=validate_currency(draft.currency or contract.currency),
                workflow_state=TimesheetState.DRAFT.value,
                company_id=contract.company_id,
                owner_id=draft.owner_id or actor.user_id,
                created_by_id=actor.user_id,
                created_at=self._clock.now_utc(),
            )
            uow.session.add(timesheet)
            uow.session.flush()
            logger.info(
                "timesheet_created",
                extra={"timesheet_id": str(timesheet.id), "contract_id": str(contract.id)},
            )
            return _timesheet_info(timesheet)

        return self._run("billing.create_timesheet", actor, work)

    def transition_timesheet(
        self,
        actor: Actor,
        timesheet_id: UUID,
        to_state: TimesheetState | str,
        rejection_reason: str | None = None,
        changes_note: str | None = None,
    ) -> TimesheetInfo:
        """Move a timesheet; ``sent`` goes through ``send_timesheet_to_agency``."""
        target_value = str(getattr(to_state, "value", to_state))
        if target_value == TimesheetState.SENT.value:
            return self.send_timesheet_to_agency(actor, timesheet_id).timesheet

        def work(uow: UnitOfWork) -> TimesheetInfo:
            session = uow.session
            access = self._access(session, actor)
            timesheet = self._load_visible(
                session, Timesheet, timesheet_id, actor, access, "timesheet"
            )
            decision = self._engine.request_transition(
                TIMESHEET_WORKFLOW,
                timesheet,
                target_value,
                actor,
                access,
                context={"rejection_reason": rejection_reason, "changes_note": changes_note},
            )
            target = TimesheetState(decision.to_state)
            now = self._clock.now_utc()
            values: dict[str, Any] = {}
            if target is TimesheetState.SUBMITTED:
                values["submitted_at"] = now
            elif target is TimesheetState.APPROVED:
                values["approved_at"] = now
            elif target is TimesheetState.REJECTED:
                values["rejection_reason"] = rejection_reason.strip()
            elif target is TimesheetState.CHANGES_REQUESTED:
                values["changes_note"] = changes_note.strip()
            LifecycleStore(session, self._clock).apply(
                TIMESHEET_WORKFLOW,
                timesheet,
                decision.from_state,
                decision.to_state,
                actor.user_id,
                **values,
            )
            self._notify_on_commit(
                uow,
                f"timesheet.{decision.action}",
                {"timesheet_id": str(timesheet.id), "to_state": decision.to_state},
            )
            return _timesheet_info(timesheet)

        return self._run("billing.transition_timesheet", actor, work, timesheet_id)

    def send_timesheet_to_agency(self, actor: Actor, timesheet_id: UUID) -> SentTimesheet:
        """
        Invoice an approved timesheet and mark it sent, atomically.

        Exactly one invoice is created.  No remittance is appended: no
        money has moved yet.
        """

        def work(uow: UnitOfWork) -> SentTimesheet:
            session = uow.session
            access = self._access(session, actor)
            timesheet = self._load_visible(
                session, Timesheet, timesheet_id, actor, access, "timesheet"
            )
            decision = self._engine.request_transition(
                TIMESHEET_WORKFLOW, timesheet, TimesheetState.SENT.value, actor, access
            )
            if timesheet.invoice_id is not None:
                raise ValidationError(
                    "Timesheet has already been invoiced", field="invoice_id"
                )
            contract = session.get(Contract, timesheet.contract_id)

            invoice = self._invoice_from_timesheet(timesheet, contract, actor)
            session.add(invoice)
            session.flush()

            LifecycleStore(session, self._clock).apply(
                TIMESHEET_WORKFLOW,
                timesheet,
                decision.from_state,
                decision.to_state,
                actor.user_id,
                invoice_id=invoice.id,
            )
            logger.info(
                "timesheet_sent_to_agency",
                extra={"timesheet_id": str(timesheet.id), "invoice_id": str(invoice.id)},
            )
            self._notify_on_commit(
                uow,
                "timesheet.send_to_agency",
                {"timesheet_id": str(timesheet.id), "invoice_id": str(invoice.id)},
            )
            return SentTimesheet(
                timesheet=_timesheet_info(timesheet),
                invoice=self._invoice_info(invoice),
            )

        return self._run("billing.send_timesheet_to_agency", actor, work, timesheet_id)

    def _invoice_from_timesheet(
        self,
        timesheet: Timesheet,
        contract: Contract,
        actor: Actor,
    ) -> Invoice:
        return self._new_invoice(
            contract,
            actor,
            amount=timesheet.total_amount,
            currency=timesheet.currency,
            owner_id=timesheet.owner_id,
            timesheet_id=timesheet.id,
        )

    def get_timesheet(self, actor: Actor, timesheet_id: UUID) -> TimesheetInfo:
        def work(uow: UnitOfWork) -> TimesheetInfo:
            access = self._access(uow.session, actor)
            return _timesheet_info(
                self._load_visible(
                    uow.session, Timesheet, timesheet_id, actor, access, "timesheet"
                )
            )

        return self._run("billing.get_timesheet", actor, work, timesheet_id, read_only=True)

    def list_timesheets(
        self,
        actor: Actor,
        workflow_state: TimesheetState | str | None = None,
    ) -> list[TimesheetInfo]:
        def work(uow: UnitOfWork) -> list[TimesheetInfo]:
            access = self._access(uow.session, actor)
            stmt = select(Timesheet).where(
                self._visible_clause(actor, access, Timesheet, "timesheet")
            )
            if workflow_state is not None:
                stmt = stmt.where(
                    Timesheet.workflow_state == TimesheetState(workflow_state).value
                )
            stmt = stmt.order_by(Timesheet.period_start.desc(), Timesheet.id)
            return [_timesheet_info(t) for t in uow.session.execute(stmt).scalars()]

        return self._run("billing.list_timesheets", actor, work, read_only=True)

    # -------------------------------------------------------------------------
    # Remittances
    # -------------------------------------------------------------------------

    def remittances_for_invoice(self, actor: Actor, invoice_id: UUID) -> list[RemittanceInfo]:
        def work(uow: UnitOfWork) -> list[RemittanceInfo]:
            access = self._access(uow.session, actor)
            invoice = self._load_visible(
                uow.session, Invoice, invoice_id, actor, access, "invoice"
            )
            return RemittanceLedger(uow.session, self._clock).by_invoice(
                invoice.tenant_id, invoice.id
            )

        return self._run(
            "billing.remittances_for_invoice", actor, work, invoice_id, read_only=True
        )

    def my_remittances(
        self,
        actor: Actor,
        direction: PaymentDirection | str | None = None,
    ) -> list[RemittanceInfo]:
        """The actor's own remittances (received, sent or both)."""

        def work(uow: UnitOfWork) -> list[RemittanceInfo]:
            self._check_actor(actor)
            return RemittanceLedger(uow.session, self._clock).by_user(
                actor.tenant_id, actor.user_id, direction
            )

        return self._run("billing.my_remittances", actor, work, read_only=True)

    def my_remittance_summary(self, actor: Actor) -> RemittanceSummary:
        def work(uow: UnitOfWork) -> RemittanceSummary:
            self._check_actor(actor)
            return RemittanceLedger(uow.session, self._clock).summary_for_user(
                actor.tenant_id, actor.user_id
            )

        return self._run("billing.my_remittance_summary", actor, work, read_only=True)

    def advance_remittance(
        self,
        actor: Actor,
        remittance_id: UUID,
        to_status: RemittanceStatus | str,
        notes: str | None = None,
    ) -> RemittanceInfo:
        """Settlement progress; requires remittance.update.global."""

        def work(uow: UnitOfWork) -> RemittanceInfo:
            self._check_actor(actor)
            if not has_permission(actor, REMITTANCE_UPDATE_GLOBAL):
                raise ForbiddenError(str(REMITTANCE_UPDATE_GLOBAL), entity_id=str(remittance_id))
            info = RemittanceLedger(uow.session, self._clock).advance_status(
                remittance_id, actor.tenant_id, to_status, actor.user_id, notes=notes
            )
            self._notify_on_commit(
                uow,
                f"remittance.{info.status.value}",
                {"remittance_id": str(remittance_id)},
            )
            return info

        return self._run("billing.advance_remittance", actor, work, remittance_id)
