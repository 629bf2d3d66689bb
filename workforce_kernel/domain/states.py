"""
Lifecycle vocabularies (``workforce_kernel.domain.states``).

Responsibility
--------------
The stable lowercase snake_case names for every type, role and state the
kernel persists.  Integrators switch on these strings, so a value here is
never renamed once released.

Architecture position
---------------------
**Kernel domain layer** -- pure enums.  ZERO I/O.  Imported by models/,
by the workflow tables in ``domain.lifecycles`` and by services.
"""

from enum import Enum


class CompanyType(str, Enum):
    """Tenant-side company or external staffing agency."""

    TENANT = "tenant"
    AGENCY = "agency"


class ContractType(str, Enum):
    """Master agreement, statement of work under an MSA, or standalone."""

    MSA = "msa"
    SOW = "sow"
    NORM = "norm"


class ContractWorkflowStatus(str, Enum):
    """Fine-grained contract lifecycle state."""

    DRAFT = "draft"
    PENDING_AGENCY_SIGN = "pending_agency_sign"
    PENDING_CONTRACTOR_SIGN = "pending_contractor_sign"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


class ContractStatus(str, Enum):
    """Coarse legacy status kept alongside the workflow status."""

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


# Every workflow status maps to exactly one legacy status
LEGACY_CONTRACT_STATUS: dict[ContractWorkflowStatus, ContractStatus] = {
    ContractWorkflowStatus.DRAFT: ContractStatus.DRAFT,
    ContractWorkflowStatus.PENDING_AGENCY_SIGN: ContractStatus.PENDING,
    ContractWorkflowStatus.PENDING_CONTRACTOR_SIGN: ContractStatus.PENDING,
    ContractWorkflowStatus.ACTIVE: ContractStatus.ACTIVE,
    ContractWorkflowStatus.PAUSED: ContractStatus.PAUSED,
    ContractWorkflowStatus.COMPLETED: ContractStatus.COMPLETED,
    ContractWorkflowStatus.TERMINATED: ContractStatus.TERMINATED,
    ContractWorkflowStatus.CANCELLED: ContractStatus.CANCELLED,
}


class ParticipantRole(str, Enum):
    """Role a user or company plays on one contract."""

    CLIENT = "client"
    AGENCY = "agency"
    CONTRACTOR = "contractor"
    APPROVER = "approver"
    SIGNER = "signer"
    TENANT_SIGNER = "tenant_signer"
    ADDITIONAL = "additional"


# Roles that anchor a contract and cannot be removed once added
PROTECTED_PARTICIPANT_ROLES: frozenset[ParticipantRole] = frozenset({
    ParticipantRole.CLIENT,
    ParticipantRole.AGENCY,
    ParticipantRole.CONTRACTOR,
    ParticipantRole.APPROVER,
})


class InvoiceState(str, Enum):
    """Invoice workflow state."""

    DRAFT = "draft"
    REVIEWING = "reviewing"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT = "sent"
    PAYMENT_RECEIVED = "payment_received"
    SELF_BILLED = "self_billed"
    PAYROLL_ROUTED = "payroll_routed"
    SPLIT = "split"
    CANCELLED = "cancelled"


# Read-only projection, never stored
OVERDUE = "overdue"


class TimesheetState(str, Enum):
    """Timesheet workflow state."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"
    SENT = "sent"


class RemittanceStatus(str, Enum):
    """Settlement progress of one remittance entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentDirection(str, Enum):
    """Money flowing into the platform, or out of it."""

    RECEIVED = "received"
    SENT = "sent"


class RecipientType(str, Enum):
    ADMIN = "admin"
    CONTRACTOR = "contractor"
    PAYROLL = "payroll"
    AGENCY = "agency"


class RemittanceMilestone(str, Enum):
    """The three money-movement milestones that append to the ledger."""

    PAYMENT_RECEIVED = "payment_received"
    CONTRACTOR_PAYMENT_SENT = "contractor_payment_sent"
    PAYROLL_PAYMENT_SENT = "payroll_payment_sent"
