"""
workforce_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the kernel: the workflow engine, the
    transaction coordinator, the rate guard, and the contract and billing
    lifecycle services built from them.  This is the only layer that opens
    units of work or commits.

Architecture position:
    Services -- stateful orchestration over the kernel.

    Dependency direction:
        workforce_services/ -> workforce_kernel/  (allowed)
        workforce_services/ -> workforce_config/  (allowed)
        workforce_kernel/   -> workforce_services/ (FORBIDDEN)

Audit relevance:
    - This package is the canonical import surface for transports and
      workers.  Changes to __all__ must be reviewed for compatibility.
"""

from workforce_services.billing_lifecycle import (
    BillingLifecycle,
    InvoiceDraft,
    InvoiceInfo,
    PaymentDetails,
    SentTimesheet,
    TimesheetDraft,
    TimesheetInfo,
)
from workforce_services.contract_lifecycle import (
    ContractChanges,
    ContractDraft,
    ContractInfo,
    ContractLifecycle,
)
from workforce_services.error_presenter import UserFacingError, present_error
from workforce_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from workforce_services.orchestrator import WorkforceOrchestrator
from workforce_services.rate_guard import RateDecision, RateGuard
from workforce_services.transaction_coordinator import TransactionCoordinator, UnitOfWork
from workforce_services.workflow_engine import (
    AvailableTransition,
    GateExecutor,
    TransitionDecision,
    WorkflowEngine,
)

__all__ = [
    "AvailableTransition",
    "BillingLifecycle",
    "ContractChanges",
    "ContractDraft",
    "ContractInfo",
    "ContractLifecycle",
    "GateExecutor",
    "InvoiceDraft",
    "InvoiceInfo",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "PaymentDetails",
    "RateDecision",
    "RateGuard",
    "SentTimesheet",
    "TimesheetDraft",
    "TimesheetInfo",
    "TransactionCoordinator",
    "TransitionDecision",
    "UnitOfWork",
    "UserFacingError",
    "WorkflowEngine",
    "WorkforceOrchestrator",
    "present_error",
]
