"""
Pure domain layer.

Lifecycle vocabularies, workflow tables, permission keys, the scope
resolver and the invoice read projection.  Nothing here performs I/O;
time comes from an injected Clock.
"""

from workforce_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workforce_kernel.domain.lifecycles import (
    CONTRACT_WORKFLOW,
    INVOICE_WORKFLOW,
    REMITTANCE_TRANSITIONS,
    TIMESHEET_WORKFLOW,
    WORKFLOWS,
)
from workforce_kernel.domain.permissions import (
    PermissionKey,
    ScopeClass,
    has_permission,
    scopes_for,
)
from workforce_kernel.domain.scope import (
    AccessSnapshot,
    Actor,
    ScopePredicate,
    ScopeResolver,
)
from workforce_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "AccessSnapshot",
    "Actor",
    "CONTRACT_WORKFLOW",
    "Clock",
    "DeterministicClock",
    "Guard",
    "INVOICE_WORKFLOW",
    "PermissionKey",
    "REMITTANCE_TRANSITIONS",
    "ScopeClass",
    "ScopePredicate",
    "ScopeResolver",
    "SystemClock",
    "TIMESHEET_WORKFLOW",
    "Transition",
    "WORKFLOWS",
    "Workflow",
    "has_permission",
    "scopes_for",
]
