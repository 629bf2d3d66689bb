"""Kernel services -- imperative shell over the pure domain layer."""

from workforce_kernel.services.base import BaseService
from workforce_kernel.services.delegated_access_service import (
    DelegatedAccessService,
    GrantCache,
    GrantInfo,
)
from workforce_kernel.services.identity_service import IdentityService, UserInfo
from workforce_kernel.services.lifecycle_store import LifecycleStore
from workforce_kernel.services.participant_service import (
    ParticipantInfo,
    ParticipantRegistry,
)
from workforce_kernel.services.remittance_ledger import (
    RemittanceInfo,
    RemittanceLedger,
    RemittanceParams,
    RemittanceSummary,
)

__all__ = [
    "BaseService",
    "DelegatedAccessService",
    "GrantCache",
    "GrantInfo",
    "IdentityService",
    "LifecycleStore",
    "ParticipantInfo",
    "ParticipantRegistry",
    "RemittanceInfo",
    "RemittanceLedger",
    "RemittanceParams",
    "RemittanceSummary",
    "UserInfo",
]
