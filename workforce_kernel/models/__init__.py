"""ORM models for the workforce kernel."""

from workforce_kernel.models.billing import Invoice, Timesheet
from workforce_kernel.models.contract import Contract, ContractParticipant
from workforce_kernel.models.delegated_access import DelegatedAccessGrant
from workforce_kernel.models.identity import (
    Company,
    CompanyUser,
    Role,
    RolePermission,
    Tenant,
    User,
)
from workforce_kernel.models.remittance import REMITTANCE_MUTABLE_FIELDS, Remittance

__all__ = [
    "Company",
    "CompanyUser",
    "Contract",
    "ContractParticipant",
    "DelegatedAccessGrant",
    "Invoice",
    "REMITTANCE_MUTABLE_FIELDS",
    "Remittance",
    "Role",
    "RolePermission",
    "Tenant",
    "Timesheet",
    "User",
]
