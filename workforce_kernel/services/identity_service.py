"""
Service layer for tenants, companies, roles and users.

Bridges the identity data the kernel stores to the ``Actor`` value the
rest of the kernel consumes.  Returns DTOs, never ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from workforce_kernel.domain.permissions import PermissionKey, validate_keys
from workforce_kernel.domain.scope import Actor
from workforce_kernel.domain.states import CompanyType
from workforce_kernel.exceptions import (
    RecordNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.identity import (
    Company,
    CompanyUser,
    Role,
    RolePermission,
    Tenant,
    User,
)
from workforce_kernel.services.base import BaseService

logger = get_logger("services.identity")


@dataclass(frozen=True)
class UserInfo:
    """Immutable DTO for user data."""

    id: UUID
    tenant_id: UUID
    email: str
    name: str
    company_id: UUID | None
    role_id: UUID
    created_by_id: UUID | None
    is_active: bool
    created_at: datetime


class IdentityService(BaseService[User]):
    """
    Service for the identity records the kernel keeps.

    ``actor_for`` is the adapter from a stored user to the ``Actor`` the
    identity provider would otherwise supply.
    """

    def _to_dto(self, user: User) -> UserInfo:
        return UserInfo(
            id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            name=user.name,
            company_id=user.company_id,
            role_id=user.role_id,
            created_by_id=user.created_by_id,
            is_active=user.is_active,
            created_at=user.created_at,
        )

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_tenant(self, name: str) -> UUID:
        tenant = Tenant(name=name, created_at=self._clock.now_utc())
        self.session.add(tenant)
        self.session.flush()
        logger.info("tenant_created", extra={"tenant_id": str(tenant.id)})
        return tenant.id

    def create_role(
        self,
        tenant_id: UUID,
        name: str,
        permission_keys: Iterable[str],
    ) -> UUID:
        """Create a role; every key is validated before anything is written."""
        keys = validate_keys(permission_keys)
        role = Role(tenant_id=tenant_id, name=name)
        role.permissions = [RolePermission(permission_key=k) for k in sorted(keys)]
        self.session.add(role)
        self.session.flush()
        logger.info(
            "role_created",
            extra={"role_id": str(role.id), "role_name": name, "permissions": sorted(keys)},
        )
        return role.id

    def create_company(
        self,
        tenant_id: UUID,
        name: str,
        company_type: CompanyType | str = CompanyType.TENANT,
    ) -> UUID:
        try:
            ctype = CompanyType(company_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown company type '{company_type}'", field="company_type"
            ) from exc
        company = Company(tenant_id=tenant_id, name=name, company_type=ctype.value)
        self.session.add(company)
        self.session.flush()
        return company.id

    def create_user(
        self,
        tenant_id: UUID,
        email: str,
        name: str,
        role_id: UUID,
        company_id: UUID | None = None,
        created_by_id: UUID | None = None,
        created_at: datetime | None = None,
    ) -> UserInfo:
        role = self.session.get(Role, role_id)
        if role is None or role.tenant_id != tenant_id:
            raise ValidationError("Role does not belong to this tenant", field="role_id")
        if created_by_id is not None:
            parent = self.session.get(User, created_by_id)
            if parent is None or parent.tenant_id != tenant_id:
                raise ValidationError(
                    "Parent user does not belong to this tenant", field="created_by_id"
                )
        user = User(
            tenant_id=tenant_id,
            email=email.strip().lower(),
            name=name,
            role_id=role_id,
            company_id=company_id,
            created_by_id=created_by_id,
            created_at=created_at or self._clock.now_utc(),
        )
        self.session.add(user)
        self.session.flush()
        logger.info(
            "user_created",
            extra={
                "user_id": str(user.id),
                "tenant_id": str(tenant_id),
                "created_by_id": str(created_by_id) if created_by_id else None,
            },
        )
        return self._to_dto(user)

    def add_company_member(self, tenant_id: UUID, company_id: UUID, user_id: UUID) -> None:
        existing = self.session.execute(
            select(CompanyUser).where(
                CompanyUser.company_id == company_id,
                CompanyUser.user_id == user_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            existing.is_active = True
        else:
            self.session.add(
                CompanyUser(tenant_id=tenant_id, company_id=company_id, user_id=user_id)
            )
        self.session.flush()

    def deactivate_user(self, user_id: UUID) -> None:
        user = self._get_user(user_id)
        user.is_active = False
        self.session.flush()
        logger.info("user_deactivated", extra={"user_id": str(user_id)})

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise RecordNotFoundError("User", user_id)
        return user

    def get_user(self, user_id: UUID) -> UserInfo:
        return self._to_dto(self._get_user(user_id))

    def company_ids_for(self, user_id: UUID) -> frozenset[UUID]:
        """Home company plus every active membership."""
        user = self._get_user(user_id)
        ids = set(
            self.session.execute(
                select(CompanyUser.company_id).where(
                    CompanyUser.user_id == user_id,
                    CompanyUser.is_active.is_(True),
                )
            ).scalars()
        )
        if user.company_id is not None:
            ids.add(user.company_id)
        return frozenset(ids)

    def actor_for(self, user_id: UUID) -> Actor:
        """
        Build the Actor for a stored user.

        Raises:
            UnauthorizedError: unknown or inactive user.
        """
        user = self.session.get(User, user_id)
        if user is None:
            raise UnauthorizedError("unknown user")
        if not user.is_active:
            raise UnauthorizedError("user is inactive")
        return Actor(
            user_id=user.id,
            tenant_id=user.tenant_id,
            company_id=user.company_id,
            permission_keys=user.role.permission_keys,
            is_active=user.is_active,
        )

    def users_with_permission(
        self,
        tenant_id: UUID,
        key: PermissionKey,
    ) -> list[UserInfo]:
        """Active users of the tenant holding ``key``, oldest-created first."""
        stmt = (
            select(User)
            .join(RolePermission, RolePermission.role_id == User.role_id)
            .where(
                User.tenant_id == tenant_id,
                User.is_active.is_(True),
                RolePermission.permission_key == str(key),
            )
            .order_by(User.created_at.asc(), User.id.asc())
        )
        return [self._to_dto(u) for u in self.session.execute(stmt).scalars()]

    def child_user_ids(self, tenant_id: UUID, user_id: UUID) -> frozenset[UUID]:
        """Users whose parent (``created_by_id``) is ``user_id``."""
        return frozenset(
            self.session.execute(
                select(User.id).where(
                    User.tenant_id == tenant_id,
                    User.created_by_id == user_id,
                )
            ).scalars()
        )
