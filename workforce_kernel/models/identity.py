"""
Module: workforce_kernel.models.identity
Responsibility: ORM persistence for tenants, companies, users, and the roles
    that carry permission keys.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain vocabularies only.

Invariants enforced:
    - Every company, role and user belongs to exactly one tenant.
    - Users are soft-disabled through ``is_active``; rows are never deleted
      while records reference them.
    - ``User.created_by_id`` is the parent user; it is what the parent scope
      follows, so it is nullable only for tenant bootstrap users.

Failure modes:
    - IntegrityError on duplicate (tenant_id, email), (tenant_id, role name)
      or (role_id, permission_key).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_kernel.db.base import Base, UTCDateTime, UUIDString
from workforce_kernel.domain.states import CompanyType


class Tenant(Base):
    """A customer of the platform; the hard isolation boundary."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.name}>"


class Role(Base):
    """
    Named bundle of permission keys inside one tenant.

    Contract:
        Permission keys are stored verbatim (``resource.action.scope``) and
        validated by the identity service before insert.
    """

    __tablename__ = "roles"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_role_tenant_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def permission_keys(self) -> frozenset[str]:
        return frozenset(p.permission_key for p in self.permissions)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class RolePermission(Base):
    __tablename__ = "role_permissions"

    __table_args__ = (
        UniqueConstraint("role_id", "permission_key", name="uq_role_permission"),
    )

    role_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("roles.id"),
        nullable=False,
    )

    permission_key: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[Role] = relationship("Role", back_populates="permissions")


class Company(Base):
    """Tenant-side company or external agency."""

    __tablename__ = "companies"

    __table_args__ = (
        Index("idx_company_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    company_type: Mapped[CompanyType] = mapped_column(
        String(20),
        nullable=False,
        default=CompanyType.TENANT.value,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_agency(self) -> bool:
        return self.company_type == CompanyType.AGENCY

    def __repr__(self) -> str:
        return f"<Company {self.name} ({self.company_type})>"


class User(Base):
    """
    A person acting inside one tenant.

    Guarantees:
        - created_at is written by the identity service from the injected
          clock; approver selection orders by it.
        - created_by_id names the parent user (NULL for bootstrap users).
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        Index("idx_user_tenant_active", "tenant_id", "is_active"),
        Index("idx_user_created_by", "created_by_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=True,
    )

    role_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("roles.id"),
        nullable=False,
    )

    created_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    role: Mapped[Role] = relationship("Role", lazy="joined")

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class CompanyUser(Base):
    """Membership of a user in a company besides their home ``company_id``."""

    __tablename__ = "company_users"

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_user"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
