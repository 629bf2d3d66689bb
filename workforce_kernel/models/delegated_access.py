"""
Module: workforce_kernel.models.delegated_access
Responsibility: ORM persistence for delegated access grants.  A grant lets
    ``granted_to`` see the records owned by ``granted_for`` under the parent
    scope.
Architecture position: Kernel > Models.

Invariants enforced:
    - uq_delegated_grant: one grant row per (tenant, to, for); re-granting
      reactivates the row.
    - ck_delegated_grant_distinct: a user cannot delegate to themselves.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workforce_kernel.db.base import TrackedBase, UUIDString


class DelegatedAccessGrant(TrackedBase):
    __tablename__ = "delegated_access_grants"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "granted_to_user_id",
            "granted_for_user_id",
            name="uq_delegated_grant",
        ),
        CheckConstraint(
            "granted_to_user_id <> granted_for_user_id",
            name="ck_delegated_grant_distinct",
        ),
        Index("idx_delegated_grant_to", "tenant_id", "granted_to_user_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    granted_to_user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    granted_for_user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def is_effective(self, now: datetime) -> bool:
        if self.revoked_at is not None:
            return False
        return self.expires_at is None or self.expires_at > now

    def __repr__(self) -> str:
        return (
            f"<DelegatedAccessGrant to={self.granted_to_user_id} "
            f"for={self.granted_for_user_id}>"
        )
