"""
DelegatedAccessService -- grants that widen the parent scope.

Responsibility:
    Grants and revokes delegated access, and builds the ``AccessSnapshot``
    the scope resolver needs: the actor's child users plus the users who
    delegated to the actor.

Architecture position:
    Kernel > Services.  Reads and writes DelegatedAccessGrant and User.

Invariants enforced:
    - Expired or revoked grants never appear in a snapshot.
    - Cache staleness is bounded: a cached set of delegating users lives at
      most ``ttl_seconds`` and never past the earliest expiry among the
      grants it contains.  Grant and revoke invalidate the grantee's entry
      on flush; the committing caller invalidates it again after commit so
      a read racing the transaction cannot re-cache the old grants.

Failure modes:
    - ValidationError: self-delegation, or users outside the tenant.
    - RecordNotFoundError: revoking a grant that does not exist.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from workforce_kernel.domain.clock import Clock
from workforce_kernel.domain.scope import AccessSnapshot, Actor
from workforce_kernel.exceptions import RecordNotFoundError, ValidationError
from workforce_kernel.logging_config import get_logger
from workforce_kernel.models.delegated_access import DelegatedAccessGrant
from workforce_kernel.models.identity import User
from workforce_kernel.services.base import BaseService
from workforce_kernel.services.identity_service import IdentityService

logger = get_logger("services.delegated_access")


@dataclass(frozen=True)
class GrantInfo:
    """Immutable DTO for a delegated access grant."""

    id: UUID
    tenant_id: UUID
    granted_to_user_id: UUID
    granted_for_user_id: UUID
    expires_at: datetime | None
    revoked_at: datetime | None


@dataclass(frozen=True)
class _CacheEntry:
    owner_ids: frozenset[UUID]
    valid_until: datetime


class GrantCache:
    """
    Process-level cache of delegating users per grantee.

    Contract:
        Shared by every DelegatedAccessService of one process (inject the
        same instance).  Thread-safe.
    """

    def __init__(self, clock: Clock, ttl_seconds: float = 30.0):
        self._clock = clock
        self._ttl = timedelta(seconds=ttl_seconds)
        self._entries: dict[tuple[UUID, UUID], _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: UUID, user_id: UUID) -> frozenset[UUID] | None:
        with self._lock:
            entry = self._entries.get((tenant_id, user_id))
            if entry is None:
                return None
            if self._clock.now_utc() >= entry.valid_until:
                del self._entries[(tenant_id, user_id)]
                return None
            return entry.owner_ids

    def put(
        self,
        tenant_id: UUID,
        user_id: UUID,
        owner_ids: frozenset[UUID],
        earliest_expiry: datetime | None = None,
    ) -> None:
        valid_until = self._clock.now_utc() + self._ttl
        if earliest_expiry is not None and earliest_expiry < valid_until:
            valid_until = earliest_expiry
        with self._lock:
            self._entries[(tenant_id, user_id)] = _CacheEntry(owner_ids, valid_until)

    def invalidate(self, tenant_id: UUID, user_id: UUID) -> None:
        with self._lock:
            self._entries.pop((tenant_id, user_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DelegatedAccessService(BaseService[DelegatedAccessGrant]):
    """Grant/revoke delegated access and build access snapshots."""

    def __init__(self, session: Session, clock: Clock, cache: GrantCache | None = None):
        super().__init__(session, clock)
        self._cache = cache if cache is not None else GrantCache(clock)

    def _to_dto(self, grant: DelegatedAccessGrant) -> GrantInfo:
        return GrantInfo(
            id=grant.id,
            tenant_id=grant.tenant_id,
            granted_to_user_id=grant.granted_to_user_id,
            granted_for_user_id=grant.granted_for_user_id,
            expires_at=grant.expires_at,
            revoked_at=grant.revoked_at,
        )

    def _check_user(self, tenant_id: UUID, user_id: UUID, field: str) -> None:
        user = self.session.get(User, user_id)
        if user is None or user.tenant_id != tenant_id:
            raise ValidationError("User does not belong to this tenant", field=field)

    def grant(
        self,
        tenant_id: UUID,
        granted_to_user_id: UUID,
        granted_for_user_id: UUID,
        actor_id: UUID,
        expires_at: datetime | None = None,
    ) -> GrantInfo:
        """Create or reactivate the grant ``for -> to``."""
        if granted_to_user_id == granted_for_user_id:
            raise ValidationError("A user cannot delegate access to themselves")
        self._check_user(tenant_id, granted_to_user_id, "granted_to_user_id")
        self._check_user(tenant_id, granted_for_user_id, "granted_for_user_id")
        if expires_at is not None and expires_at <= self._clock.now_utc():
            raise ValidationError("Grant expiry must be in the future", field="expires_at")

        grant = self._find(tenant_id, granted_to_user_id, granted_for_user_id)
        if grant is None:
            grant = DelegatedAccessGrant(
                tenant_id=tenant_id,
                granted_to_user_id=granted_to_user_id,
                granted_for_user_id=granted_for_user_id,
                expires_at=expires_at,
                created_by_id=actor_id,
                created_at=self._clock.now_utc(),
            )
            self.session.add(grant)
        else:
            grant.expires_at = expires_at
            grant.revoked_at = None
            grant.updated_by_id = actor_id
        self.session.flush()
        self._cache.invalidate(tenant_id, granted_to_user_id)

        logger.info(
            "delegated_access_granted",
            extra={
                "grant_id": str(grant.id),
                "granted_to_user_id": str(granted_to_user_id),
                "granted_for_user_id": str(granted_for_user_id),
                "expires_at": expires_at,
            },
        )
        return self._to_dto(grant)

    def revoke(
        self,
        tenant_id: UUID,
        granted_to_user_id: UUID,
        granted_for_user_id: UUID,
        actor_id: UUID,
    ) -> GrantInfo:
        grant = self._find(tenant_id, granted_to_user_id, granted_for_user_id)
        if grant is None:
            raise RecordNotFoundError("DelegatedAccessGrant", granted_for_user_id)
        if grant.revoked_at is None:
            grant.revoked_at = self._clock.now_utc()
            grant.updated_by_id = actor_id
            self.session.flush()
        self._cache.invalidate(tenant_id, granted_to_user_id)
        logger.info(
            "delegated_access_revoked",
            extra={
                "grant_id": str(grant.id),
                "granted_to_user_id": str(granted_to_user_id),
                "granted_for_user_id": str(granted_for_user_id),
            },
        )
        return self._to_dto(grant)

    def list_grants(self, tenant_id: UUID, user_id: UUID) -> list[GrantInfo]:
        """Effective grants given to or by ``user_id``."""
        now = self._clock.now_utc()
        rows = self.session.execute(
            select(DelegatedAccessGrant)
            .where(
                DelegatedAccessGrant.tenant_id == tenant_id,
                or_(
                    DelegatedAccessGrant.granted_to_user_id == user_id,
                    DelegatedAccessGrant.granted_for_user_id == user_id,
                ),
            )
            .order_by(DelegatedAccessGrant.created_at)
        ).scalars()
        return [self._to_dto(g) for g in rows if g.is_effective(now)]

    def snapshot_for(self, actor: Actor) -> AccessSnapshot:
        """Children and delegating users of ``actor``, as of now."""
        now = self._clock.now_utc()
        children = IdentityService(self.session, self._clock).child_user_ids(
            actor.tenant_id, actor.user_id
        )

        delegated = self._cache.get(actor.tenant_id, actor.user_id)
        if delegated is None:
            grants = [
                g
                for g in self.session.execute(
                    select(DelegatedAccessGrant).where(
                        DelegatedAccessGrant.tenant_id == actor.tenant_id,
                        DelegatedAccessGrant.granted_to_user_id == actor.user_id,
                        DelegatedAccessGrant.revoked_at.is_(None),
                    )
                ).scalars()
                if g.is_effective(now)
            ]
            delegated = frozenset(g.granted_for_user_id for g in grants)
            expiries = [g.expires_at for g in grants if g.expires_at is not None]
            self._cache.put(
                actor.tenant_id,
                actor.user_id,
                delegated,
                earliest_expiry=min(expiries) if expiries else None,
            )

        return AccessSnapshot(
            actor_id=actor.user_id,
            child_user_ids=children,
            delegated_owner_ids=delegated,
            taken_at=now,
        )

    def _find(
        self,
        tenant_id: UUID,
        granted_to_user_id: UUID,
        granted_for_user_id: UUID,
    ) -> DelegatedAccessGrant | None:
        return self.session.execute(
            select(DelegatedAccessGrant).where(
                DelegatedAccessGrant.tenant_id == tenant_id,
                DelegatedAccessGrant.granted_to_user_id == granted_to_user_id,
                DelegatedAccessGrant.granted_for_user_id == granted_for_user_id,
            )
        ).scalar_one_or_none()
