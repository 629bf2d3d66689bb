"""
ScopeResolver -- record visibility as a pure predicate.

Responsibility:
    Turns (actor, scope class, access snapshot) into a ``ScopePredicate``
    that decides which records the actor may see or act on.  The same
    predicate is evaluated in memory for single records and compiled to a
    SQLAlchemy WHERE clause for list queries, so both paths agree.

Architecture position:
    Kernel > Domain -- pure functional core.  The only database-derived
    input is the ``AccessSnapshot`` (child users and delegated grants),
    which the delegated access service builds before the call.

Invariants enforced:
    - Every predicate includes the actor's tenant; nothing crosses tenants.
    - own_company for an actor without a company is exactly the parent
      predicate (no broader, no narrower).
    - A record's owner is ``owner_id`` when set, otherwise ``created_by_id``.

Failure modes:
    - UnauthorizedError: actor without tenant, or inactive.
    - ConfigurationError: unknown scope class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, false, func, or_
from sqlalchemy.sql.elements import ColumnElement

from workforce_kernel.domain.permissions import ScopeClass
from workforce_kernel.exceptions import ConfigurationError, UnauthorizedError


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the identity provider."""

    user_id: UUID
    tenant_id: UUID | None
    company_id: UUID | None = None
    permission_keys: frozenset[str] = frozenset()
    is_active: bool = True


@dataclass(frozen=True)
class AccessSnapshot:
    """
    Database-derived inputs to the parent scope, taken at one instant.

    child_user_ids: users whose ``created_by_id`` is the actor.
    delegated_owner_ids: users with an unexpired, unrevoked grant to the actor.
    """

    actor_id: UUID
    child_user_ids: frozenset[UUID] = frozenset()
    delegated_owner_ids: frozenset[UUID] = frozenset()
    taken_at: datetime | None = None

    @property
    def owner_ids(self) -> frozenset[UUID]:
        return frozenset({self.actor_id}) | self.child_user_ids | self.delegated_owner_ids

    @classmethod
    def empty(cls, actor: Actor) -> AccessSnapshot:
        return cls(actor_id=actor.user_id)


def _owner_of(record: Any) -> Any:
    owner = getattr(record, "owner_id", None)
    return owner if owner is not None else getattr(record, "created_by_id", None)


@dataclass(frozen=True)
class ScopePredicate:
    """Boolean filter over records carrying tenant/company/creator/owner ids."""

    scope: ScopeClass
    tenant_id: UUID
    actor_id: UUID
    company_id: UUID | None = None
    owner_ids: frozenset[UUID] = field(default_factory=frozenset)

    def matches(self, record: Any) -> bool:
        if getattr(record, "tenant_id", None) != self.tenant_id:
            return False
        if self.scope is ScopeClass.GLOBAL:
            return True
        if self.scope is ScopeClass.OWN_COMPANY:
            return (
                self.company_id is not None
                and getattr(record, "company_id", None) == self.company_id
            )
        if getattr(record, "created_by_id", None) == self.actor_id:
            return True
        return _owner_of(record) in self.owner_ids

    def as_clause(self, model: Any) -> ColumnElement[bool]:
        """Compile to a WHERE clause against ``model``'s columns."""
        tenant_clause = model.tenant_id == self.tenant_id
        if self.scope is ScopeClass.GLOBAL:
            return tenant_clause
        if self.scope is ScopeClass.OWN_COMPANY:
            if self.company_id is None or not hasattr(model, "company_id"):
                return and_(tenant_clause, false())
            return and_(tenant_clause, model.company_id == self.company_id)
        if hasattr(model, "owner_id"):
            owner_col = func.coalesce(model.owner_id, model.created_by_id)
        else:
            owner_col = model.created_by_id
        return and_(
            tenant_clause,
            or_(
                model.created_by_id == self.actor_id,
                owner_col.in_(sorted(self.owner_ids, key=str)),
            ),
        )


class ScopeResolver:
    """
    Pure resolver from scope class to predicate.

    Contract:
        ``resolve`` never touches the database; callers hand in the access
        snapshot.  The same inputs always produce an equal predicate.

    Non-goals:
        Does not decide WHICH scope applies -- that is the actor's
        permission set, see ``permissions.scopes_for``.
    """

    def resolve(
        self,
        actor: Actor,
        scope_class: ScopeClass | str,
        access: AccessSnapshot | None = None,
    ) -> ScopePredicate:
        if actor.tenant_id is None:
            raise UnauthorizedError("actor has no tenant")
        if not actor.is_active:
            raise UnauthorizedError("actor is inactive")

        scope = self._coerce(scope_class)
        snapshot = access or AccessSnapshot.empty(actor)

        if scope is ScopeClass.GLOBAL:
            return ScopePredicate(
                scope=scope, tenant_id=actor.tenant_id, actor_id=actor.user_id
            )
        if scope is ScopeClass.OWN_COMPANY and actor.company_id is not None:
            return ScopePredicate(
                scope=scope,
                tenant_id=actor.tenant_id,
                actor_id=actor.user_id,
                company_id=actor.company_id,
            )
        # parent, and own_company for an actor without a company
        return ScopePredicate(
            scope=ScopeClass.PARENT,
            tenant_id=actor.tenant_id,
            actor_id=actor.user_id,
            owner_ids=snapshot.owner_ids,
        )

    @staticmethod
    def _coerce(scope_class: ScopeClass | str) -> ScopeClass:
        if isinstance(scope_class, ScopeClass):
            return scope_class
        try:
            return ScopeClass(scope_class)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown scope class '{scope_class}'", setting="scope"
            ) from exc
