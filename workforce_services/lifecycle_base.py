"""
Shared plumbing for the lifecycle services.

Every public lifecycle operation follows the same shape: open a unit of
work, take the actor's access snapshot, check read visibility of the
record (``<resource>.view``), ask the workflow engine, compare-and-set,
then register notifications to run after commit.  This module holds the
steps that do not depend on the resource.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID

from sqlalchemy import false, or_
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from workforce_config.schema import KernelSettings
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.domain.permissions import scopes_for
from workforce_kernel.domain.scope import AccessSnapshot, Actor, ScopeResolver
from workforce_kernel.exceptions import (
    ForbiddenError,
    RecordNotFoundError,
    UnauthorizedError,
)
from workforce_kernel.logging_config import LogContext, get_logger
from workforce_kernel.services.delegated_access_service import (
    DelegatedAccessService,
    GrantCache,
)
from workforce_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    notification_hook,
)
from workforce_services.transaction_coordinator import TransactionCoordinator, UnitOfWork
from workforce_services.workflow_engine import WorkflowEngine

logger = get_logger("services.lifecycle")

T = TypeVar("T")


class LifecycleService:
    """
    Base for ContractLifecycle and BillingLifecycle.

    Contract:
        Collaborators are constructor-injected.  One GrantCache should be
        shared by every lifecycle service of a process so that grant and
        revoke invalidate what the others read.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        engine: WorkflowEngine | None = None,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
        grant_cache: GrantCache | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._clock = clock or SystemClock()
        self._settings = settings or KernelSettings()
        self._resolver = ScopeResolver()
        self._engine = engine or WorkflowEngine(self._resolver)
        if grant_cache is None:
            grant_cache = GrantCache(self._clock, self._settings.grant_cache_ttl_seconds)
        self._grant_cache = grant_cache
        self._notifier = notifier or LoggingNotificationDispatcher()

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_actor(actor: Actor) -> None:
        if actor.tenant_id is None:
            raise UnauthorizedError("actor has no tenant")
        if not actor.is_active:
            raise UnauthorizedError("actor is inactive")

    def _access(self, session: Session, actor: Actor) -> AccessSnapshot:
        self._check_actor(actor)
        return DelegatedAccessService(session, self._clock, self._grant_cache).snapshot_for(actor)

    def _covers(
        self,
        actor: Actor,
        access: AccessSnapshot,
        record: Any,
        resource: str,
        action: str,
    ) -> bool:
        return any(
            self._resolver.resolve(actor, scope, access).matches(record)
            for scope in scopes_for(actor, resource, action)
        )

    def _load_visible(
        self,
        session: Session,
        model: type,
        record_id: UUID,
        actor: Actor,
        access: AccessSnapshot,
        resource: str,
    ) -> Any:
        """Load a record the actor may view; missing and hidden look the same."""
        record = session.get(model, record_id)
        if record is None or record.tenant_id != actor.tenant_id:
            raise RecordNotFoundError(model.__name__, record_id)
        if not self._covers(actor, access, record, resource, "view"):
            logger.info(
                "record_not_visible",
                extra={"entity_type": model.__name__, "entity_id": str(record_id)},
            )
            raise RecordNotFoundError(model.__name__, record_id)
        return record

    def _require(
        self,
        actor: Actor,
        access: AccessSnapshot,
        record: Any,
        resource: str,
        action: str,
    ) -> None:
        if not self._covers(actor, access, record, resource, action):
            raise ForbiddenError(f"{resource}.{action}", entity_id=str(record.id))

    @staticmethod
    def _require_any_scope(actor: Actor, resource: str, action: str) -> None:
        if not scopes_for(actor, resource, action):
            raise ForbiddenError(f"{resource}.{action}")

    def _visible_clause(
        self,
        actor: Actor,
        access: AccessSnapshot,
        model: type,
        resource: str,
    ) -> ColumnElement[bool]:
        """WHERE clause for every record of ``model`` the actor may view."""
        clauses = [
            self._resolver.resolve(actor, scope, access).as_clause(model)
            for scope in scopes_for(actor, resource, "view")
        ]
        if not clauses:
            return false()
        return or_(*clauses)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _notify_on_commit(
        self,
        uow: UnitOfWork,
        event: str,
        payload: Mapping[str, Any],
    ) -> None:
        uow.on_commit(notification_hook(self._notifier, event, payload))

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        actor: Actor,
        work: Callable[[UnitOfWork], T],
        entity_id: UUID | None = None,
        read_only: bool = False,
    ) -> T:
        """Run ``work`` with the operation, actor and record bound to every log line."""
        with LogContext.bind(
            operation=operation,
            actor_id=actor.user_id,
            tenant_id=actor.tenant_id,
            entity_id=entity_id,
        ):
            if read_only:
                return self._coordinator.run_read_only(work)
            return self._coordinator.run(work)
