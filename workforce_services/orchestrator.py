"""
workforce_services.orchestrator -- Central wiring for the lifecycle services.

Responsibility:
    Creates the shared collaborators (transaction coordinator, workflow
    engine, grant cache, rate guard, notification dispatcher) exactly once
    and wires the lifecycle services on top of them.  Also hosts the small
    access-administration surface (delegated access grants and actor
    lookup) that does not belong to any one lifecycle.

Architecture position:
    Services -- top of the service layer.  Transports and workers build one
    orchestrator per process and call its public attributes.

Invariants enforced:
    - Single-instance lifecycle: one GrantCache and one RateGuard per
      orchestrator, shared by every lifecycle service, so that grant and
      revoke invalidate what every reader sees.
    - No module-level singletons.

Usage:
    from workforce_config import load_settings
    from workforce_kernel.db.engine import get_session_factory
    from workforce_services.orchestrator import WorkforceOrchestrator

    orchestrator = WorkforceOrchestrator(get_session_factory(), load_settings())
    actor = orchestrator.actor_for(user_id)
    orchestrator.admit("api", user_key(actor.user_id))
    orchestrator.contracts.create_contract(actor, draft)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from functools import partial
from uuid import UUID

from sqlalchemy.orm import Session

from workforce_config.schema import KernelSettings
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.domain.permissions import PermissionKey, ScopeClass, has_permission
from workforce_kernel.domain.scope import Actor, ScopeResolver
from workforce_kernel.exceptions import ForbiddenError
from workforce_kernel.logging_config import LogContext, get_logger
from workforce_kernel.services.delegated_access_service import (
    DelegatedAccessService,
    GrantCache,
    GrantInfo,
)
from workforce_kernel.services.identity_service import IdentityService
from workforce_services.billing_lifecycle import BillingLifecycle
from workforce_services.contract_lifecycle import ContractLifecycle
from workforce_services.lifecycle_base import LifecycleService
from workforce_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from workforce_services.rate_guard import RateDecision, RateGuard
from workforce_services.transaction_coordinator import TransactionCoordinator, UnitOfWork
from workforce_services.workflow_engine import WorkflowEngine

logger = get_logger("services.orchestrator")

DELEGATED_ACCESS_MANAGE_GLOBAL = PermissionKey.of(
    "delegated_access", "manage", ScopeClass.GLOBAL
)


class WorkforceOrchestrator:
    """Central factory for the lifecycle services.

    Contract:
        Receives a session factory and optional settings, clock, notifier
        and outcome sink.  Constructs every service exactly once, in
        dependency order, and exposes them as public attributes.

    Guarantees:
        - ``contracts`` and ``billing`` share one coordinator, engine,
          grant cache and clock.

    Non-goals:
        - Does NOT own the engine or connection pool
          (``workforce_kernel.db.engine`` does).
        - Does NOT start the rate-guard sweeper; call ``start()``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ) -> None:
        self.settings = settings or KernelSettings()
        self._clock = clock or SystemClock()

        # Shared collaborators
        self.coordinator = TransactionCoordinator(
            session_factory, self.settings.transaction
        )
        self.engine = WorkflowEngine(ScopeResolver(), outcome_sink=outcome_sink)
        self.grant_cache = GrantCache(self._clock, self.settings.grant_cache_ttl_seconds)
        self.rate_guard = RateGuard(self._clock)
        self.notifier = notifier or LoggingNotificationDispatcher()

        # Lifecycle services
        self.contracts = ContractLifecycle(
            self.coordinator,
            engine=self.engine,
            clock=self._clock,
            settings=self.settings,
            grant_cache=self.grant_cache,
            notifier=self.notifier,
        )
        self.billing = BillingLifecycle(
            self.coordinator,
            engine=self.engine,
            clock=self._clock,
            settings=self.settings,
            grant_cache=self.grant_cache,
            notifier=self.notifier,
        )

        logger.info(
            "orchestrator_initialized",
            extra={"config_checksum": self.settings.checksum or None},
        )

    # -------------------------------------------------------------------------
    # Process lifecycle
    # -------------------------------------------------------------------------

    def start(self, sweep_interval_seconds: float = 60.0) -> None:
        self.rate_guard.start_sweeper(sweep_interval_seconds)

    def shutdown(self) -> None:
        self.rate_guard.stop()
        self.grant_cache.clear()

    # -------------------------------------------------------------------------
    # Rate limiting
    # -------------------------------------------------------------------------

    def admit(self, policy_name: str, key: str) -> RateDecision:
        """Enforce the named policy for ``key``; raises RateLimitExceeded."""
        return self.rate_guard.enforce(key, self.settings.rate_policy(policy_name))

    # -------------------------------------------------------------------------
    # Identity and delegated access
    # -------------------------------------------------------------------------

    def actor_for(self, user_id: UUID) -> Actor:
        def work(uow: UnitOfWork) -> Actor:
            return IdentityService(uow.session, self._clock).actor_for(user_id)

        return self.coordinator.run_read_only(work)

    def _check_delegation(self, actor: Actor, granted_for_user_id: UUID) -> None:
        # Users may delegate their own records; anything else is administration.
        if actor.user_id == granted_for_user_id:
            return
        if not has_permission(actor, DELEGATED_ACCESS_MANAGE_GLOBAL):
            raise ForbiddenError(str(DELEGATED_ACCESS_MANAGE_GLOBAL))

    def _invalidate_on_commit(self, uow: UnitOfWork, tenant_id: UUID, user_id: UUID) -> None:
        uow.on_commit(partial(self.grant_cache.invalidate, tenant_id, user_id))

    def grant_access(
        self,
        actor: Actor,
        granted_to_user_id: UUID,
        granted_for_user_id: UUID,
        expires_at: datetime | None = None,
    ) -> GrantInfo:
        """Let ``granted_to`` see the records of ``granted_for`` at parent scope."""

        def work(uow: UnitOfWork) -> GrantInfo:
            LifecycleService._check_actor(actor)
            self._check_delegation(actor, granted_for_user_id)
            self._invalidate_on_commit(uow, actor.tenant_id, granted_to_user_id)
            return DelegatedAccessService(uow.session, self._clock, self.grant_cache).grant(
                actor.tenant_id,
                granted_to_user_id,
                granted_for_user_id,
                actor.user_id,
                expires_at=expires_at,
            )

        with LogContext.bind(
            operation="access.grant", actor_id=actor.user_id, tenant_id=actor.tenant_id
        ):
            return self.coordinator.run(work)

    def revoke_access(
        self,
        actor: Actor,
        granted_to_user_id: UUID,
        granted_for_user_id: UUID,
    ) -> GrantInfo:
        def work(uow: UnitOfWork) -> GrantInfo:
            LifecycleService._check_actor(actor)
            self._check_delegation(actor, granted_for_user_id)
            self._invalidate_on_commit(uow, actor.tenant_id, granted_to_user_id)
            return DelegatedAccessService(uow.session, self._clock, self.grant_cache).revoke(
                actor.tenant_id, granted_to_user_id, granted_for_user_id, actor.user_id
            )

        with LogContext.bind(
            operation="access.revoke", actor_id=actor.user_id, tenant_id=actor.tenant_id
        ):
            return self.coordinator.run(work)

    def list_grants(self, actor: Actor) -> list[GrantInfo]:
        def work(uow: UnitOfWork) -> list[GrantInfo]:
            LifecycleService._check_actor(actor)
            return DelegatedAccessService(
                uow.session, self._clock, self.grant_cache
            ).list_grants(actor.tenant_id, actor.user_id)

        return self.coordinator.run_read_only(work)
