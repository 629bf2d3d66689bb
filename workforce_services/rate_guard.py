"""
workforce_services.rate_guard -- in-process request quotas.

Responsibility:
    Admits or denies a request against a named fixed-window policy keyed by
    a composite identity (user, IP or tenant).  Consulted by the transport
    layer before any lifecycle call.

Architecture position:
    Services layer, standalone.  One instance per process, constructor-
    injected wherever it is needed; no module-level singleton.

Invariants enforced:
    - Within one window a key is admitted at most ``max_requests`` times.
    - Windows are independent per ``key_prefix:key``.
    - Admission is O(1) and never blocks on I/O.

Failure modes:
    - RateLimitExceeded from ``enforce`` (logged as a security event).

Non-goals:
    Not a distributed limiter; counts live in this process only.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from workforce_config.schema import RatePolicy
from workforce_kernel.domain.clock import Clock, SystemClock
from workforce_kernel.exceptions import RateLimitExceeded
from workforce_kernel.logging_config import get_logger

logger = get_logger("services.rate_guard")


def user_key(user_id: UUID | str | None) -> str:
    """Per-user key; unauthenticated callers share ``anonymous``."""
    return str(user_id) if user_id is not None else "anonymous"


def ip_key(ip: str) -> str:
    return f"ip:{ip}"


def tenant_key(tenant_id: UUID | str) -> str:
    return f"tenant:{tenant_id}"


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime


@dataclass
class _Window:
    count: int
    reset_at: datetime


class RateGuard:
    """
    Fixed-window rate limiter.

    Contract:
        Thread-safe.  ``reset`` and ``clear`` are the only ways to drop
        counts early; ``sweep`` reclaims windows that have already expired.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    @staticmethod
    def storage_key(key: str, policy: RatePolicy) -> str:
        return f"{policy.key_prefix}:{key}"

    def admit(self, key: str, policy: RatePolicy) -> RateDecision:
        """Count one request for ``key`` and report whether it is allowed."""
        now = self._clock.now_utc()
        skey = self.storage_key(key, policy)
        with self._lock:
            window = self._windows.get(skey)
            if window is None or window.reset_at <= now:
                window = _Window(
                    count=0,
                    reset_at=now + timedelta(milliseconds=policy.window_ms),
                )
                self._windows[skey] = window
            window.count += 1
            count = window.count
            reset_at = window.reset_at

        allowed = count <= policy.max_requests
        if not allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "event_type": "security",
                    "severity": "medium",
                    "policy": policy.name,
                    "rate_key": skey,
                    "count": count,
                    "limit": policy.max_requests,
                },
            )
        return RateDecision(
            allowed=allowed,
            limit=policy.max_requests,
            remaining=max(0, policy.max_requests - count),
            reset_at=reset_at,
        )

    def enforce(self, key: str, policy: RatePolicy) -> RateDecision:
        """Admit or raise RateLimitExceeded with the whole seconds to wait."""
        decision = self.admit(key, policy)
        if not decision.allowed:
            wait = (decision.reset_at - self._clock.now_utc()).total_seconds()
            raise RateLimitExceeded(
                self.storage_key(key, policy),
                decision.limit,
                max(1, math.ceil(wait)),
            )
        return decision

    def sweep(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock.now_utc()
        with self._lock:
            expired = [k for k, w in self._windows.items() if w.reset_at <= now]
            for k in expired:
                del self._windows[k]
        if expired:
            logger.debug("rate_windows_swept", extra={"removed": len(expired)})
        return len(expired)

    def reset(self, key: str, policy: RatePolicy) -> None:
        with self._lock:
            self._windows.pop(self.storage_key(key, policy), None)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    # -------------------------------------------------------------------------
    # Background sweeper
    # -------------------------------------------------------------------------

    def start_sweeper(self, interval_seconds: float = 60.0) -> None:
        """Sweep every ``interval_seconds`` on a daemon thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_seconds,),
            name="rate-guard-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info("rate_sweeper_started", extra={"interval_seconds": interval_seconds})

    def stop(self) -> None:
        """Stop the sweeper and drop all counts."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
        self.clear()

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self, interval_seconds: float) -> None:
        while not self._stop.wait(interval_seconds):
            self.sweep()
