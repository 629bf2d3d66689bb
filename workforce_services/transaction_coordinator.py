"""
workforce_services.transaction_coordinator -- atomic units of work.

Responsibility:
    Runs a unit of work inside one database transaction so that a state
    transition, its participant side effects and its ledger entries commit
    together or not at all.  Retries transient storage conflicts with
    bounded exponential backoff and enforces a deadline.

Architecture position:
    Services layer.  The only component that commits or rolls back; kernel
    services flush within the session it hands them.

Invariants enforced:
    - All-or-nothing: any exception, timeout or exhausted retry rolls the
      whole unit of work back.
    - Domain errors (WorkforceKernelError, including ConflictRetryable)
      propagate unchanged and are never retried here.
    - After-commit hooks run only after a successful commit; a failing hook
      is logged and never undoes the commit.
    - Read-only units never commit.

Failure modes:
    - TransactionError: infrastructure failure (root_cause attached) or
      retries exhausted.
    - TransactionTimeoutError: the deadline passed before commit.
"""

from __future__ import annotations

import time
from typing import Any, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.orm import Session

from workforce_config.schema import TransactionSettings
from workforce_kernel.exceptions import (
    TransactionError,
    TransactionTimeoutError,
    WorkforceKernelError,
)
from workforce_kernel.logging_config import get_logger

logger = get_logger("services.transaction_coordinator")

T = TypeVar("T")

# SQLSTATE serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
# SQLSTATE query_canceled (statement_timeout)
TIMEOUT_SQLSTATE = "57014"

RETRYABLE_MESSAGES = (
    "deadlock detected",
    "could not serialize",
    "database is locked",
)


def _sqlstate(error: BaseException) -> str | None:
    orig = getattr(error, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(error, "pgcode", None)


def default_is_retryable(error: BaseException) -> bool:
    """Transient conflict signatures of PostgreSQL and SQLite."""
    if _sqlstate(error) in RETRYABLE_SQLSTATES:
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


class UnitOfWork:
    """
    What a unit of work receives: the session and an after-commit hook list.

    ``attempt`` starts at 1; a retried unit of work runs again from scratch
    on a fresh session.
    """

    def __init__(self, session: Session, attempt: int = 1, read_only: bool = False):
        self.session = session
        self.attempt = attempt
        self.read_only = read_only
        self._after_commit: list[Callable[[], Any]] = []

    def on_commit(self, hook: Callable[[], Any]) -> None:
        """Run ``hook`` after this unit of work commits; dropped on rollback."""
        self._after_commit.append(hook)

    @property
    def pending_hooks(self) -> int:
        return len(self._after_commit)


class TransactionCoordinator:
    """
    Executes units of work atomically with retry and deadline.

    Contract:
        ``run(work)`` calls ``work(uow)`` and returns its result after a
        successful commit.  The session factory, settings, retry predicate,
        sleep and monotonic clock are all injected.

    Non-goals:
        - Does NOT retry ConflictRetryable; the caller re-reads and decides.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: TransactionSettings | None = None,
        is_retryable: Callable[[BaseException], bool] = default_is_retryable,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or TransactionSettings()
        self._is_retryable = is_retryable
        self._sleep = sleep
        self._monotonic = monotonic

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), capped."""
        delay_ms = min(
            self._settings.base_delay_ms * 2 ** (attempt - 1),
            self._settings.max_delay_ms,
        )
        return delay_ms / 1000

    def run(
        self,
        work: Callable[[UnitOfWork], T],
        *,
        timeout_seconds: float | None = None,
        isolation_level: str | None = None,
    ) -> T:
        """Run ``work`` and commit.

        Raises:
            WorkforceKernelError subclasses raised by ``work``, unchanged.
            TransactionError, TransactionTimeoutError.
        """
        return self._execute(
            work,
            timeout_seconds=(
                timeout_seconds if timeout_seconds is not None
                else self._settings.timeout_seconds
            ),
            isolation_level=isolation_level,
            read_only=False,
        )

    def run_read_only(self, work: Callable[[UnitOfWork], T]) -> T:
        """Run ``work`` under the read-only isolation level; never commits."""
        return self._execute(
            work,
            timeout_seconds=self._settings.timeout_seconds,
            isolation_level=self._settings.read_only_isolation_level,
            read_only=True,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _execute(
        self,
        work: Callable[[UnitOfWork], T],
        timeout_seconds: float,
        isolation_level: str | None,
        read_only: bool,
    ) -> T:
        started = self._monotonic()
        deadline = started + timeout_seconds
        max_attempts = self._settings.max_attempts

        for attempt in range(1, max_attempts + 1):
            session = self._session_factory()
            uow = UnitOfWork(session, attempt=attempt, read_only=read_only)
            try:
                self._prepare(session, isolation_level, deadline)
                result = work(uow)
                if self._monotonic() > deadline:
                    raise TransactionTimeoutError(timeout_seconds, attempts=attempt)
                if read_only:
                    session.rollback()
                else:
                    session.commit()
            except WorkforceKernelError as exc:
                session.rollback()
                logger.info(
                    "transaction_rolled_back",
                    extra={"attempt": attempt, "error_code": exc.code},
                )
                raise
            except Exception as exc:
                session.rollback()
                if self._monotonic() > deadline or _sqlstate(exc) == TIMEOUT_SQLSTATE:
                    logger.error(
                        "transaction_timeout",
                        extra={"attempt": attempt, "timeout_seconds": timeout_seconds},
                    )
                    raise TransactionTimeoutError(
                        timeout_seconds, root_cause=exc, attempts=attempt
                    ) from exc
                if not self._is_retryable(exc):
                    logger.error(
                        "transaction_failed",
                        extra={"attempt": attempt, "error_type": type(exc).__name__},
                        exc_info=True,
                    )
                    raise TransactionError(
                        f"Unit of work failed: {type(exc).__name__}",
                        root_cause=exc,
                        attempts=attempt,
                    ) from exc
                if attempt >= max_attempts:
                    logger.error(
                        "transaction_retries_exhausted",
                        extra={"attempts": attempt, "error_type": type(exc).__name__},
                    )
                    raise TransactionError(
                        f"Unit of work still conflicting after {attempt} attempts",
                        root_cause=exc,
                        attempts=attempt,
                    ) from exc
                delay = self.backoff_seconds(attempt)
                logger.warning(
                    "transaction_retry",
                    extra={
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error_type": type(exc).__name__,
                    },
                )
                self._sleep(delay)
                continue
            finally:
                session.close()

            logger.info(
                "transaction_committed" if not read_only else "read_only_unit_completed",
                extra={
                    "attempts": attempt,
                    "duration_ms": round((self._monotonic() - started) * 1000, 3),
                },
            )
            self._run_after_commit(uow)
            return result

        # max_attempts >= 1 guarantees the loop returned or raised
        raise TransactionError("Unit of work never ran", attempts=0)

    def _prepare(self, session: Session, isolation_level: str | None, deadline: float) -> None:
        """Pin isolation and push the deadline down on PostgreSQL."""
        if session.get_bind().dialect.name != "postgresql":
            return
        options = {"isolation_level": isolation_level} if isolation_level else {}
        session.connection(execution_options=options)
        remaining_ms = max(int((deadline - self._monotonic()) * 1000), 1)
        session.execute(text(f"SET LOCAL statement_timeout = {remaining_ms}"))

    @staticmethod
    def _run_after_commit(uow: UnitOfWork) -> None:
        for hook in uow._after_commit:
            try:
                hook()
            except Exception:
                logger.exception(
                    "after_commit_hook_failed",
                    extra={"hook": getattr(hook, "__name__", repr(hook))},
                )
