"""
Map kernel exceptions to user-facing errors.

Validation and workflow errors carry actionable text.  Forbidden and
not-found collapse to one neutral message so that a caller cannot tell a
record it may not see from one that does not exist.  Anything unexpected
becomes a generic message plus the correlation id from the log context,
so support can find the full record in the logs.
"""

from __future__ import annotations

from dataclasses import dataclass

from workforce_kernel.exceptions import (
    NOT_FOUND_MESSAGE,
    ConflictRetryable,
    ForbiddenError,
    GateNotSatisfiedError,
    InvalidTransitionError,
    RateLimitExceeded,
    RecordNotFoundError,
    TransactionTimeoutError,
    UnauthorizedError,
    ValidationError,
    WorkforceKernelError,
)
from workforce_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.error_presenter")

GENERIC_MESSAGE = "Something went wrong. Please try again or contact support."


@dataclass(frozen=True)
class UserFacingError:
    code: str
    message: str
    retry_after_seconds: int | None = None
    correlation_id: str | None = None


def present_error(exc: BaseException) -> UserFacingError:
    """Translate ``exc`` into what the transport layer shows the user."""
    correlation_id = LogContext.get("correlation_id")

    if isinstance(exc, (ForbiddenError, RecordNotFoundError)):
        # Same code and text for both
        return UserFacingError(code=RecordNotFoundError.code, message=NOT_FOUND_MESSAGE)
    if isinstance(exc, UnauthorizedError):
        return UserFacingError(code=exc.code, message="Please sign in again.")
    if isinstance(exc, RateLimitExceeded):
        return UserFacingError(
            code=exc.code,
            message=f"Too many requests. Try again in {exc.retry_after_seconds} seconds.",
            retry_after_seconds=exc.retry_after_seconds,
        )
    if isinstance(exc, GateNotSatisfiedError):
        detail = exc.description or exc.gate.replace("_", " ")
        return UserFacingError(code=exc.code, message=f"Not yet possible: {detail}.")
    if isinstance(exc, InvalidTransitionError):
        return UserFacingError(
            code=exc.code,
            message=(
                f"This {exc.workflow} is '{exc.from_state}' and cannot move to "
                f"'{exc.to_state}'."
            ),
        )
    if isinstance(exc, ValidationError):
        return UserFacingError(code=exc.code, message=str(exc))
    if isinstance(exc, ConflictRetryable):
        return UserFacingError(
            code=exc.code,
            message="This record was changed by someone else. Reload and try again.",
        )
    if isinstance(exc, TransactionTimeoutError):
        return UserFacingError(
            code=exc.code,
            message="The request took too long and nothing was saved. Please retry.",
            correlation_id=correlation_id,
        )

    code = exc.code if isinstance(exc, WorkforceKernelError) else "INTERNAL_ERROR"
    logger.error(
        "unexpected_error_presented",
        extra={"error_type": type(exc).__name__, "error_code": code},
    )
    return UserFacingError(code=code, message=GENERIC_MESSAGE, correlation_id=correlation_id)
