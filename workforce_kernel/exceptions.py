"""
Typed Exception Hierarchy for the Workforce Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers decide what to do with a failure by its TYPE, never by its message:

    try:
        engine.request_transition(...)
    except GateNotSatisfiedError as e:        # Typed catch
        show_blocker(e.gate)                  # Structured data
        api_response(code=e.code)             # Machine-readable

Every exception carries a stable ``code`` class attribute and the structured
fields needed to act on it.  ``workforce_services.error_presenter`` maps these
types to user-facing text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WorkforceKernelError:

    WorkforceKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidParentContractError
    |
    +-- InvariantViolation
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- GateNotSatisfiedError
    |
    +-- AccessError
    |   +-- UnauthorizedError
    |   +-- ForbiddenError
    |   +-- RecordNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConflictRetryable
    |
    +-- NoEligibleApproverError
    +-- RateLimitExceeded
    +-- ConfigurationError
    |
    +-- TransactionError
    |   +-- TransactionTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|-----------------------------------------
Validation    | VALIDATION_ERROR         | Input is malformed or incomplete
              | INVALID_PARENT_CONTRACT  | SOW/norm parent is not a usable MSA
--------------|--------------------------|-----------------------------------------
Invariant     | INVARIANT_VIOLATION      | A hard data invariant would be broken
--------------|--------------------------|-----------------------------------------
Workflow      | INVALID_TRANSITION       | (from, to) is not in the table
              | GATE_NOT_SATISFIED       | A named precondition is unmet
--------------|--------------------------|-----------------------------------------
Access        | UNAUTHORIZED             | No usable actor (missing tenant, inactive)
              | FORBIDDEN                | Actor lacks permission at any matching scope
              | RECORD_NOT_FOUND         | Missing OR out of scope (same message)
--------------|--------------------------|-----------------------------------------
Concurrency   | CONFLICT_RETRYABLE       | Compare-and-set lost to a concurrent writer
--------------|--------------------------|-----------------------------------------
Approver      | NO_ELIGIBLE_APPROVER     | Tenant has no active global approver
Rate          | RATE_LIMIT_EXCEEDED      | Fixed window exhausted
Configuration | CONFIGURATION_ERROR      | Unknown scope, missing gate evaluator, bad YAML
--------------|--------------------------|-----------------------------------------
Transaction   | TRANSACTION_FAILED       | Infrastructure failure or retries exhausted
              | TRANSACTION_TIMEOUT      | Unit of work exceeded its deadline
--------------|--------------------------|-----------------------------------------
Immutability  | IMMUTABILITY_VIOLATION   | Modifying or deleting a remittance

===============================================================================
DESIGN DECISIONS
===============================================================================

1. RecordNotFoundError is raised both for missing records and for records the
   actor may not see.  The message never distinguishes the two cases so that
   record existence is not disclosed across scopes.

2. ConflictRetryable is NOT retried automatically by the transaction
   coordinator.  The caller decides whether to re-read and re-request.

3. TransactionError always carries ``root_cause`` so that infrastructure
   failures stay debuggable without leaking into user-facing text.
"""

from typing import Any


class WorkforceKernelError(Exception):
    """Base exception for all workforce kernel errors."""

    code: str = "WORKFORCE_KERNEL_ERROR"


# Validation


class ValidationError(WorkforceKernelError):
    """Input is malformed, incomplete, or contradicts a business rule."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidParentContractError(ValidationError):
    """A SOW or norm contract references a parent that is not a usable MSA."""

    code: str = "INVALID_PARENT_CONTRACT"

    def __init__(self, parent_id: str, reason: str):
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(
            f"Parent contract {parent_id} is not valid: {reason}",
            field="parent_id",
        )


class InvariantViolation(WorkforceKernelError):
    """
    A hard data invariant would be broken by the requested write.

    These indicate a programming or integration error, not a user mistake,
    and are logged at ERROR level by the raising service.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, message: str):
        self.invariant = invariant
        super().__init__(message)


# Workflow


class WorkflowError(WorkforceKernelError):
    """Base exception for workflow transition errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The (from, to) pair is not an edge of the workflow table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot move {workflow} from '{from_state}' to '{to_state}'"
        )


class GateNotSatisfiedError(WorkflowError):
    """A named precondition on a legal transition is not met."""

    code: str = "GATE_NOT_SATISFIED"

    def __init__(self, gate: str, description: str = ""):
        self.gate = gate
        self.description = description
        detail = f": {description}" if description else ""
        super().__init__(f"Precondition '{gate}' is not satisfied{detail}")


# Access


class AccessError(WorkforceKernelError):
    """Base exception for authorization and visibility errors."""

    code: str = "ACCESS_ERROR"


class UnauthorizedError(AccessError):
    """The caller is not a usable actor (no tenant, inactive user)."""

    code: str = "UNAUTHORIZED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unauthorized: {reason}")


NOT_FOUND_MESSAGE = "The requested record was not found"


class ForbiddenError(AccessError):
    """The actor holds no permission at a scope matching the record."""

    code: str = "FORBIDDEN"

    def __init__(self, permission: str, entity_id: str | None = None):
        self.permission = permission
        self.entity_id = entity_id
        super().__init__(f"Permission '{permission}' does not cover this record")


class RecordNotFoundError(AccessError):
    """Missing record, or one outside the actor's scope."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(NOT_FOUND_MESSAGE)


# Concurrency


class ConcurrencyError(WorkforceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictRetryable(ConcurrencyError):
    """Compare-and-set lost: the record left the expected state."""

    code: str = "CONFLICT_RETRYABLE"

    def __init__(self, entity_type: str, entity_id: str, expected_state: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_state = expected_state
        super().__init__(
            f"{entity_type} {entity_id} is no longer in state "
            f"'{expected_state}'; re-read and retry"
        )


# Operational


class NoEligibleApproverError(WorkforceKernelError):
    """No active user in the tenant holds the global approve permission."""

    code: str = "NO_ELIGIBLE_APPROVER"

    def __init__(self, tenant_id: str, permission: str):
        self.tenant_id = tenant_id
        self.permission = permission
        super().__init__(
            f"No active user in tenant {tenant_id} holds '{permission}'"
        )


class RateLimitExceeded(WorkforceKernelError):
    """Fixed window for this key is exhausted."""

    code: str = "RATE_LIMIT_EXCEEDED"

    def __init__(self, key: str, limit: int, retry_after_seconds: int):
        self.key = key
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit of {limit} exceeded; retry after "
            f"{retry_after_seconds} seconds"
        )


class ConfigurationError(WorkforceKernelError):
    """Static configuration is incomplete or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: str | None = None):
        self.setting = setting
        super().__init__(message)


# Transaction


class TransactionError(WorkforceKernelError):
    """A unit of work failed for a non-domain reason."""

    code: str = "TRANSACTION_FAILED"

    def __init__(
        self,
        message: str,
        root_cause: BaseException | None = None,
        attempts: int = 1,
    ):
        self.root_cause = root_cause
        self.attempts = attempts
        super().__init__(message)


class TransactionTimeoutError(TransactionError):
    """The unit of work exceeded its deadline and was rolled back."""

    code: str = "TRANSACTION_TIMEOUT"

    def __init__(
        self,
        timeout_seconds: float,
        root_cause: BaseException | None = None,
        attempts: int = 1,
    ):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction exceeded {timeout_seconds}s and was rolled back",
            root_cause=root_cause,
            attempts=attempts,
        )


# Immutability


class ImmutabilityError(WorkforceKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
