"""
Permission keys (``workforce_kernel.domain.permissions``).

Responsibility
--------------
One vocabulary for every permission the kernel checks.  A key has the form
``resource.action.scope`` (``invoice.approve.global``, ``timesheet.submit.own``)
and is granted to users through their role.  Read visibility and the
workflow engine's action check both go through ``scopes_for``.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over ``Actor.permission_keys``.
ZERO I/O.

Invariants enforced
-------------------
* Only resources and actions declared in ``RESOURCE_ACTIONS`` parse.
* An unknown scope suffix is a configuration error, never a silent deny.

Failure modes
-------------
* ``ConfigurationError`` on malformed or unknown keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from workforce_kernel.exceptions import ConfigurationError

if TYPE_CHECKING:
    from workforce_kernel.domain.scope import Actor


class ScopeClass(str, Enum):
    """Visibility class attached to a permission.

    The value is the suffix used in permission keys.  Members are declared
    broadest first; ``scopes_for`` relies on that order.
    """

    GLOBAL = "global"
    OWN_COMPANY = "own"
    PARENT = "parent"


SCOPE_ORDER: tuple[ScopeClass, ...] = tuple(ScopeClass)


RESOURCE_ACTIONS: dict[str, frozenset[str]] = {
    "contract": frozenset({
        "view", "create", "submit", "approve", "sign", "update", "cancel",
    }),
    "invoice": frozenset({
        "view", "create", "submit", "approve", "send", "pay", "cancel",
    }),
    "timesheet": frozenset({
        "view", "create", "submit", "approve", "send",
    }),
    "remittance": frozenset({"view", "update"}),
    "delegated_access": frozenset({"manage"}),
}


@dataclass(frozen=True)
class PermissionKey:
    """A parsed ``resource.action.scope`` permission."""

    resource: str
    action: str
    scope: ScopeClass

    def __str__(self) -> str:
        return f"{self.resource}.{self.action}.{self.scope.value}"

    @classmethod
    def parse(cls, key: str) -> PermissionKey:
        parts = key.split(".")
        if len(parts) != 3:
            raise ConfigurationError(
                f"Permission key '{key}' must be 'resource.action.scope'",
                setting="permission",
            )
        resource, action, scope = parts
        actions = RESOURCE_ACTIONS.get(resource)
        if actions is None or action not in actions:
            raise ConfigurationError(
                f"Permission key '{key}' names an unknown resource or action",
                setting="permission",
            )
        try:
            scope_class = ScopeClass(scope)
        except ValueError as exc:
            raise ConfigurationError(
                f"Permission key '{key}' has unknown scope '{scope}'",
                setting="permission",
            ) from exc
        return cls(resource=resource, action=action, scope=scope_class)

    @classmethod
    def of(cls, resource: str, action: str, scope: ScopeClass) -> PermissionKey:
        return cls.parse(f"{resource}.{action}.{scope.value}")


def validate_keys(keys: Iterable[str]) -> frozenset[str]:
    """Parse every key (raising on the first bad one) and return them as a set."""
    return frozenset(str(PermissionKey.parse(k)) for k in keys)


def has_permission(actor: Actor, key: PermissionKey | str) -> bool:
    """Pure membership test against the actor's granted keys."""
    return str(key) in actor.permission_keys


def scopes_for(actor: Actor, resource: str, action: str) -> list[ScopeClass]:
    """Scopes at which the actor holds ``resource.action``, broadest first."""
    return [
        scope
        for scope in SCOPE_ORDER
        if has_permission(actor, PermissionKey.of(resource, action, scope))
    ]


# Permission that makes a user eligible for automatic approver assignment
CONTRACT_APPROVE_GLOBAL = PermissionKey.of("contract", "approve", ScopeClass.GLOBAL)
