"""
Canonical workflow types (``workforce_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Contracts, invoices and
timesheets are all described by one ``Workflow`` each, and a single generic
engine (``workforce_services.workflow_engine``) evaluates any of them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* At most one transition per ``(from_state, to_state)`` pair.

Failure modes
-------------
* ``ConfigurationError`` at construction when any of the above is broken.
  Tables are module-level constants, so a bad table fails at import.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workforce_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class Guard:
    """A named precondition that must hold before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the gate executor does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """One legal edge of a workflow.

    ``permission`` is the ``resource.action`` pair the actor must hold at a
    scope covering the record.  ``milestones`` name the remittance milestones
    the edge appends to the ledger when it is a money movement.
    """
    from_state: str
    to_state: str
    action: str
    permission: str
    guards: tuple[Guard, ...] = ()
    milestones: tuple[str, ...] = ()

    @property
    def resource(self) -> str:
        return self.permission.split(".", 1)[0]

    @property
    def permission_action(self) -> str:
        return self.permission.split(".", 1)[1]


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one lifecycle-bearing entity.

    ``state_attr`` is the attribute on the entity that holds its current
    state; the engine reads it, the persistence layer compare-and-sets it.
    """
    name: str
    entity_type: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    state_attr: str = field(default="workflow_state")

    def __post_init__(self) -> None:
        states = set(self.states)
        if self.initial_state not in states:
            raise ConfigurationError(
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                "is not a declared state",
                setting=self.name,
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in states or t.to_state not in states:
                raise ConfigurationError(
                    f"Workflow {self.name}: transition {t.action} references "
                    f"unknown state ({t.from_state} -> {t.to_state})",
                    setting=self.name,
                )
            if t.from_state in self.terminal_states:
                raise ConfigurationError(
                    f"Workflow {self.name}: terminal state '{t.from_state}' "
                    "has an outgoing transition",
                    setting=self.name,
                )
            pair = (t.from_state, t.to_state)
            if pair in seen:
                raise ConfigurationError(
                    f"Workflow {self.name}: duplicate transition {pair}",
                    setting=self.name,
                )
            seen.add(pair)
            if "." not in t.permission:
                raise ConfigurationError(
                    f"Workflow {self.name}: permission '{t.permission}' must be "
                    "'resource.action'",
                    setting=self.name,
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the edge ``from_state -> to_state`` or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def outgoing(self, from_state: str) -> tuple[Transition, ...]:
        """All edges leaving ``from_state``, in declaration order."""
        return tuple(t for t in self.transitions if t.from_state == from_state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
