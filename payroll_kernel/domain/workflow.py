"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing state machines.  Both the payroll record
lifecycle and the 13-state batch lifecycle are declared as ``Workflow``
instances; services consult them before every status write.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  The only import from outside
the domain package is the exception raised by ``Workflow.require``.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* A status change is valid iff a ``Transition`` with that
  (from_state, to_state) pair is declared.
"""

from __future__ import annotations

from dataclasses import dataclass

from payroll_kernel.exceptions import InvalidStatusTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``automatic=True`` marks transitions the service performs by itself
    right after another one completes (e.g. hr_approved -> finance_review).
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    automatic: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} has an "
                    "outgoing transition"
                )

    def targets(self, from_state: str) -> tuple[str, ...]:
        """States reachable in one step from ``from_state``."""
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find(from_state, to_state) is not None

    def require(self, entity_type: str, from_state: str, to_state: str) -> Transition:
        """Return the declared transition or raise InvalidStatusTransitionError."""
        transition = self.find(from_state, to_state)
        if transition is None:
            raise InvalidStatusTransitionError(entity_type, from_state, to_state)
        return transition
