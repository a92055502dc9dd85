"""
Workflow value types (``finance_migration.domain.workflow``).

Responsibility
--------------
Pure value objects describing a state machine: Guard, Transition and
Workflow.  The batch lifecycle is declared with them; the orchestrator asks
the workflow which states an action may start from.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the service evaluating the transition checks it.
    """

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            for state in (t.from_state, t.to_state):
                if state not in self.states:
                    raise ValueError(
                        f"Workflow {self.name}: transition {t.action!r} "
                        f"references unknown state {state!r}"
                    )

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` may fire, in declaration order."""
        return tuple(
            dict.fromkeys(t.from_state for t in self.transitions if t.action == action)
        )

    def targets_for(self, action: str, from_state: str) -> tuple[str, ...]:
        return tuple(
            t.to_state
            for t in self.transitions
            if t.action == action and t.from_state == from_state
        )

    def allows(self, action: str, from_state: str) -> bool:
        return from_state in self.sources_for(action)
