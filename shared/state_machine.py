from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class OpponentMatchState(str, Enum):
    OPEN = "OPEN"
    MATCHED = "MATCHED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: OpponentMatchState
    to_state: OpponentMatchState
    action: str
    guard: Optional[Callable] = None


def spots_available_guard(context: dict) -> bool:
    return context.get("current_players", 0) < context.get("players_needed", 0)


class OpponentMatchStateMachine:
    TRANSITIONS = [
        Transition(OpponentMatchState.OPEN, OpponentMatchState.OPEN, "join", spots_available_guard),
        Transition(OpponentMatchState.OPEN, OpponentMatchState.OPEN, "leave"),
        Transition(OpponentMatchState.OPEN, OpponentMatchState.MATCHED, "fill"),
        Transition(OpponentMatchState.OPEN, OpponentMatchState.CANCELLED, "cancel"),
        Transition(OpponentMatchState.MATCHED, OpponentMatchState.CANCELLED, "cancel"),
        Transition(OpponentMatchState.OPEN, OpponentMatchState.EXPIRED, "expire"),
    ]

    ALLOWED_ACTIONS = {
        OpponentMatchState.OPEN: ["join", "leave", "fill", "cancel", "expire"],
        OpponentMatchState.MATCHED: ["view", "cancel"],
        OpponentMatchState.EXPIRED: ["view"],
        OpponentMatchState.CANCELLED: ["view"],
    }

    def __init__(self, initial_state: OpponentMatchState = OpponentMatchState.OPEN):
        self._state = initial_state
        self._history: List[tuple] = []

    @property
    def state(self) -> OpponentMatchState:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    @property
    def is_terminal(self) -> bool:
        return self._state in (OpponentMatchState.EXPIRED, OpponentMatchState.CANCELLED)

    def _find(self, action: str) -> Optional[Transition]:
        return next(
            (t for t in self.TRANSITIONS if t.from_state == self._state and t.action == action),
            None
        )

    def can_transition(self, action: str) -> bool:
        return self._find(action) is not None

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None) -> OpponentMatchState:
        """
        Apply an action and return the new state.

        Guards only run when a context is given; a failed guard leaves the
        state untouched.
        """
        found = self._find(action)
        if found is None:
            raise TransitionError(
                self._state.value,
                "unknown",
                f"No valid transition for action '{action}' from state '{self._state.value}'"
            )

        if found.guard and guard_context is not None and not found.guard(guard_context):
            raise TransitionError(self._state.value, found.to_state.value,
                                  f"Guard condition failed for action '{action}'")

        self._history.append((self._state, action, found.to_state))
        self._state = found.to_state
        return self._state

    def get_history(self) -> List[tuple]:
        return list(self._history)

    @classmethod
    def from_state_string(cls, value: str) -> "OpponentMatchStateMachine":
        """Rebuild from a stored status; unknown values start OPEN."""
        if value in {s.value for s in OpponentMatchState}:
            return cls(OpponentMatchState(value))
        return cls()
