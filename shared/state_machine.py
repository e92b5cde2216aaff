from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class TournamentState(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: TournamentState
    to_state: TournamentState
    action: str
    guard: Optional[Callable] = None


def min_players_guard(min_count: int = 2):
    def guard(context: dict) -> bool:
        players = context.get("players", [])
        return len(players) >= min_count
    return guard


def all_results_recorded_guard(context: dict) -> bool:
    matches = context.get("matches", [])
    return all(m.get("result") != "PENDING" for m in matches)


class TournamentStateMachine:
    TRANSITIONS = [
        Transition(TournamentState.CREATED, TournamentState.APPROVED, "approve"),
        Transition(TournamentState.APPROVED, TournamentState.IN_PROGRESS, "start", min_players_guard(2)),
        Transition(TournamentState.IN_PROGRESS, TournamentState.IN_PROGRESS, "advance", all_results_recorded_guard),
        Transition(TournamentState.IN_PROGRESS, TournamentState.COMPLETED, "complete", all_results_recorded_guard),
    ]

    ALLOWED_ACTIONS = {
        TournamentState.CREATED: ["approve", "register_player", "transfer", "delete"],
        TournamentState.APPROVED: ["register_player", "start", "transfer", "delete"],
        TournamentState.IN_PROGRESS: ["record_result", "advance", "complete", "transfer"],
        TournamentState.COMPLETED: ["view"],
    }

    def __init__(self, initial_state: TournamentState = TournamentState.CREATED):
        self._state = initial_state

    @property
    def state(self) -> TournamentState:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def _find(self, action: str) -> Optional[Transition]:
        return next(
            (t for t in self.TRANSITIONS if t.from_state == self._state and t.action == action),
            None
        )

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None) -> TournamentState:
        """Apply ``action``; guards see ``guard_context`` (empty when omitted)."""
        t = self._find(action)
        if t is None:
            raise TransitionError(
                self._state.value,
                "unknown",
                f"No valid transition for action '{action}' from state '{self._state.value}'"
            )
        if t.guard and not t.guard(guard_context or {}):
            raise TransitionError(self._state.value, t.to_state.value, f"Guard condition failed for action '{action}'")

        self._state = t.to_state
        return self._state

    @classmethod
    def from_state_string(cls, state_str: str) -> "TournamentStateMachine":
        try:
            return cls(initial_state=TournamentState(state_str))
        except ValueError:
            raise TransitionError(state_str, "unknown", f"Unknown tournament state '{state_str}'")
