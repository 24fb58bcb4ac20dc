"""
Turn state machine for NMS.TXT.

One player turn moves through a fixed set of phases. Only ONE phase is
active at a time and every change goes through transition(), which
validates it against VALID_TRANSITIONS and records it.

    IDLE ─▶ AWAITING_WAGER ─▶ ROLLING ─▶ AWAITING_ORACLE ─▶ RESOLVED
      │            │                        ▲      │    └──▶ DEAD
      │            └─(cancel)─▶ IDLE        │      └─(failure)─▶ IDLE
      └─────────(no difficulty)─────────────┘

RESOLVED and DEAD end the turn; the next action starts again from IDLE.
An unexpected error while ROLLING or AWAITING_ORACLE aborts back to IDLE.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from nmstxt.observability.run_log import RunLog


class TurnPhase(str, Enum):
    """Phases of a single turn."""

    IDLE = "idle"
    AWAITING_WAGER = "awaiting_wager"
    ROLLING = "rolling"
    AWAITING_ORACLE = "awaiting_oracle"
    RESOLVED = "resolved"
    DEAD = "dead"


TERMINAL_PHASES = frozenset({TurnPhase.RESOLVED, TurnPhase.DEAD})
ABORTABLE_PHASES = frozenset({TurnPhase.ROLLING, TurnPhase.AWAITING_ORACLE})

MAX_TRANSITION_HISTORY = 200


@dataclass
class PhaseTransition:
    """A valid phase change, keyed by (from_phase, trigger)."""

    from_phase: TurnPhase
    to_phase: TurnPhase
    trigger: str
    description: str = ""

    def __hash__(self) -> int:
        return hash((self.from_phase, self.to_phase, self.trigger))


VALID_TRANSITIONS: list[PhaseTransition] = [
    PhaseTransition(
        TurnPhase.IDLE,
        TurnPhase.AWAITING_WAGER,
        "action_needs_wager",
        "Action has a difficulty and the player has not chosen a wager yet",
    ),
    PhaseTransition(
        TurnPhase.IDLE,
        TurnPhase.ROLLING,
        "action_with_wager",
        "Action has a difficulty and the wager was supplied with it",
    ),
    PhaseTransition(
        TurnPhase.IDLE,
        TurnPhase.AWAITING_ORACLE,
        "action_without_roll",
        "Free-text action with no difficulty, no roll needed",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_WAGER,
        TurnPhase.ROLLING,
        "wager_decided",
        "Player chose how many points to spend (possibly zero)",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_WAGER,
        TurnPhase.IDLE,
        "wager_cancelled",
        "Player backed out; pending action discarded",
    ),
    PhaseTransition(
        TurnPhase.ROLLING,
        TurnPhase.AWAITING_ORACLE,
        "roll_resolved",
        "Dice rolled and any skill points awarded",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_ORACLE,
        TurnPhase.RESOLVED,
        "oracle_responded",
        "Response parsed and applied",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_ORACLE,
        TurnPhase.DEAD,
        "death_detected",
        "Response describes the player's death",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_ORACLE,
        TurnPhase.IDLE,
        "oracle_failed",
        "Oracle call failed; turn aborted with narrative untouched",
    ),
    PhaseTransition(
        TurnPhase.ROLLING,
        TurnPhase.IDLE,
        "turn_aborted",
        "Unexpected error while rolling; turn abandoned",
    ),
    PhaseTransition(
        TurnPhase.AWAITING_ORACLE,
        TurnPhase.IDLE,
        "turn_aborted",
        "Unexpected error while consulting the oracle or applying its response",
    ),
    PhaseTransition(TurnPhase.RESOLVED, TurnPhase.IDLE, "next_turn", "Ready for the next action"),
    PhaseTransition(TurnPhase.DEAD, TurnPhase.IDLE, "next_turn", "Ready for a new action after death"),
]


class InvalidTransitionError(Exception):
    """Raised when an invalid phase transition is attempted."""

    pass


@dataclass
class TransitionLog:
    """Log entry for a phase transition."""
    timestamp: datetime
    from_phase: str
    to_phase: str
    trigger: str
    context: dict[str, Any] = field(default_factory=dict)


class TurnStateMachine:
    """
    Tracks the phase of the current turn with validation and history.

    Attributes:
        current_phase: The active phase
        previous_phase: The phase before the last transition
        history: The most recent transitions, at most MAX_TRANSITION_HISTORY
    """

    def __init__(self, run_log: Optional[RunLog] = None, initial_phase: TurnPhase = TurnPhase.IDLE):
        self._current_phase = initial_phase
        self._previous_phase: Optional[TurnPhase] = None
        self._history: list[TransitionLog] = []
        self._post_transition_hooks: list[Callable] = []
        self._run_log = run_log

        self._valid_transitions: dict[tuple[TurnPhase, str], TurnPhase] = {}
        for transition in VALID_TRANSITIONS:
            self._valid_transitions[(transition.from_phase, transition.trigger)] = transition.to_phase

    @property
    def current_phase(self) -> TurnPhase:
        return self._current_phase

    @property
    def previous_phase(self) -> Optional[TurnPhase]:
        return self._previous_phase

    @property
    def history(self) -> list[TransitionLog]:
        return self._history.copy()

    def is_terminal(self) -> bool:
        return self._current_phase in TERMINAL_PHASES

    def can_transition(self, trigger: str) -> bool:
        return (self._current_phase, trigger) in self._valid_transitions

    def get_valid_triggers(self) -> list[str]:
        return [
            trigger
            for (phase, trigger) in self._valid_transitions
            if phase == self._current_phase
        ]

    def transition(self, trigger: str, context: Optional[dict[str, Any]] = None) -> TurnPhase:
        """
        Move to the phase `trigger` leads to from the current phase.

        Raises:
            InvalidTransitionError: If the trigger is not valid here
        """
        context = context or {}
        key = (self._current_phase, trigger)
        if key not in self._valid_transitions:
            raise InvalidTransitionError(
                f"Invalid transition: Cannot trigger '{trigger}' from phase "
                f"'{self._current_phase.value}'. Valid triggers: {self.get_valid_triggers()}"
            )

        old_phase = self._current_phase
        new_phase = self._valid_transitions[key]
        self._previous_phase = old_phase
        self._current_phase = new_phase

        self._history.append(
            TransitionLog(
                timestamp=datetime.now(),
                from_phase=old_phase.value,
                to_phase=new_phase.value,
                trigger=trigger,
                context=context,
            )
        )
        if len(self._history) > MAX_TRANSITION_HISTORY:
            del self._history[: len(self._history) - MAX_TRANSITION_HISTORY]
        if self._run_log is not None:
            self._run_log.log_transition(
                from_state=old_phase.value,
                to_state=new_phase.value,
                trigger=trigger,
                context=context,
            )

        for hook in self._post_transition_hooks:
            hook(old_phase, new_phase, trigger, context)

        return new_phase

    def begin_turn(self) -> None:
        """Return to IDLE after a finished turn. No-op when already idle."""
        if self.is_terminal():
            self.transition("next_turn")

    def abort(self, reason: str) -> bool:
        """
        Drop a turn that failed part-way back to IDLE.

        Returns:
            True if the machine was mid-turn and has been reset
        """
        if self._current_phase not in ABORTABLE_PHASES:
            return False
        self.transition("turn_aborted", {"reason": reason})
        return True

    def register_post_hook(self, hook: Callable) -> None:
        """
        Register a hook to run after any transition.

        The hook will be called with (old_phase, new_phase, trigger, context).
        """
        self._post_transition_hooks.append(hook)

    def __repr__(self) -> str:
        return f"TurnStateMachine(current={self._current_phase.value}, previous={self._previous_phase})"
