"""Game state management module."""

from nmstxt.game_state.state_reducer import AppliedChanges, apply_delta
from nmstxt.game_state.turn_machine import (
    InvalidTransitionError,
    TurnPhase,
    TurnStateMachine,
)
from nmstxt.game_state.session_manager import (
    AutoSaveScheduler,
    SaveCapacityError,
    SaveLoadError,
    SaveNotFoundError,
    SessionManager,
)
from nmstxt.game_state.scenarios import STARTING_SCENARIOS, StartingScenario
from nmstxt.game_state.turn_orchestrator import (
    InvalidWagerError,
    NoPendingActionError,
    TurnInProgressError,
    TurnOrchestrator,
    TurnOutcome,
    WagerRequest,
)
from nmstxt.game_state.game_session import GameSession

__all__ = [
    "AppliedChanges",
    "apply_delta",
    "InvalidTransitionError",
    "TurnPhase",
    "TurnStateMachine",
    "AutoSaveScheduler",
    "SaveCapacityError",
    "SaveLoadError",
    "SaveNotFoundError",
    "SessionManager",
    "STARTING_SCENARIOS",
    "StartingScenario",
    "InvalidWagerError",
    "NoPendingActionError",
    "TurnInProgressError",
    "TurnOrchestrator",
    "TurnOutcome",
    "WagerRequest",
    "GameSession",
]
