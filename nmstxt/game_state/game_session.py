"""
GameSession: the explicit owner of one playthrough.

Holds the GameState and wires the collaborators that act on it: the turn
orchestrator, the save slots, the debounced autosave, the credential store
and the run log. Nothing here is module-level; two sessions in one process
never share state, dice or logs.
"""

from typing import Optional
import logging

from nmstxt.ai.llm_provider import LLMManager
from nmstxt.config import CredentialStore, GameSettings
from nmstxt.data_models import (
    AUTOSAVE_DELAY_SECONDS,
    AUTOSAVE_SLOT,
    DiceRoller,
    DifficultyTier,
    GameState,
)
from nmstxt.game_state.scenarios import (
    StartingScenario,
    choose_scenario,
    create_scenario_state,
    get_scenario,
)
from nmstxt.game_state.session_manager import AutoSaveScheduler, SessionManager
from nmstxt.game_state.turn_orchestrator import (
    TurnOrchestrator,
    TurnOutcome,
    WagerPrompt,
    WagerRequest,
)
from nmstxt.narrative.response_parser import ResponseParser
from nmstxt.observability.run_log import RunLog

logger = logging.getLogger(__name__)


class GameSession:
    """
    One running game.

    Use as a context manager so the autosave is flushed on exit:

        with GameSession(settings, saves, oracle) as session:
            session.start_new_game()
            session.submit_action("Search the wreckage", "Easy", 0)
    """

    def __init__(
        self,
        settings: GameSettings,
        session_manager: SessionManager,
        oracle: LLMManager,
        credentials: Optional[CredentialStore] = None,
        dice: Optional[DiceRoller] = None,
        run_log: Optional[RunLog] = None,
        wager_prompt: Optional[WagerPrompt] = None,
        dc_table: Optional[dict[DifficultyTier, int]] = None,
        autosave_delay: float = AUTOSAVE_DELAY_SECONDS,
    ):
        self.settings = settings
        self.session_manager = session_manager
        self.credentials = credentials
        self.dice = dice or DiceRoller()
        self.run_log = run_log or RunLog()
        self.run_log.set_seed(self.dice.seed)

        self.autosaver = AutoSaveScheduler(self.autosave, delay=autosave_delay)
        self.orchestrator = TurnOrchestrator(
            oracle=oracle,
            dice=self.dice,
            run_log=self.run_log,
            parser=ResponseParser(),
            narrative_length=settings.narrative_length,
            dc_table=dc_table,
            wager_prompt=wager_prompt,
            on_turn_complete=self._on_turn_complete,
            on_auth_failure=self._on_auth_failure,
        )
        self._state: Optional[GameState] = None

    def __enter__(self) -> "GameSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def state(self) -> Optional[GameState]:
        return self._state

    @property
    def has_game(self) -> bool:
        return self._state is not None

    def _set_state(self, state: GameState) -> None:
        self.autosaver.cancel()
        self._state = state
        self.orchestrator.attach(state)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start_new_game(self, scenario_id: Optional[str] = None) -> TurnOutcome:
        """
        Start a fresh game from a starting scenario.

        The opening scene is requested before the new game replaces the
        current one. If that call fails the current game (and its autosave)
        is left as it was.

        Args:
            scenario_id: Scenario to use; a random one if None

        Raises:
            ValueError: Unknown scenario_id
            LLMRequestError: The opening oracle call failed
        """
        scenario: Optional[StartingScenario]
        if scenario_id is None:
            scenario = choose_scenario(self.dice)
        else:
            scenario = get_scenario(scenario_id)
            if scenario is None:
                raise ValueError(f"Unknown scenario: {scenario_id}")

        self.run_log.reset()
        state = create_scenario_state(scenario, self.dice)
        self.run_log.log_custom("new_game", {
            "scenario": scenario.id,
            "distance": state.location.distance_from_center,
        })
        logger.info(
            f"Starting scenario '{scenario.name}' at {state.location.distance_from_center:,} LY"
        )

        self.orchestrator.attach(state)
        try:
            outcome = self.orchestrator.open_scenario(scenario.prompt)
        except Exception:
            logger.warning(f"Opening of '{scenario.id}' failed; keeping the current game")
            if self._state is not None:
                self.orchestrator.attach(self._state)
            else:
                self.orchestrator.detach()
            raise

        self._set_state(state)
        self.autosave()
        return outcome

    def load(self, slot: int) -> GameState:
        """Replace the current game with the one in `slot`."""
        state = self.session_manager.load_game(slot)
        self._set_state(state)
        self.run_log.log_custom("game_loaded", {"slot": slot})
        return state

    def save(self, slot: int) -> None:
        """Save the current game to `slot`."""
        if self._state is None:
            raise RuntimeError("No game to save")
        with self.orchestrator.between_turns():
            self.session_manager.save_game(self._state, slot)

    def autosave(self) -> bool:
        """Save to the autosave slot when enabled. Returns True if a save was written."""
        if not self.settings.auto_save or self._state is None:
            return False
        with self.orchestrator.between_turns():
            self.session_manager.save_game(self._state, AUTOSAVE_SLOT)
        return True

    def close(self) -> None:
        """Flush the autosave. Safe to call more than once."""
        self.autosaver.flush()

    def set_narrative_length(self, narrative_length: str) -> None:
        self.settings.narrative_length = narrative_length
        self.orchestrator.narrative_length = narrative_length

    # =========================================================================
    # TURNS
    # =========================================================================

    def submit_action(
        self,
        action_text: str,
        difficulty: Optional[str] = None,
        spent_points: Optional[int] = None,
    ):
        return self.orchestrator.submit_action(action_text, difficulty, spent_points)

    def choose_option(self, index: int, spent_points: Optional[int] = None):
        """Play one of the current options (0-based)."""
        if self._state is None:
            raise RuntimeError("No game in progress")
        option = self._state.current_options[index]
        return self.orchestrator.submit_action(option.text, option.difficulty, spent_points)

    def decide_wager(self, points: int) -> TurnOutcome:
        return self.orchestrator.decide_wager(points)

    def cancel_wager(self) -> None:
        self.orchestrator.cancel_wager()

    def wager_request(self) -> Optional[WagerRequest]:
        """The request for the pending action, if one is waiting."""
        pending = self.orchestrator.pending_action
        if pending is None:
            return None
        return self.orchestrator.build_wager_request(pending.action_text, pending.difficulty)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def _on_turn_complete(self) -> None:
        if self.settings.auto_save:
            self.autosaver.schedule()

    def _on_auth_failure(self) -> None:
        if self.credentials is not None:
            self.credentials.clear()
        self.orchestrator.oracle.revoke_api_key()
