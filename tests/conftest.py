"""
Pytest fixtures for the NMS.TXT test suite.

Provides reusable fixtures for game state, scripted dice, the mock
oracle, and temporary save directories.
"""

import pytest

from nmstxt.ai.llm_provider import LLMConfig, LLMManager, LLMProvider
from nmstxt.config import CredentialStore, GameSettings
from nmstxt.data_models import DiceResult, DiceRoller, GameState, create_initial_game_state
from nmstxt.game_state.game_session import GameSession
from nmstxt.game_state.session_manager import SessionManager
from nmstxt.game_state.turn_orchestrator import TurnOrchestrator
from nmstxt.observability.run_log import RunLog


# =============================================================================
# DICE FIXTURES
# =============================================================================


class ScriptedDice(DiceRoller):
    """DiceRoller whose d20 results are taken from a list, in order."""

    def __init__(self, rolls=None, seed=0):
        super().__init__(seed=seed)
        self.scripted = list(rolls or [])

    def push(self, *rolls: int) -> None:
        self.scripted.extend(rolls)

    def roll(self, sides, count=1, modifier=0, reason=""):
        if sides == 20 and count == 1 and self.scripted:
            value = self.scripted.pop(0)
            result = DiceResult(
                notation="1d20",
                rolls=[value],
                modifier=modifier,
                total=value + modifier,
                reason=reason,
            )
            self._roll_log.append(result)
            return result
        return super().roll(sides, count, modifier, reason)


@pytest.fixture
def seeded_dice():
    """Provide a seeded DiceRoller for reproducible tests."""
    return DiceRoller(seed=42)


@pytest.fixture
def scripted_dice():
    """A DiceRoller that returns pushed d20 values first."""
    return ScriptedDice()


# =============================================================================
# GAME STATE FIXTURES
# =============================================================================


@pytest.fixture
def game_state() -> GameState:
    """A fresh game on a named planet, ship at 15% with no fuel."""
    state = create_initial_game_state()
    state.location.name = "Eissentam Prime"
    state.location.type = "toxic"
    state.location.system_name = "Ogsjorv"
    state.location.distance_from_center = 715342
    return state


# =============================================================================
# ORACLE FIXTURES
# =============================================================================


WELL_FORMED_RESPONSE = (
    "You find scrap.\n\n"
    "[STATE UPDATE]\n"
    "Ship: +5% | Inventory: +Iron x3\n\n"
    "[OPTIONS]\n"
    "1. Rest (Easy)\n"
    "2. Dig further (Hard)"
)


@pytest.fixture
def well_formed_response() -> str:
    return WELL_FORMED_RESPONSE


@pytest.fixture
def mock_llm_config():
    """LLM configuration using mock provider."""
    return LLMConfig(
        provider=LLMProvider.MOCK,
        model="mock",
        max_tokens=1024,
        temperature=0.8,
    )


@pytest.fixture
def mock_llm_manager(mock_llm_config):
    """LLM manager with mock provider."""
    return LLMManager(mock_llm_config)


@pytest.fixture
def run_log():
    return RunLog()


@pytest.fixture
def orchestrator(mock_llm_manager, scripted_dice, run_log, game_state):
    """Orchestrator on a fresh game with mock oracle and scripted dice."""
    orch = TurnOrchestrator(
        oracle=mock_llm_manager,
        dice=scripted_dice,
        run_log=run_log,
        narrative_length="concise",
    )
    orch.attach(game_state)
    return orch


# =============================================================================
# PERSISTENCE FIXTURES
# =============================================================================


@pytest.fixture
def session_manager(tmp_path):
    """SessionManager writing into a temporary directory."""
    return SessionManager(tmp_path / "saves")


@pytest.fixture
def credentials(tmp_path):
    return CredentialStore(tmp_path / "config")


@pytest.fixture
def game_session(session_manager, mock_llm_manager, credentials, scripted_dice, run_log):
    """A GameSession wired to the mock oracle and a temporary save directory."""
    session = GameSession(
        settings=GameSettings(ai_backend="mock"),
        session_manager=session_manager,
        oracle=mock_llm_manager,
        credentials=credentials,
        dice=scripted_dice,
        run_log=run_log,
        autosave_delay=3600,
    )
    yield session
    session.autosaver.cancel()
