"""
Tests for the turn orchestrator.

Drives whole turns through the mock oracle with scripted dice: wager
handling, the roll, the oracle call, parsing, and the state changes that
follow. Also covers the failure paths (oracle errors, re-entrant
submissions, death).
"""

from unittest.mock import patch

import pytest

from nmstxt.ai.llm_provider import LLMAuthenticationError, LLMRequestError, LLMRole
from nmstxt.data_models import LEGACY_DIFFICULTY_DC, MAX_CONVERSATION_HISTORY, SkillName
from nmstxt.game_state.turn_machine import TurnPhase
from nmstxt.game_state.turn_orchestrator import (
    InvalidWagerError,
    NoPendingActionError,
    TurnInProgressError,
    TurnOrchestrator,
    TurnOutcome,
    WagerRequest,
)


DEATH_RESPONSE = (
    "The sentinel's beam tears through your suit. You have died.\n\n"
    "[STATE UPDATE]\n"
    "Ship: -15%\n\n"
    "[OPTIONS]\n"
    "1. Try again (Easy)"
)


def mock_client(orchestrator):
    return orchestrator.oracle.client


# =============================================================================
# FULL TURNS
# =============================================================================


class TestRolledTurn:
    """A Medium action with the wager supplied up front."""

    @pytest.fixture
    def outcome(self, orchestrator, scripted_dice, well_formed_response):
        mock_client(orchestrator).set_responses([well_formed_response])
        scripted_dice.push(14)
        return orchestrator.submit_action("Search the wreck", "Medium", 0)

    def test_check(self, outcome):
        """Test the roll is made against the medium DC."""
        assert isinstance(outcome, TurnOutcome)
        assert outcome.check.raw_roll == 14
        assert outcome.check.difficulty_class == 9
        assert outcome.check.success
        assert outcome.check.skill_used == SkillName.EXPLORATION

    def test_award(self, outcome, game_state):
        """Test the margin is awarded to the classified skill."""
        assert outcome.award.points_earned == 5
        assert game_state.skills[SkillName.EXPLORATION].points == 5

    def test_state_delta_applied(self, outcome, game_state):
        """Test the parsed delta lands in the state."""
        assert game_state.ship.health == 20
        assert game_state.inventory["iron"] == 3
        assert game_state.stats.resources_gathered == 3

    def test_options_and_narrative(self, outcome, game_state):
        """Test narrative and options are stored for display."""
        assert game_state.current_narrative == "You find scrap."
        assert [(o.text, o.difficulty) for o in game_state.current_options] == [
            ("Rest", "Easy"),
            ("Dig further", "Hard"),
        ]

    def test_histories(self, outcome, game_state):
        """Test the action is recorded and the conversation extended."""
        assert game_state.stats.actions_taken == 1
        assert game_state.action_history[0].action == "Search the wreck"
        assert [m.role for m in game_state.conversation_history] == ["user", "assistant"]

    def test_phase_resolved(self, outcome, orchestrator):
        """Test the turn ends in RESOLVED with the lock released."""
        assert orchestrator.phase == TurnPhase.RESOLVED
        assert not orchestrator.is_processing

    def test_oracle_request(self, outcome, orchestrator):
        """Test the oracle sees the action, the state and the roll."""
        messages, system_prompt = mock_client(orchestrator).calls[0]
        assert len(messages) == 1
        assert messages[0].role == LLMRole.USER
        content = messages[0].content
        assert content.startswith("Search the wreck\n")
        assert "Location: Eissentam Prime (toxic)" in content
        assert "[DICE ROLL RESULT]" in content
        assert "Roll: 14 = 14 vs DC 9" in content
        assert "[STATE UPDATE]" in system_prompt

    def test_run_log(self, outcome, run_log):
        """Test the roll, oracle call and delta are logged."""
        assert len(run_log.get_rolls()) == 1
        assert run_log.get_rolls()[0].skill == "exploration"
        assert run_log.get_oracle_calls()[0].success


class TestFreeTextTurn:
    """Actions with no difficulty skip the roll."""

    def test_no_roll(self, orchestrator, run_log):
        """Test no dice are rolled and no check is attached."""
        outcome = orchestrator.submit_action("Sit and watch the storm")
        assert outcome.check is None
        assert run_log.get_rolls() == []
        assert "[DICE ROLL RESULT]" not in mock_client(orchestrator).calls[0][0][-1].content

    def test_wager_ignored(self, orchestrator, game_state):
        """Test a wager on a free-text action spends nothing."""
        game_state.skills[SkillName.EXPLORATION].points = 3
        orchestrator.submit_action("Wander around", spent_points=2)
        assert game_state.skills[SkillName.EXPLORATION].points == 3

    def test_plain_response_gets_defaults(self, orchestrator, game_state):
        """Test a response with no sections still yields three options."""
        outcome = orchestrator.submit_action("Wait")
        assert outcome.narrative == "[Mock LLM response]"
        assert len(game_state.current_options) == 3

    def test_empty_action_rejected(self, orchestrator):
        """Test blank actions raise and leave the phase idle."""
        with pytest.raises(ValueError):
            orchestrator.submit_action("   ")
        assert orchestrator.phase == TurnPhase.IDLE
        assert not orchestrator.is_processing

    def test_history_passed_on_next_turn(self, orchestrator):
        """Test the second request carries the first exchange."""
        orchestrator.submit_action("Wait")
        orchestrator.submit_action("Wait again")
        messages, _ = mock_client(orchestrator).calls[1]
        assert [m.role for m in messages] == [LLMRole.USER, LLMRole.ASSISTANT, LLMRole.USER]

    def test_conversation_never_exceeds_cap(self, orchestrator, game_state):
        """Test many turns keep the history bounded."""
        for i in range(15):
            orchestrator.submit_action(f"Wait {i}")
            assert len(game_state.conversation_history) <= MAX_CONVERSATION_HISTORY
        assert game_state.stats.actions_taken == 15

    def test_turn_complete_callback(self, orchestrator):
        """Test the completion callback fires once per finished turn."""
        calls = []
        orchestrator.on_turn_complete = lambda: calls.append(1)
        orchestrator.submit_action("Wait")
        orchestrator.submit_action("Wait")
        assert len(calls) == 2


# =============================================================================
# WAGERS
# =============================================================================


class TestWagers:
    """Tests for the wager decision step."""

    def test_request_returned(self, orchestrator, game_state):
        """Test a difficulty without a wager asks for one."""
        game_state.skills[SkillName.EXPLORATION].points = 3
        request = orchestrator.submit_action("Search the wreck", "Hard")
        assert isinstance(request, WagerRequest)
        assert request.skill == SkillName.EXPLORATION
        assert request.available == 3
        assert request.max_wager == 3
        assert orchestrator.phase == TurnPhase.AWAITING_WAGER
        assert orchestrator.pending_action.action_text == "Search the wreck"
        assert mock_client(orchestrator).calls == []

    def test_max_wager_capped_at_five(self, orchestrator, game_state):
        """Test the wager limit never exceeds five."""
        game_state.skills[SkillName.COMBAT].points = 12
        request = orchestrator.submit_action("Attack the drone", "Hard")
        assert request.max_wager == 5

    def test_decide_spends_and_awards(self, orchestrator, game_state, scripted_dice):
        """Test the wager is spent, added to the roll, and the margin awarded."""
        game_state.skills[SkillName.EXPLORATION].points = 3
        orchestrator.submit_action("Search the wreck", "Hard")
        scripted_dice.push(12)
        outcome = orchestrator.decide_wager(2)
        assert outcome.check.total == 14
        assert outcome.check.success
        assert outcome.spent_points == 2
        assert game_state.skills[SkillName.EXPLORATION].points == 2
        assert orchestrator.pending_action is None

    def test_invalid_wager_keeps_pending(self, orchestrator, game_state):
        """Test an out-of-range wager raises and the action stays pending."""
        game_state.skills[SkillName.EXPLORATION].points = 3
        orchestrator.submit_action("Search the wreck", "Hard")
        with pytest.raises(InvalidWagerError):
            orchestrator.decide_wager(4)
        with pytest.raises(InvalidWagerError):
            orchestrator.decide_wager(-1)
        assert orchestrator.phase == TurnPhase.AWAITING_WAGER
        assert game_state.skills[SkillName.EXPLORATION].points == 3

    def test_invalid_upfront_wager(self, orchestrator):
        """Test a wager above the balance on submission raises."""
        with pytest.raises(InvalidWagerError):
            orchestrator.submit_action("Search the wreck", "Hard", spent_points=1)
        assert orchestrator.phase == TurnPhase.IDLE

    def test_cancel(self, orchestrator):
        """Test cancelling discards the action without rolling."""
        orchestrator.submit_action("Search the wreck", "Hard")
        pending = orchestrator.cancel_wager()
        assert pending.action_text == "Search the wreck"
        assert orchestrator.phase == TurnPhase.IDLE
        assert orchestrator.pending_action is None

    def test_decide_without_pending(self, orchestrator):
        """Test deciding or cancelling with nothing pending raises."""
        with pytest.raises(NoPendingActionError):
            orchestrator.decide_wager(0)
        with pytest.raises(NoPendingActionError):
            orchestrator.cancel_wager()

    def test_new_submission_supersedes_pending(self, orchestrator):
        """Test a new action replaces an undecided one."""
        orchestrator.submit_action("Search the wreck", "Hard")
        outcome = orchestrator.submit_action("Wait")
        assert isinstance(outcome, TurnOutcome)
        assert orchestrator.pending_action is None
        assert orchestrator.phase == TurnPhase.RESOLVED

    def test_prompt_callback_decides(self, orchestrator, scripted_dice):
        """Test a wager prompt answers the request synchronously."""
        seen = []

        def prompt(request):
            seen.append(request)
            return 0

        orchestrator.wager_prompt = prompt
        scripted_dice.push(10)
        outcome = orchestrator.submit_action("Search the wreck", "Easy")
        assert isinstance(outcome, TurnOutcome)
        assert seen[0].difficulty == "Easy"

    def test_prompt_callback_cancels(self, orchestrator):
        """Test a prompt returning None cancels the action."""
        orchestrator.wager_prompt = lambda request: None
        assert orchestrator.submit_action("Search the wreck", "Easy") is None
        assert orchestrator.phase == TurnPhase.IDLE
        assert mock_client(orchestrator).calls == []

    def test_reentrant_submission_rejected(self, orchestrator):
        """Test a submission during a turn raises TurnInProgressError."""
        orchestrator.wager_prompt = lambda request: orchestrator.submit_action("Wait")
        with pytest.raises(TurnInProgressError):
            orchestrator.submit_action("Search the wreck", "Easy")
        assert not orchestrator.is_processing

    def test_natural_one_spend_persists(self, orchestrator, game_state, scripted_dice):
        """Test a critical failure still consumes the wager."""
        game_state.skills[SkillName.COMBAT].points = 4
        scripted_dice.push(1)
        outcome = orchestrator.submit_action("Attack the drone", "Easy", 4)
        assert outcome.check.is_critical_failure
        assert not outcome.check.success
        assert outcome.award is None
        assert game_state.skills[SkillName.COMBAT].points == 0

    def test_legacy_dc_table(self, mock_llm_manager, scripted_dice, game_state):
        """Test the orchestrator rolls and prompts against the table it was given."""
        orch = TurnOrchestrator(oracle=mock_llm_manager, dice=scripted_dice, dc_table=LEGACY_DIFFICULTY_DC)
        orch.attach(game_state)
        scripted_dice.push(10)
        outcome = orch.submit_action("Search the wreck", "Medium", 0)
        assert outcome.check.difficulty_class == 12
        assert not outcome.check.success
        _, system_prompt = mock_llm_manager.client.calls[0]
        assert "Medium (DC 12)" in system_prompt


# =============================================================================
# FAILURES AND DEATH
# =============================================================================


class TestOracleFailure:
    """The oracle raising aborts the turn."""

    def test_state_untouched(self, orchestrator, game_state, run_log):
        """Test a failed call leaves narrative and history unchanged."""
        with patch.object(mock_client(orchestrator), "complete", side_effect=LLMRequestError("down")):
            with pytest.raises(LLMRequestError):
                orchestrator.submit_action("Wait")
        assert game_state.conversation_history == []
        assert game_state.current_narrative == ""
        assert game_state.stats.actions_taken == 0
        assert orchestrator.phase == TurnPhase.IDLE
        assert not orchestrator.is_processing
        call = run_log.get_oracle_calls()[0]
        assert not call.success
        assert call.error == "down"

    def test_wager_spent_before_failure_persists(self, orchestrator, game_state, scripted_dice):
        """Test points spent on the roll are not refunded when the oracle fails."""
        game_state.skills[SkillName.EXPLORATION].points = 2
        scripted_dice.push(3)
        with patch.object(mock_client(orchestrator), "complete", side_effect=LLMRequestError("down")):
            with pytest.raises(LLMRequestError):
                orchestrator.submit_action("Search the wreck", "Very Hard", 2)
        assert game_state.skills[SkillName.EXPLORATION].points == 0

    def test_auth_failure_callback(self, orchestrator):
        """Test a rejected credential triggers the auth callback."""
        calls = []
        orchestrator.on_auth_failure = lambda: calls.append(1)
        with patch.object(
            mock_client(orchestrator), "complete", side_effect=LLMAuthenticationError("bad key")
        ):
            with pytest.raises(LLMAuthenticationError):
                orchestrator.submit_action("Wait")
        assert calls == [1]

    def test_other_failure_does_not_call_auth_callback(self, orchestrator):
        """Test generic failures leave the credential alone."""
        calls = []
        orchestrator.on_auth_failure = lambda: calls.append(1)
        with patch.object(mock_client(orchestrator), "complete", side_effect=LLMRequestError("timeout")):
            with pytest.raises(LLMRequestError):
                orchestrator.submit_action("Wait")
        assert calls == []

    def test_next_turn_after_failure(self, orchestrator):
        """Test the player can act again after a failure."""
        with patch.object(mock_client(orchestrator), "complete", side_effect=LLMRequestError("down")):
            with pytest.raises(LLMRequestError):
                orchestrator.submit_action("Wait")
        assert isinstance(orchestrator.submit_action("Wait"), TurnOutcome)


class TestUnexpectedError:
    """Errors outside LLMRequestError still end the turn."""

    def test_client_error_returns_to_idle(self, orchestrator, run_log):
        """Test a non-oracle exception from the client aborts the turn."""
        with patch.object(mock_client(orchestrator), "complete", side_effect=RuntimeError("sdk bug")):
            with pytest.raises(RuntimeError):
                orchestrator.submit_action("Walk around")
        assert orchestrator.phase == TurnPhase.IDLE
        assert run_log.get_transitions()[-1].trigger == "turn_aborted"
        assert isinstance(orchestrator.submit_action("Walk around"), TurnOutcome)

    def test_roll_error_returns_to_idle(self, orchestrator):
        """Test an exception while rolling aborts the turn."""
        with patch.object(orchestrator.dice, "roll_d20", side_effect=RuntimeError("dice")):
            with pytest.raises(RuntimeError):
                orchestrator.submit_action("Search the wreck", "Easy", 0)
        assert orchestrator.phase == TurnPhase.IDLE
        assert not orchestrator.is_processing

    def test_parse_error_returns_to_idle(self, orchestrator):
        """Test an exception while applying the response aborts the turn."""
        with patch.object(orchestrator.parser, "parse", side_effect=ValueError("parser")):
            with pytest.raises(ValueError):
                orchestrator.submit_action("Wait")
        assert orchestrator.phase == TurnPhase.IDLE

    def test_opening_error_returns_to_idle(self, orchestrator):
        """Test the opening request recovers the same way."""
        with patch.object(mock_client(orchestrator), "complete", side_effect=RuntimeError("sdk bug")):
            with pytest.raises(RuntimeError):
                orchestrator.open_scenario("You wake up.")
        assert orchestrator.phase == TurnPhase.IDLE
        assert isinstance(orchestrator.open_scenario("You wake up."), TurnOutcome)


class TestDeath:
    """Responses describing the player's death."""

    def test_death_outcome(self, orchestrator, game_state):
        """Test death clears options and counts the death."""
        mock_client(orchestrator).set_responses([DEATH_RESPONSE])
        completed = []
        orchestrator.on_turn_complete = lambda: completed.append(1)
        outcome = orchestrator.submit_action("Charge the sentinel")
        assert outcome.death
        assert outcome.options == []
        assert game_state.current_options == []
        assert game_state.stats.death_count == 1
        assert game_state.ship.health == 0
        assert game_state.action_history == []
        assert game_state.stats.actions_taken == 0
        assert completed == []
        assert orchestrator.phase == TurnPhase.DEAD

    def test_play_continues_after_death(self, orchestrator):
        """Test a new action can be submitted after dying."""
        mock_client(orchestrator).set_responses([DEATH_RESPONSE, "You wake up."])
        orchestrator.submit_action("Charge the sentinel")
        outcome = orchestrator.submit_action("Stand up")
        assert not outcome.death
        assert orchestrator.phase == TurnPhase.RESOLVED


class TestOpenScenario:
    """The opening request of a new game."""

    def test_opening_not_recorded_as_action(self, orchestrator, game_state, well_formed_response):
        """Test the opening adds to the conversation but not the action history."""
        mock_client(orchestrator).set_responses([well_formed_response])
        completed = []
        orchestrator.on_turn_complete = lambda: completed.append(1)
        outcome = orchestrator.open_scenario("You wake up on a toxic planet.")
        assert outcome.action_text is None
        assert game_state.conversation_history[0].content == "You wake up on a toxic planet."
        assert game_state.action_history == []
        assert game_state.current_narrative == "You find scrap."
        assert completed == []

    def test_attach_resets_pending(self, orchestrator, game_state):
        """Test attaching a state drops the pending action and phase."""
        orchestrator.submit_action("Search the wreck", "Hard")
        orchestrator.attach(game_state)
        assert orchestrator.pending_action is None
        assert orchestrator.phase == TurnPhase.IDLE
