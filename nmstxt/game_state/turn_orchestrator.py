"""
Turn Orchestrator for NMS.TXT.

Runs one player turn from submission to applied state:

    submit_action() ──▶ [wager decision] ──▶ roll ──▶ oracle ──▶ parse ──▶ apply

The orchestrator never owns the GameState; the GameSession attaches the
current one. Every phase change goes through the TurnStateMachine, and
rolls, oracle calls and applied deltas are written to the session's
RunLog.

Only one turn can be in flight. The guard is a non-blocking lock: a
second submission while the oracle call is outstanding raises
TurnInProgressError instead of queueing.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Union
import logging
import threading

from nmstxt.ai.llm_provider import (
    LLMAuthenticationError,
    LLMManager,
    LLMMessage,
    LLMRequestError,
    LLMRole,
)
from nmstxt.ai.prompts import NarrativeLength, build_system_prompt, format_user_message
from nmstxt.data_models import (
    MAX_WAGER,
    DiceRoller,
    DifficultyTier,
    GameOption,
    GameState,
    PendingAction,
    SkillAward,
    SkillCheckResult,
    SkillName,
)
from nmstxt.game_state.state_reducer import (
    AppliedChanges,
    append_conversation,
    apply_delta,
    award_skill_points,
    record_action,
    spend_skill_points,
)
from nmstxt.game_state.turn_machine import TurnPhase, TurnStateMachine
from nmstxt.narrative.response_parser import ParsedResponse, ResponseParser
from nmstxt.observability.run_log import RunLog
from nmstxt.resolution.dice_resolver import resolve
from nmstxt.resolution.skill_classifier import classify_action

logger = logging.getLogger(__name__)


class TurnInProgressError(Exception):
    """An action was submitted while another turn is still being processed."""

    pass


class NoPendingActionError(Exception):
    """A wager was decided or cancelled with no action waiting on it."""

    pass


class InvalidWagerError(Exception):
    """Wager outside 0..min(5, available points)."""

    pass


@dataclass
class WagerRequest:
    """Asks the player how many skill points to spend on a roll."""
    action_text: str
    difficulty: str
    skill: SkillName
    available: int
    max_wager: int

    def describe(self) -> str:
        return (
            f"{self.skill.value.title()} check ({self.difficulty}): "
            f"spend 0-{self.max_wager} of {self.available} points"
        )


@dataclass
class TurnOutcome:
    """Everything a finished turn produced, for display."""
    action_text: Optional[str]
    narrative: str
    options: list[GameOption]
    parsed: ParsedResponse
    check: Optional[SkillCheckResult] = None
    award: Optional[SkillAward] = None
    spent_points: int = 0
    changes: Optional[AppliedChanges] = None
    death: bool = False


WagerPrompt = Callable[[WagerRequest], Optional[int]]


class TurnOrchestrator:
    """
    Drives the turn pipeline for one session.

    Args:
        oracle: The LLM manager that produces narrative
        dice: Session dice roller
        run_log: Session event log
        parser: Response parser (default strategy pipeline if omitted)
        narrative_length: "concise" or "regular"
        dc_table: Difficulty thresholds (defaults to DIFFICULTY_DC)
        wager_prompt: Optional callback answering wager requests synchronously;
            returning None cancels the action
        on_turn_complete: Called after every non-fatal completed turn
            (the session schedules its autosave here)
        on_auth_failure: Called when the oracle rejects the credential
    """

    def __init__(
        self,
        oracle: LLMManager,
        dice: Optional[DiceRoller] = None,
        run_log: Optional[RunLog] = None,
        parser: Optional[ResponseParser] = None,
        narrative_length: str = NarrativeLength.CONCISE.value,
        dc_table: Optional[dict[DifficultyTier, int]] = None,
        wager_prompt: Optional[WagerPrompt] = None,
        on_turn_complete: Optional[Callable[[], None]] = None,
        on_auth_failure: Optional[Callable[[], None]] = None,
    ):
        self.oracle = oracle
        self.dice = dice or DiceRoller()
        self.run_log = run_log or RunLog()
        self.parser = parser or ResponseParser()
        self.narrative_length = narrative_length
        self.dc_table = dc_table
        self.wager_prompt = wager_prompt
        self.on_turn_complete = on_turn_complete
        self.on_auth_failure = on_auth_failure

        self.machine = TurnStateMachine(run_log=self.run_log)
        self._state: Optional[GameState] = None
        self._pending: Optional[PendingAction] = None
        self._turn_lock = threading.Lock()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> GameState:
        if self._state is None:
            raise RuntimeError("No game state attached")
        return self._state

    def attach(self, state: GameState) -> None:
        """Point the orchestrator at a (new or loaded) game, dropping any pending action."""
        self._state = state
        self._pending = None
        self.machine = TurnStateMachine(run_log=self.run_log)

    def detach(self) -> None:
        """Forget the current game."""
        self._state = None
        self._pending = None
        self.machine = TurnStateMachine(run_log=self.run_log)

    @property
    def phase(self) -> TurnPhase:
        return self.machine.current_phase

    @property
    def pending_action(self) -> Optional[PendingAction]:
        return self._pending

    @property
    def is_processing(self) -> bool:
        return self._turn_lock.locked()

    def _acquire(self) -> None:
        if not self._turn_lock.acquire(blocking=False):
            raise TurnInProgressError("A turn is already being processed")

    @contextmanager
    def between_turns(self) -> Iterator[None]:
        """
        Wait for any running turn to finish and hold new ones off.

        Code that reads the game state from another thread (the autosave
        timer) runs inside this block. A turn submitted meanwhile raises
        TurnInProgressError as usual.
        """
        with self._turn_lock:
            yield

    # =========================================================================
    # WAGERS
    # =========================================================================

    def build_wager_request(self, action_text: str, difficulty: str) -> WagerRequest:
        skill = classify_action(action_text)
        available = self.state.skill_points(skill)
        return WagerRequest(
            action_text=action_text,
            difficulty=difficulty,
            skill=skill,
            available=available,
            max_wager=min(MAX_WAGER, available),
        )

    def _validate_wager(self, action_text: str, points: int) -> None:
        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidWagerError(f"Wager must be a whole number, got {points!r}")
        skill = classify_action(action_text)
        limit = min(MAX_WAGER, self.state.skill_points(skill))
        if points < 0 or points > limit:
            raise InvalidWagerError(
                f"Wager of {points} not allowed for {skill.value} (0-{limit})"
            )

    # =========================================================================
    # TURN ENTRY POINTS
    # =========================================================================

    def submit_action(
        self,
        action_text: str,
        difficulty: Optional[str] = None,
        spent_points: Optional[int] = None,
    ) -> Union[TurnOutcome, WagerRequest, None]:
        """
        Submit a player action.

        Args:
            action_text: What the player does
            difficulty: Tier label; None for free text that needs no roll
            spent_points: Wager already chosen; None means "ask"

        Returns:
            TurnOutcome when the turn ran to completion, a WagerRequest when
            the player has to choose a wager first, or None when the wager
            prompt cancelled the action

        Raises:
            TurnInProgressError: Another turn is being processed
            InvalidWagerError: spent_points is out of range
            LLMRequestError: The oracle call failed (turn aborted)
        """
        self._acquire()
        try:
            action_text = (action_text or "").strip()
            if not action_text:
                raise ValueError("Action text is empty")
            difficulty = (difficulty or "").strip() or None

            self.machine.begin_turn()
            if self.machine.current_phase == TurnPhase.AWAITING_WAGER:
                logger.debug(f"Discarding pending action {self._pending.action_text!r}")
                self._pending = None
                self.machine.transition("wager_cancelled", {"reason": "superseded"})

            if difficulty is None:
                if spent_points:
                    logger.debug("Ignoring wager on an action with no roll")
                self.machine.transition("action_without_roll", {"action": action_text})
                return self._run_turn(action_text, None, 0)

            if spent_points is not None:
                self._validate_wager(action_text, spent_points)
                self.machine.transition("action_with_wager", {"action": action_text, "wager": spent_points})
                return self._run_turn(action_text, difficulty, spent_points)

            self._pending = PendingAction(action_text=action_text, difficulty=difficulty)
            request = self.build_wager_request(action_text, difficulty)
            self.machine.transition("action_needs_wager", {"action": action_text, "difficulty": difficulty})

            if self.wager_prompt is None:
                return request

            points = self.wager_prompt(request)
            if points is None:
                self._cancel_pending()
                return None
            return self._decide(points)
        finally:
            self._turn_lock.release()

    def decide_wager(self, points: int) -> TurnOutcome:
        """
        Spend `points` on the pending action and play the turn.

        Raises:
            NoPendingActionError: Nothing is waiting on a wager
            InvalidWagerError: points is out of range (the action stays pending)
            TurnInProgressError: Another turn is being processed
        """
        self._acquire()
        try:
            return self._decide(points)
        finally:
            self._turn_lock.release()

    def cancel_wager(self) -> PendingAction:
        """
        Discard the pending action without rolling.

        Returns:
            The discarded action
        """
        self._acquire()
        try:
            return self._cancel_pending()
        finally:
            self._turn_lock.release()

    def _decide(self, points: int) -> TurnOutcome:
        pending = self._pending
        if pending is None or self.machine.current_phase != TurnPhase.AWAITING_WAGER:
            raise NoPendingActionError("No action is waiting on a wager")
        self._validate_wager(pending.action_text, points)

        self._pending = None
        self.machine.transition("wager_decided", {"wager": points})
        return self._run_turn(pending.action_text, pending.difficulty, points)

    def _cancel_pending(self) -> PendingAction:
        pending = self._pending
        if pending is None or self.machine.current_phase != TurnPhase.AWAITING_WAGER:
            raise NoPendingActionError("No action is waiting on a wager")
        self._pending = None
        self.machine.transition("wager_cancelled", {"action": pending.action_text})
        logger.info(f"Cancelled action: {pending.action_text}")
        return pending

    def open_scenario(self, opening_prompt: str) -> TurnOutcome:
        """
        Ask the oracle for the opening scene of a new game.

        The prompt is sent as-is. No roll is made and nothing is added to
        the action history.
        """
        self._acquire()
        try:
            self.machine.begin_turn()
            self.machine.transition("action_without_roll", {"opening": True})
            try:
                response_text = self._consult_oracle(opening_prompt)
                return self._complete_turn(opening_prompt, response_text, action_text=None)
            except Exception as e:
                self._abort_turn(e)
                raise
        finally:
            self._turn_lock.release()

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _roll(self, action_text: str, difficulty: str, points: int) -> tuple[SkillCheckResult, Optional[SkillAward]]:
        state = self.state
        skill = classify_action(action_text)
        if points > 0:
            spend_skill_points(state, skill, points)

        check = resolve(difficulty, bonus=points, skill=skill, dice=self.dice, dc_table=self.dc_table)
        self.run_log.log_roll(
            roll=check.raw_roll,
            bonus=check.bonus,
            total=check.total,
            difficulty_class=check.difficulty_class,
            success=check.success,
            skill=skill.value,
            context={"action": action_text, "difficulty": difficulty},
        )
        award = award_skill_points(state, skill, check)
        logger.info(f"{skill.value.title()} check: {check.describe()}")
        return check, award

    def _abort_turn(self, error: Exception) -> None:
        if self.machine.abort(f"{type(error).__name__}: {error}"):
            logger.error(f"Turn aborted by unexpected error: {error!r}")

    def _run_turn(self, action_text: str, difficulty: Optional[str], points: int) -> TurnOutcome:
        try:
            return self._play(action_text, difficulty, points)
        except Exception as e:
            self._abort_turn(e)
            raise

    def _play(self, action_text: str, difficulty: Optional[str], points: int) -> TurnOutcome:
        check = award = None
        if difficulty is not None:
            check, award = self._roll(action_text, difficulty, points)
            self.machine.transition("roll_resolved", {"success": check.success})

        user_message = format_user_message(self.state, action_text, check, self.narrative_length)
        response_text = self._consult_oracle(user_message)

        outcome = self._complete_turn(user_message, response_text, action_text)
        outcome.check = check
        outcome.award = award
        outcome.spent_points = points
        return outcome

    def _consult_oracle(self, user_message: str) -> str:
        """
        Call the oracle with the history plus `user_message`.

        On failure the phase returns to IDLE and the error propagates;
        nothing in the game state is touched.
        """
        messages = [
            LLMMessage(role=LLMRole(m.role), content=m.content)
            for m in self.state.conversation_history
        ]
        messages.append(LLMMessage(role=LLMRole.USER, content=user_message))
        system_prompt = build_system_prompt(self.narrative_length, self.dc_table)

        try:
            response = self.oracle.complete(messages, system_prompt)
        except LLMRequestError as e:
            self.run_log.log_oracle_call(
                provider=self.oracle.provider.value,
                model=self.oracle.model,
                message_count=len(messages),
                success=False,
                error=str(e),
            )
            self.machine.transition("oracle_failed", {"error": str(e)})
            if isinstance(e, LLMAuthenticationError) and self.on_auth_failure is not None:
                self.on_auth_failure()
            raise

        self.run_log.log_oracle_call(
            provider=self.oracle.provider.value,
            model=self.oracle.model,
            message_count=len(messages),
            response_length=len(response.content),
        )
        return response.content

    def _complete_turn(self, user_message: str, response_text: str, action_text: Optional[str]) -> TurnOutcome:
        state = self.state
        append_conversation(state, user_message, response_text)

        parsed = self.parser.parse(response_text)
        changes = apply_delta(state, parsed.state_delta)
        if changes is not None:
            self.run_log.log_state_delta(parsed.state_delta.to_dict(), changes.describe())

        if parsed.death_detected:
            state.stats.death_count += 1
            state.current_narrative = parsed.narrative
            state.current_options = []
            self.machine.transition("death_detected", {"deaths": state.stats.death_count})
            logger.info(f"Player died (death #{state.stats.death_count})")
            return TurnOutcome(
                action_text=action_text,
                narrative=parsed.narrative,
                options=[],
                parsed=parsed,
                changes=changes,
                death=True,
            )

        state.current_narrative = parsed.narrative
        state.current_options = list(parsed.options)

        if action_text is not None:
            record_action(state, action_text, parsed.narrative)
            state.stats.actions_taken += 1

        self.machine.transition("oracle_responded", {"options": len(parsed.options)})

        if action_text is not None and self.on_turn_complete is not None:
            self.on_turn_complete()

        return TurnOutcome(
            action_text=action_text,
            narrative=parsed.narrative,
            options=list(parsed.options),
            parsed=parsed,
            changes=changes,
        )
