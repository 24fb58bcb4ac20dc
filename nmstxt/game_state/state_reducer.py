"""
State Reducer for NMS.TXT.

Every change to a GameState made on behalf of the oracle or the dice goes
through here. Bounds are enforced at the point of mutation:

- ship health is clamped to [0, 100]
- fuel, distance and every inventory count are floored at 0
- lifetime stats only increase

Clamping is a silent correction, never an error.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from nmstxt.data_models import (
    ACTION_SUMMARY_LENGTH,
    MAX_ACTION_HISTORY,
    MAX_CONVERSATION_HISTORY,
    ActionRecord,
    ConversationMessage,
    GameState,
    SkillAward,
    SkillCheckResult,
    SkillName,
)
from nmstxt.narrative.response_parser import StateDelta
from nmstxt.resolution.dice_resolver import points_for_check

logger = logging.getLogger(__name__)

MIN_SHIP_HEALTH = 0
MAX_SHIP_HEALTH = 100


@dataclass
class AppliedChanges:
    """Before/after values for everything a delta touched."""
    ship: Optional[tuple[int, int]] = None
    fuel: Optional[tuple[int, int]] = None
    distance: Optional[tuple[int, int]] = None
    inventory: dict[str, tuple[int, int]] = field(default_factory=dict)
    resources_gathered: int = 0

    def describe(self) -> list[str]:
        """Human-readable lines, e.g. 'Ship: 15% -> 20%'."""
        lines = []
        if self.ship is not None:
            lines.append(f"Ship: {self.ship[0]}% -> {self.ship[1]}%")
        if self.fuel is not None:
            lines.append(f"Fuel: {self.fuel[0]} -> {self.fuel[1]}")
        if self.distance is not None:
            lines.append(f"Distance: {self.distance[0]:,} LY -> {self.distance[1]:,} LY")
        for item, (old, new) in self.inventory.items():
            lines.append(f"{item.title()}: {old} -> {new}")
        return lines


def apply_delta(state: GameState, delta: Optional[StateDelta]) -> Optional[AppliedChanges]:
    """
    Merge a parsed delta into the game state in place.

    Args:
        state: The game state to mutate
        delta: Parsed delta, or None for "nothing to apply"

    Returns:
        AppliedChanges describing what moved, or None if delta was None
    """
    if delta is None:
        logger.debug("No state delta to apply")
        return None

    changes = AppliedChanges()

    if delta.ship is not None:
        old = state.ship.health
        state.ship.health = max(MIN_SHIP_HEALTH, min(MAX_SHIP_HEALTH, old + delta.ship))
        changes.ship = (old, state.ship.health)
        logger.debug(f"Ship health: {old}% -> {state.ship.health}%")

    if delta.fuel is not None:
        old = state.ship.fuel
        state.ship.fuel = max(0, old + delta.fuel)
        changes.fuel = (old, state.ship.fuel)
        logger.debug(f"Fuel: {old} -> {state.ship.fuel}")

    if delta.distance is not None:
        old = state.location.distance_from_center
        state.location.distance_from_center = max(0, old + delta.distance)
        changes.distance = (old, state.location.distance_from_center)
        if delta.distance < 0:
            state.stats.closest_distance = state.location.distance_from_center
        logger.debug(f"Distance from center: {old:,} LY -> {state.location.distance_from_center:,} LY")

    for item, amount in delta.inventory.items():
        if item not in state.inventory:
            logger.debug(f"Creating new inventory item: {item}")
        old, new = state.inventory.adjust(item, amount)
        changes.inventory[state.inventory.normalize(item)] = (old, new)
        logger.debug(f"Inventory {item}: {old} -> {new} ({amount:+d})")

        if amount > 0:
            state.stats.resources_gathered += amount
            changes.resources_gathered += amount

    return changes


def spend_skill_points(state: GameState, skill: SkillName, points: int) -> int:
    """
    Deduct wagered points from a skill.

    Raises:
        ValueError: If points is negative or exceeds the balance

    Returns:
        The new balance
    """
    balance = state.skills[skill].points
    if points < 0 or points > balance:
        raise ValueError(f"Cannot spend {points} {skill.value} points (balance {balance})")
    state.skills[skill].points = balance - points
    return state.skills[skill].points


def award_skill_points(
    state: GameState,
    skill: SkillName,
    check: SkillCheckResult,
) -> Optional[SkillAward]:
    """
    Award points for a successful check to the skill it was made with.

    Returns:
        SkillAward, or None when the check failed
    """
    earned = points_for_check(check)
    if earned <= 0:
        return None

    state.skills[skill].points += earned
    award = SkillAward(skill=skill, points_earned=earned, new_total=state.skills[skill].points)
    logger.info(f"{skill.value.title()} earned {earned} point(s), total {award.new_total}")
    return award


def prune_conversation_history(state: GameState, limit: int = MAX_CONVERSATION_HISTORY) -> int:
    """Keep only the newest `limit` messages. Returns how many were dropped."""
    excess = len(state.conversation_history) - limit
    if excess <= 0:
        return 0
    del state.conversation_history[:excess]
    return excess


def append_conversation(
    state: GameState,
    user_message: Optional[str],
    assistant_message: str,
    limit: int = MAX_CONVERSATION_HISTORY,
) -> None:
    """Append a request/response pair in that order, then prune."""
    if user_message is not None:
        state.conversation_history.append(ConversationMessage(role="user", content=user_message))
    state.conversation_history.append(ConversationMessage(role="assistant", content=assistant_message))
    prune_conversation_history(state, limit)


def summarize_result(narrative: str, length: int = ACTION_SUMMARY_LENGTH) -> str:
    return narrative[:length] + "..."


def record_action(
    state: GameState,
    action_text: str,
    narrative: str,
    limit: int = MAX_ACTION_HISTORY,
) -> ActionRecord:
    """Push an action to the front of the history, dropping the oldest past `limit`."""
    record = ActionRecord(action=action_text, result=summarize_result(narrative))
    state.action_history.insert(0, record)
    del state.action_history[limit:]
    return record
