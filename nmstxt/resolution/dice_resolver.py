"""
Skill check resolution for NMS.TXT.

A check is a single d20 plus the points the player wagered, compared
against the difficulty class of the action's tier.

Check Mechanics:
- Roll d20, add bonus, compare to DC (higher is better)
- Success: total >= DC
- Natural 20: always a critical success, natural 1: always a critical
  failure. Both are read from the raw roll, so a wager never cancels a
  natural 1 and never manufactures a natural 20.
- Points earned on success: max(1, total - DC)
"""

from typing import Optional
import logging

from nmstxt.data_models import (
    DIFFICULTY_DC,
    DiceRoller,
    DifficultyTier,
    SkillCheckResult,
    SkillName,
)

logger = logging.getLogger(__name__)


def difficulty_class_for(
    difficulty: Optional[str],
    dc_table: Optional[dict[DifficultyTier, int]] = None,
) -> int:
    """
    Look up the DC for a difficulty label.

    Unrecognized labels use the medium threshold of the same table.
    """
    table = dc_table or DIFFICULTY_DC
    tier = DifficultyTier.from_label(difficulty)
    if tier is None:
        logger.debug(f"Unknown difficulty {difficulty!r}, using medium DC")
        return table[DifficultyTier.MEDIUM]
    return table[tier]


def resolve(
    difficulty: str,
    bonus: int = 0,
    skill: Optional[SkillName] = None,
    dice: Optional[DiceRoller] = None,
    dc_table: Optional[dict[DifficultyTier, int]] = None,
) -> SkillCheckResult:
    """
    Perform a skill check.

    Args:
        difficulty: Tier label as offered to the player ("Easy", "very hard", ...)
        bonus: Points wagered on this roll
        skill: Skill the check is made with, recorded on the result
        dice: Session dice roller (a fresh unseeded one if omitted)
        dc_table: DC table to use (defaults to DIFFICULTY_DC)

    Returns:
        SkillCheckResult for the roll
    """
    dice = dice or DiceRoller()
    roll = dice.roll_d20(reason=f"{difficulty} check").total
    total = roll + bonus
    dc = difficulty_class_for(difficulty, dc_table)

    return SkillCheckResult(
        raw_roll=roll,
        bonus=bonus,
        total=total,
        difficulty_class=dc,
        difficulty=difficulty,
        success=total >= dc,
        is_critical_success=roll == 20,
        is_critical_failure=roll == 1,
        skill_used=skill,
    )


def points_for_check(check: SkillCheckResult) -> int:
    """Skill points earned by a check: margin of success with a floor of 1, or 0 on failure."""
    if not check.success:
        return 0
    return max(1, check.total - check.difficulty_class)
