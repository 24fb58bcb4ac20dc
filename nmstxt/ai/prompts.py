"""
Prompt text for the Game Master oracle.

The system prompt carries the rules and the response format the parser
expects. It is sent with every request but never stored in the
conversation history, so pruning can never drop it. The per-turn user
message restates the player's current state and the dice outcome.
"""

from enum import Enum
from typing import Optional

from nmstxt.data_models import (
    DIFFICULTY_DC,
    DifficultyTier,
    GameState,
    Inventory,
    SkillCheckResult,
)


class NarrativeLength(str, Enum):
    """How much prose the Game Master should write per turn."""
    CONCISE = "concise"
    REGULAR = "regular"


NARRATIVE_INSTRUCTIONS: dict[NarrativeLength, str] = {
    NarrativeLength.CONCISE: (
        "MAXIMUM 300 characters total (approximately 3-4 sentences). "
        "Be extremely brief and direct. This is a hard limit."
    ),
    NarrativeLength.REGULAR: (
        "EXACTLY 1-2 paragraphs. Be concise but vivid. Do NOT exceed 2 paragraphs."
    ),
}

BREVITY_REMINDERS: dict[NarrativeLength, str] = {
    NarrativeLength.CONCISE: "[REMINDER: Maximum 300 characters total - this is a HARD LIMIT]",
    NarrativeLength.REGULAR: "[REMINDER: 1-2 paragraphs maximum]",
}


def _coerce_length(narrative_length: Optional[str]) -> NarrativeLength:
    try:
        return NarrativeLength(narrative_length)
    except ValueError:
        return NarrativeLength.REGULAR


def _format_dc_table(dc_table: dict[DifficultyTier, int]) -> str:
    return ", ".join(f"{tier.label} (DC {dc})" for tier, dc in dc_table.items())


def build_system_prompt(
    narrative_length: Optional[str] = NarrativeLength.REGULAR,
    dc_table: Optional[dict[DifficultyTier, int]] = None,
) -> str:
    """
    Build the Game Master instructions.

    Args:
        narrative_length: "concise" or "regular"; anything else is regular
        dc_table: Difficulty thresholds quoted to the model
    """
    instruction = NARRATIVE_INSTRUCTIONS[_coerce_length(narrative_length)]
    dc_text = _format_dc_table(dc_table or DIFFICULTY_DC)

    return f"""You are the Game Master for NMS.TXT, a text-based space exploration game inspired by No Man's Sky.

CORE RULES:
1. Players CANNOT skip progression - they must overcome challenges
2. Starting conditions vary (crash landing, space drift, underwater pod, derelict freighter, alien study, frozen wasteland)
3. Ultimate goal: Repair ship -> explore galaxy -> reach center
4. Procedural generation: Every planet, alien, event is unique
5. Death is possible - actions have consequences

GAME MECHANICS YOU MUST ENFORCE:
- Dice rolls for difficulty: {dc_text}
- When player takes action that requires skill check, the roll result will be provided
- Resources required for repairs: specific amounts needed
- Fuel consumption: warp jumps require plutonium
- Alien encounters: varied species with unique languages/behaviors
- Hazards: toxic atmosphere, extreme heat/cold, radiation, hostile fauna

SKILL SYSTEM:
- Players have 4 skills: Survival, Technology, Exploration, Combat
- Players may spend skill points as a bonus to a roll
- Successful checks earn points in the skill that was used

RESPONSE FORMAT - YOU MUST FOLLOW THIS EXACTLY:
1. Narrative description ({instruction})
2. If dice roll result was provided, narrate the outcome (success/failure/critical)
3. [STATE UPDATE] section with changes (if any)
   Format: "Ship: +5% | Fuel: +10 | Inventory: +Iron x5"
4. [OPTIONS] section with 3-4 numbered choices
   Format: "1. [Action text] (Difficulty)"

EXAMPLE RESPONSE:
You wake up disoriented, your ship's emergency systems blaring. The crash site is surrounded by strange purple vegetation.

[STATE UPDATE]
Ship: +0% | Fuel: +0 | Inventory: +0

[OPTIONS]
1. Search the wreckage for salvageable parts (Easy)
2. Explore the nearby alien structures (Medium)
3. Attempt to repair the ship's communications array (Hard)
4. Hunt for food and water (Easy)

CRITICAL: Always end with [OPTIONS] section. Always include difficulty in parentheses.

TONE: Atmospheric, mysterious, sometimes humorous, always engaging
PACING: Progressive difficulty, early game easier, late game challenging
VARIETY: Mix combat, exploration, puzzles, diplomacy, survival

Current game state will be provided in each message."""


def format_inventory_text(inventory: Inventory) -> str:
    """Non-zero items as 'Iron x3, Carbon x2', or 'Empty'."""
    items = [f"{name.capitalize()} x{count}" for name, count in inventory.non_empty().items()]
    return ", ".join(items) or "Empty"


def format_roll_text(check: SkillCheckResult) -> str:
    lines = [f"Roll: {check.raw_roll}"]
    if check.bonus != 0:
        lines[0] += f" + {check.bonus}"
    lines[0] += f" = {check.total} vs DC {check.difficulty_class}"

    result = f"Result: {'SUCCESS' if check.success else 'FAILURE'}"
    if check.is_critical_success:
        result += " (Critical Success!)"
    if check.is_critical_failure:
        result += " (Critical Failure!)"
    lines.append(result)
    return "\n".join(lines)


def format_user_message(
    state: GameState,
    action_text: str,
    check: Optional[SkillCheckResult] = None,
    narrative_length: Optional[str] = NarrativeLength.REGULAR,
) -> str:
    """
    Wrap the player's action with the state the Game Master needs.

    Args:
        state: Current game state (read only)
        action_text: What the player typed or picked
        check: The skill check made for this action, if any
        narrative_length: Selects the brevity reminder
    """
    location = state.location
    parts = [
        f"{action_text}\n",
        "[CURRENT STATE]",
        f"Location: {location.name} ({location.type})",
        f"Ship Health: {state.ship.health}%",
        f"Fuel: {state.ship.fuel} units",
        f"Inventory: {format_inventory_text(state.inventory)}",
        f"Distance from Center: {location.distance_from_center} LY",
    ]

    if check is not None:
        parts.append("")
        parts.append("[DICE ROLL RESULT]")
        parts.append(format_roll_text(check))

    parts.append("")
    parts.append(BREVITY_REMINDERS[_coerce_length(narrative_length)])
    return "\n".join(parts)
