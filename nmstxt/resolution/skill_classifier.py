"""
Keyword-based skill detection for player actions.

Categories are checked in a fixed priority order (combat, technology,
survival, exploration) and the first keyword found as a substring wins.
Exploration is the fallback, being the core theme of the game.
"""

from nmstxt.data_models import SkillName


COMBAT_KEYWORDS = (
    "attack", "fight", "shoot", "defend", "weapon", "kill",
    "battle", "combat", "strike", "hit", "dodge", "block",
    "charge", "assault", "aggressive",
)

TECHNOLOGY_KEYWORDS = (
    "repair", "fix", "craft", "build", "upgrade", "modify",
    "engineer", "construct", "assemble", "calibrate", "system",
    "computer", "terminal", "code", "hack", "program", "wire",
    "circuit", "technology", "device", "tool",
)

SURVIVAL_KEYWORDS = (
    "gather", "collect", "harvest", "hunt", "forage", "scavenge",
    "water", "food", "shelter", "medicine", "heal", "survive",
    "resource", "toxin", "radiation", "temperature", "hazard",
    "environmental", "adapt",
)

EXPLORATION_KEYWORDS = (
    "explore", "search", "investigate", "examine", "look",
    "scout", "survey", "navigate", "map", "discover", "find",
    "study", "analyze", "inspect", "observe", "wander", "trek",
    "journey", "travel", "climb", "descend", "venture",
)

# Order matters: earlier categories win.
SKILL_KEYWORDS: tuple[tuple[SkillName, tuple[str, ...]], ...] = (
    (SkillName.COMBAT, COMBAT_KEYWORDS),
    (SkillName.TECHNOLOGY, TECHNOLOGY_KEYWORDS),
    (SkillName.SURVIVAL, SURVIVAL_KEYWORDS),
    (SkillName.EXPLORATION, EXPLORATION_KEYWORDS),
)

DEFAULT_SKILL = SkillName.EXPLORATION


def classify_action(action_text: str) -> SkillName:
    """Map a free-text action to the skill it exercises."""
    text = action_text.lower()
    for skill, keywords in SKILL_KEYWORDS:
        for keyword in keywords:
            if keyword in text:
                return skill
    return DEFAULT_SKILL
