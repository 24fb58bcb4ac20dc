"""
Shared data structures for NMS.TXT.

The GameState aggregate is the single durable record of a playthrough. It is
owned by a GameSession and mutated only by the state reducer and the turn
orchestrator. Everything else here is either a transient value passed along
the turn pipeline or a constant shared by several modules.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional
import random


# =============================================================================
# CONSTANTS
# =============================================================================


GAME_VERSION = "1.0.0"

MAX_CONVERSATION_HISTORY = 20
MAX_ACTION_HISTORY = 50
ACTION_SUMMARY_LENGTH = 100
AUTOSAVE_DELAY_SECONDS = 30.0
MAX_SAVE_SIZE = int(4.5 * 1024 * 1024)
SAVE_SLOTS = range(0, 6)
AUTOSAVE_SLOT = 0
MAX_WAGER = 5

DEFAULT_DISTANCE_FROM_CENTER = 715342


# =============================================================================
# ENUMS
# =============================================================================


class SkillName(str, Enum):
    """The four skills a player can spend and earn points in."""
    SURVIVAL = "survival"
    TECHNOLOGY = "technology"
    EXPLORATION = "exploration"
    COMBAT = "combat"


class DifficultyTier(str, Enum):
    """Named difficulty levels used by options and skill checks."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    VERY_HARD = "very hard"

    @property
    def label(self) -> str:
        """Display form, e.g. 'Very Hard'."""
        return self.value.title()

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["DifficultyTier"]:
        """Case- and whitespace-insensitive lookup. Unknown labels give None."""
        if not label:
            return None
        normalized = " ".join(label.lower().split())
        for tier in cls:
            if tier.value == normalized:
                return tier
        return None


# Tuned for roughly 75/60/40/20 percent success on an unmodified d20.
DIFFICULTY_DC: dict[DifficultyTier, int] = {
    DifficultyTier.EASY: 6,
    DifficultyTier.MEDIUM: 9,
    DifficultyTier.HARD: 13,
    DifficultyTier.VERY_HARD: 17,
}

# The original, harsher table. Kept selectable for players who prefer it.
LEGACY_DIFFICULTY_DC: dict[DifficultyTier, int] = {
    DifficultyTier.EASY: 8,
    DifficultyTier.MEDIUM: 12,
    DifficultyTier.HARD: 16,
    DifficultyTier.VERY_HARD: 20,
}


# =============================================================================
# DICE AND RANDOMIZATION
# =============================================================================


@dataclass
class DiceResult:
    """Result of a dice roll with full information."""
    notation: str
    rolls: list[int]
    modifier: int
    total: int
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"{self.notation}: {self.rolls} + {self.modifier} = {self.total}"
        elif self.modifier < 0:
            return f"{self.notation}: {self.rolls} - {abs(self.modifier)} = {self.total}"
        return f"{self.notation}: {self.rolls} = {self.total}"


class DiceRoller:
    """
    Randomization interface for a single game session.

    Every roll goes through an instance of this class so that a session can
    be seeded for reproducibility and its rolls inspected afterwards. Each
    instance owns its own random.Random, so two sessions never share a
    stream.
    """

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._rng = random.Random(seed)
        self._roll_log: list[DiceResult] = []

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def set_seed(self, seed: int) -> None:
        """Reseed the roller for reproducibility."""
        self._seed = seed
        self._rng.seed(seed)

    def roll(self, sides: int, count: int = 1, modifier: int = 0, reason: str = "") -> DiceResult:
        """
        Roll `count` dice with `sides` faces and add `modifier`.

        Args:
            sides: Number of faces per die
            count: Number of dice
            modifier: Flat amount added to the sum
            reason: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total
        """
        if sides < 1 or count < 1:
            raise ValueError(f"Cannot roll {count}d{sides}")

        rolls = [self._rng.randint(1, sides) for _ in range(count)]
        notation = f"{count}d{sides}"
        if modifier > 0:
            notation += f"+{modifier}"
        elif modifier < 0:
            notation += str(modifier)

        result = DiceResult(
            notation=notation,
            rolls=rolls,
            modifier=modifier,
            total=sum(rolls) + modifier,
            reason=reason,
        )
        self._roll_log.append(result)
        return result

    def roll_d20(self, reason: str = "") -> DiceResult:
        """Convenience method for d20 rolls."""
        return self.roll(20, reason=reason)

    def randint(self, low: int, high: int) -> int:
        """Uniform integer in [low, high] from the session stream (not logged)."""
        return self._rng.randint(low, high)

    def choice(self, items: list[Any]) -> Any:
        """Pick one item from the session stream (not logged)."""
        return self._rng.choice(items)

    def get_roll_log(self) -> list[DiceResult]:
        """Get the complete roll log for the session."""
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        """Clear the roll log."""
        self._roll_log = []


# =============================================================================
# GAME STATE COMPONENTS
# =============================================================================


@dataclass
class Location:
    """Where the player currently is."""
    name: str = "Unknown"
    type: str = "unknown"
    system_name: str = "Unknown"
    distance_from_center: int = DEFAULT_DISTANCE_FROM_CENTER  # light-years

    def to_dict(self) -> dict[str, Any]:
        return {
            "planetName": self.name,
            "planetType": self.type,
            "systemName": self.system_name,
            "distanceFromCenter": self.distance_from_center,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        return cls(
            name=data.get("planetName", "Unknown"),
            type=data.get("planetType", "unknown"),
            system_name=data.get("systemName", "Unknown"),
            distance_from_center=max(0, int(data.get("distanceFromCenter", DEFAULT_DISTANCE_FROM_CENTER))),
        )


@dataclass
class ShipState:
    """Ship integrity (percent) and fuel units."""
    health: int = 15
    fuel: int = 0
    warp_capable: bool = False
    launch_capable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "health": self.health,
            "fuel": self.fuel,
            "warpCapable": self.warp_capable,
            "launchCapable": self.launch_capable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShipState":
        return cls(
            health=max(0, min(100, int(data.get("health", 15)))),
            fuel=max(0, int(data.get("fuel", 0))),
            warp_capable=bool(data.get("warpCapable", False)),
            launch_capable=bool(data.get("launchCapable", False)),
        )


class Inventory:
    """
    Resource counts keyed by lower-cased name.

    Items come into existence through ensure(), which inserts a zero count
    the first time a name is seen. Counts never drop below zero.
    """

    def __init__(self, items: Optional[dict[str, int]] = None):
        self._items: dict[str, int] = {}
        for name, count in (items or {}).items():
            self._items[self.normalize(name)] = max(0, int(count))

    @staticmethod
    def normalize(name: str) -> str:
        return name.strip().lower()

    def ensure(self, name: str) -> str:
        """Insert a zero count for `name` if absent. Returns the normalized key."""
        key = self.normalize(name)
        if key not in self._items:
            self._items[key] = 0
        return key

    def count(self, name: str) -> int:
        """Current count, 0 for items never seen."""
        return self._items.get(self.normalize(name), 0)

    def adjust(self, name: str, delta: int) -> tuple[int, int]:
        """
        Add `delta` to an item, flooring at zero.

        Returns:
            (old_count, new_count)
        """
        key = self.ensure(name)
        old = self._items[key]
        self._items[key] = max(0, old + delta)
        return old, self._items[key]

    def non_empty(self) -> dict[str, int]:
        """Items with a positive count, in insertion order."""
        return {name: count for name, count in self._items.items() if count > 0}

    def __getitem__(self, name: str) -> int:
        return self._items[self.normalize(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.normalize(name) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Inventory):
            return self._items == other._items
        if isinstance(other, dict):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Inventory({self._items!r})"

    def to_dict(self) -> dict[str, int]:
        return dict(self._items)


@dataclass
class SkillState:
    """Point balance for one skill. level and xp only survive for old saves."""
    points: int = 0
    level: int = 1
    xp: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"level": self.level, "xp": self.xp, "points": self.points}


def default_skills() -> dict[SkillName, SkillState]:
    return {
        SkillName.SURVIVAL: SkillState(),
        SkillName.TECHNOLOGY: SkillState(),
        SkillName.EXPLORATION: SkillState(level=2),
        SkillName.COMBAT: SkillState(),
    }


@dataclass
class GameStats:
    """Lifetime counters. They only ever go up."""
    planets_visited: int = 1
    aliens_encountered: int = 0
    resources_gathered: int = 0
    jumps_completed: int = 0
    death_count: int = 0
    actions_taken: int = 0
    closest_distance: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "planetsVisited": self.planets_visited,
            "aliensEncountered": self.aliens_encountered,
            "resourcesGathered": self.resources_gathered,
            "jumpsCompleted": self.jumps_completed,
            "deathCount": self.death_count,
            "actionsTaken": self.actions_taken,
            "closestDistance": self.closest_distance,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameStats":
        return cls(
            planets_visited=int(data.get("planetsVisited", 1)),
            aliens_encountered=int(data.get("aliensEncountered", 0)),
            resources_gathered=int(data.get("resourcesGathered", 0)),
            jumps_completed=int(data.get("jumpsCompleted", 0)),
            death_count=int(data.get("deathCount", 0)),
            # older saves spelled this "actionsToken"
            actions_taken=int(data.get("actionsTaken", data.get("actionsToken", 0))),
            closest_distance=data.get("closestDistance", data.get("distanceFromCenter")),
        )


@dataclass
class ConversationMessage:
    """One entry of the oracle conversation ('user' or 'assistant')."""
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationMessage":
        return cls(role=data["role"], content=data.get("content", ""))


@dataclass
class ActionRecord:
    """A past player action with a truncated result summary."""
    action: str
    result: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActionRecord":
        raw_ts = data.get("timestamp")
        if isinstance(raw_ts, (int, float)):
            # millisecond epoch from the browser client
            timestamp = datetime.fromtimestamp(raw_ts / 1000)
        elif raw_ts:
            timestamp = datetime.fromisoformat(raw_ts)
        else:
            timestamp = datetime.now()
        return cls(action=data.get("action", ""), result=data.get("result", ""), timestamp=timestamp)


@dataclass
class GameOption:
    """A choice offered to the player, with its difficulty label as written."""
    text: str
    difficulty: Optional[str] = None

    @property
    def tier(self) -> Optional[DifficultyTier]:
        return DifficultyTier.from_label(self.difficulty)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "difficulty": self.difficulty}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameOption":
        return cls(text=data.get("text", ""), difficulty=data.get("difficulty"))


@dataclass
class GameState:
    """
    The authoritative state of one playthrough.

    Serialized with camelCase keys so that saves stay readable by, and
    written for, the browser client's format.
    """
    version: str = GAME_VERSION
    save_slot: int = AUTOSAVE_SLOT
    last_saved: datetime = field(default_factory=datetime.now)

    location: Location = field(default_factory=Location)
    ship: ShipState = field(default_factory=ShipState)
    inventory: Inventory = field(default_factory=Inventory)
    skills: dict[SkillName, SkillState] = field(default_factory=default_skills)
    stats: GameStats = field(default_factory=GameStats)

    conversation_history: list[ConversationMessage] = field(default_factory=list)
    action_history: list[ActionRecord] = field(default_factory=list)

    current_narrative: str = ""
    current_options: list[GameOption] = field(default_factory=list)

    scenario_id: Optional[str] = None

    def skill_points(self, skill: SkillName) -> int:
        return self.skills[skill].points

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "version": self.version,
            "saveSlot": self.save_slot,
            "lastSaved": self.last_saved.isoformat(),
            "scenarioId": self.scenario_id,
            "currentLocation": self.location.to_dict(),
            "ship": self.ship.to_dict(),
            "inventory": self.inventory.to_dict(),
            "skills": {skill.value: state.to_dict() for skill, state in self.skills.items()},
            "stats": self.stats.to_dict(),
            "conversationHistory": [m.to_dict() for m in self.conversation_history],
            "actionHistory": [a.to_dict() for a in self.action_history],
            "currentNarrative": self.current_narrative,
            "currentOptions": [o.to_dict() for o in self.current_options],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """
        Rebuild a GameState from a dictionary.

        Skills must already be in the points format; SessionManager migrates
        older saves before calling this.
        """
        raw_saved = data.get("lastSaved")
        if isinstance(raw_saved, (int, float)):
            last_saved = datetime.fromtimestamp(raw_saved / 1000)
        elif raw_saved:
            last_saved = datetime.fromisoformat(raw_saved)
        else:
            last_saved = datetime.now()

        skills = default_skills()
        for name, raw in (data.get("skills") or {}).items():
            try:
                skill = SkillName(name)
            except ValueError:
                continue
            skills[skill] = SkillState(
                points=max(0, int(raw.get("points", 0))),
                level=int(raw.get("level", 1)),
                xp=int(raw.get("xp", 0)),
            )

        return cls(
            version=data.get("version", GAME_VERSION),
            save_slot=int(data.get("saveSlot", AUTOSAVE_SLOT)),
            last_saved=last_saved,
            scenario_id=data.get("scenarioId"),
            location=Location.from_dict(data.get("currentLocation") or {}),
            ship=ShipState.from_dict(data.get("ship") or {}),
            inventory=Inventory(data.get("inventory") or {}),
            skills=skills,
            stats=GameStats.from_dict(data.get("stats") or {}),
            conversation_history=[
                ConversationMessage.from_dict(m) for m in data.get("conversationHistory", [])
            ],
            action_history=[ActionRecord.from_dict(a) for a in data.get("actionHistory", [])],
            current_narrative=data.get("currentNarrative", ""),
            current_options=[GameOption.from_dict(o) for o in data.get("currentOptions", [])],
        )


def create_initial_game_state() -> GameState:
    """Factory for a fresh game before any scenario is applied."""
    return GameState(
        inventory=Inventory({
            "carbon": 0,
            "iron": 0,
            "plutonium": 0,
            "heridium": 0,
            "zinc": 0,
            "titanium": 0,
        }),
    )


# =============================================================================
# TURN PIPELINE VALUES
# =============================================================================


@dataclass
class PendingAction:
    """An action waiting on the player's wager decision."""
    action_text: str
    difficulty: str


@dataclass
class SkillCheckResult:
    """Outcome of one d20 skill check."""
    raw_roll: int
    bonus: int
    total: int
    difficulty_class: int
    difficulty: str
    success: bool
    is_critical_success: bool
    is_critical_failure: bool
    skill_used: Optional[SkillName] = None

    @property
    def margin(self) -> int:
        return self.total - self.difficulty_class

    def outcome_label(self) -> str:
        if self.is_critical_success:
            return "CRITICAL SUCCESS!"
        if self.is_critical_failure:
            return "CRITICAL FAILURE!"
        return "SUCCESS!" if self.success else "FAILURE"

    def describe(self) -> str:
        """One-line summary, e.g. 'Roll: 12 + 2 = 14 vs DC 9 SUCCESS!'."""
        text = f"Roll: {self.raw_roll}"
        if self.bonus != 0:
            text += f" + {self.bonus}"
        text += f" = {self.total} vs DC {self.difficulty_class} {self.outcome_label()}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "roll": self.raw_roll,
            "bonus": self.bonus,
            "total": self.total,
            "dc": self.difficulty_class,
            "difficulty": self.difficulty,
            "success": self.success,
            "criticalSuccess": self.is_critical_success,
            "criticalFailure": self.is_critical_failure,
            "skillUsed": self.skill_used.value if self.skill_used else None,
        }


@dataclass
class SkillAward:
    """Points earned by a successful check."""
    skill: SkillName
    points_earned: int
    new_total: int

    def describe(self) -> str:
        return f"+{self.points_earned} {self.skill.value.title()} points"
