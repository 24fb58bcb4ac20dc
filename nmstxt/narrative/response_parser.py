"""
Game Master response parser for NMS.TXT.

The oracle is asked to answer in a loose format:

    <narrative>

    [STATE UPDATE]
    Ship: +5% | Fuel: -2 | Inventory: +Iron x3, -Carbon x1

    [OPTIONS]
    1. Search the wreckage (Easy)
    2. Climb the ridge (Hard)

It often does not. Parsing is therefore a pipeline of independent
extraction strategies tried in order. Each strategy is total: it either
returns a fragment or None, and a strategy that raises anyway is logged and
skipped. parse() itself never raises; missing structure degrades to a
fallback (no delta, inferred options, or the default option set).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional
import logging
import re

from nmstxt.data_models import GameOption

logger = logging.getLogger(__name__)


# =============================================================================
# PATTERNS
# =============================================================================

# A section runs until the next known section marker or the end of the text.
_NEXT_SECTION = r"(?=\[(?:STATE UPDATE|OPTIONS)\]|\Z)"

STATE_UPDATE_SECTION = re.compile(
    r"\[STATE UPDATE\](.*?)" + _NEXT_SECTION,
    re.IGNORECASE | re.DOTALL,
)
OPTIONS_SECTION = re.compile(r"\[OPTIONS\](.*)\Z", re.IGNORECASE | re.DOTALL)

# "1. Action text (Difficulty)" with a one- or two-word difficulty
OPTION_WITH_DIFFICULTY = re.compile(r"^\s*(\d+)\.\s*(.+?)\s*\((\w+(?:\s+\w+)?)\)\s*$")
OPTION_WITHOUT_DIFFICULTY = re.compile(r"^\s*(\d+)\.\s*(.+?)\s*$")
NUMBERED_LINE = re.compile(r"^\s*\d+\.\s*.+")

SIGNED_INT = re.compile(r"([+-]?\d+)")
SHIP_VALUE = re.compile(r"([+-]?\d+)%?")
INVENTORY_CHANGE = re.compile(r"([+-])?\s*(\w+)\s*x\s*(\d+)", re.IGNORECASE)

SHIP_CLAUSE = re.compile(r"ship", re.IGNORECASE)
FUEL_CLAUSE = re.compile(r"fuel", re.IGNORECASE)
DISTANCE_CLAUSE = re.compile(r"distance", re.IGNORECASE)
INVENTORY_CLAUSE = re.compile(r"inventory", re.IGNORECASE)

# Best-effort heuristics. These can fire on figurative language ("a last
# breath of wind") and miss inventive phrasing; both are accepted.
DEATH_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"you\s+(die|died|have died|are dead)",
        r"your\s+death",
        r"(succumb|perish|perished)",
        r"(life|consciousness)\s+(fades|slips away)",
        r"(last|final)\s+breath",
        r"cease\s+to\s+exist",
        r"game\s+over",
        r"the\s+end\s+(has\s+)?come",
        r"no\s+survivors",
        r"you\s+are\s+dead",
        r"breath\s+stops",
        r"consciousness\s+fades",
    )
)

# Keyword → difficulty, for numbered lines that carry no parenthetical.
DIFFICULTY_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Easy", ("search", "look", "gather", "collect")),
    ("Medium", ("explore", "investigate", "examine")),
    ("Hard", ("repair", "climb", "fight", "attack")),
)
DEFAULT_INFERRED_DIFFICULTY = "Medium"

# Numbered lines shorter than this without a difficulty are not options.
MIN_BARE_OPTION_LENGTH = 6

DEFAULT_OPTIONS: tuple[tuple[str, str], ...] = (
    ("Continue exploring", "Easy"),
    ("Look around carefully", "Medium"),
    ("Try something risky", "Hard"),
)


def default_options() -> list[GameOption]:
    """A fresh copy of the fallback option set."""
    return [GameOption(text=text, difficulty=difficulty) for text, difficulty in DEFAULT_OPTIONS]


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class StateDelta:
    """
    Signed changes requested by the oracle.

    None means "not mentioned", which is different from a change of 0.
    """
    ship: Optional[int] = None
    fuel: Optional[int] = None
    distance: Optional[int] = None
    inventory: dict[str, int] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return (
            self.ship is None
            and self.fuel is None
            and self.distance is None
            and not self.inventory
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.ship is not None:
            data["ship"] = self.ship
        if self.fuel is not None:
            data["fuel"] = self.fuel
        if self.distance is not None:
            data["distance"] = self.distance
        if self.inventory:
            data["inventory"] = dict(self.inventory)
        return data


@dataclass
class ParsedResponse:
    """Structured view of one oracle response."""
    narrative: str
    state_delta: Optional[StateDelta]
    options: list[GameOption]
    death_detected: bool = False
    used_fallback_options: bool = False
    used_default_options: bool = False


@dataclass
class ParsedFragment:
    """What a strategy extracted, and the working text with it removed."""
    value: Any
    remaining: str


# =============================================================================
# SUB-PARSERS
# =============================================================================


def parse_inventory_change(text: str) -> dict[str, int]:
    """
    Parse item changes like "+Iron x5, Carbon x2, -Zinc x1".

    The sign is optional and defaults to '+'. Item names are lower-cased.
    """
    changes: dict[str, int] = {}
    for match in INVENTORY_CHANGE.finditer(text):
        sign = match.group(1) or "+"
        item = match.group(2).lower()
        amount = int(match.group(3))
        changes[item] = amount if sign == "+" else -amount
        logger.debug(f"Inventory change: {item} {sign}{amount}")
    return changes


def parse_state_update(text: str, parse_distance: bool = True) -> StateDelta:
    """
    Parse the body of a [STATE UPDATE] section.

    Clauses are separated by '|' and tested independently, so their order
    does not matter and unrecognized clauses are ignored.
    """
    delta = StateDelta()

    for clause in text.split("|"):
        clause = clause.strip()
        if not clause:
            continue

        if SHIP_CLAUSE.search(clause):
            match = SHIP_VALUE.search(clause)
            if match:
                delta.ship = int(match.group(1))

        if FUEL_CLAUSE.search(clause):
            match = SIGNED_INT.search(clause)
            if match:
                delta.fuel = int(match.group(1))

        if parse_distance and DISTANCE_CLAUSE.search(clause):
            match = SIGNED_INT.search(clause)
            if match:
                delta.distance = int(match.group(1))

        if INVENTORY_CLAUSE.search(clause):
            delta.inventory.update(parse_inventory_change(clause))

    return delta


def parse_options(text: str) -> list[GameOption]:
    """Parse "N. text (Difficulty)" lines. Lines without a difficulty are skipped."""
    options = []
    for line in text.split("\n"):
        match = OPTION_WITH_DIFFICULTY.match(line)
        if match:
            options.append(GameOption(text=match.group(2).strip(), difficulty=match.group(3).strip()))
    return options


def infer_difficulty(action_text: str) -> str:
    """Guess a difficulty from the wording of an option."""
    lowered = action_text.lower()
    for difficulty, keywords in DIFFICULTY_HINTS:
        if any(keyword in lowered for keyword in keywords):
            return difficulty
    return DEFAULT_INFERRED_DIFFICULTY


def parse_options_anywhere(text: str) -> list[GameOption]:
    """
    Fallback option extraction: any numbered line anywhere in the text.

    A trailing parenthetical is used as the difficulty; otherwise one is
    inferred from keywords. Very short bare lines are ignored.
    """
    options = []
    for line in text.split("\n"):
        with_difficulty = OPTION_WITH_DIFFICULTY.match(line)
        if with_difficulty:
            options.append(
                GameOption(
                    text=with_difficulty.group(2).strip(),
                    difficulty=with_difficulty.group(3).strip(),
                )
            )
            continue

        bare = OPTION_WITHOUT_DIFFICULTY.match(line)
        if bare and len(bare.group(2).strip()) >= MIN_BARE_OPTION_LENGTH:
            action_text = bare.group(2).strip()
            options.append(GameOption(text=action_text, difficulty=infer_difficulty(action_text)))
    return options


def strip_numbered_lines(text: str) -> str:
    return "\n".join(line for line in text.split("\n") if not NUMBERED_LINE.match(line))


def detect_death(narrative: str) -> bool:
    """True if the narrative reads like the player character died."""
    for pattern in DEATH_PATTERNS:
        if pattern.search(narrative):
            logger.info(f"Death detected in narrative (pattern {pattern.pattern!r})")
            return True
    return False


def _excise(text: str, match: re.Match) -> str:
    return text[: match.start()] + text[match.end():]


# =============================================================================
# STRATEGIES
# =============================================================================


class ExtractionStrategy(ABC):
    """One way of pulling a fragment out of a response."""

    name: str = "strategy"

    @abstractmethod
    def attempt(self, original: str, working: str) -> Optional[ParsedFragment]:
        """
        Try to extract a fragment.

        Args:
            original: The unmodified response text
            working: The response text with earlier fragments removed

        Returns:
            ParsedFragment, or None when this strategy does not apply
        """
        pass


class StateUpdateSectionStrategy(ExtractionStrategy):
    """The delimited [STATE UPDATE] section."""

    name = "state_update_section"

    def __init__(self, parse_distance: bool = True):
        self.parse_distance = parse_distance

    def attempt(self, original: str, working: str) -> Optional[ParsedFragment]:
        match = STATE_UPDATE_SECTION.search(working)
        if not match:
            return None
        body = match.group(1).strip()
        logger.debug(f"Found STATE UPDATE section: {body!r}")
        return ParsedFragment(
            value=parse_state_update(body, parse_distance=self.parse_distance),
            remaining=_excise(working, match),
        )


class OptionsSectionStrategy(ExtractionStrategy):
    """The delimited [OPTIONS] section, running to the end of the text."""

    name = "options_section"

    def attempt(self, original: str, working: str) -> Optional[ParsedFragment]:
        match = OPTIONS_SECTION.search(working)
        if not match:
            return None
        logger.debug("Found OPTIONS section")
        return ParsedFragment(
            value=parse_options(match.group(1).strip()),
            remaining=_excise(working, match),
        )


class NumberedLinesStrategy(ExtractionStrategy):
    """Numbered lines anywhere in the original text."""

    name = "numbered_lines"

    def attempt(self, original: str, working: str) -> Optional[ParsedFragment]:
        options = parse_options_anywhere(original)
        if not options:
            return None
        logger.debug(f"Fallback parser found {len(options)} options")
        return ParsedFragment(value=options, remaining=strip_numbered_lines(working))


# =============================================================================
# PARSER
# =============================================================================


class ResponseParser:
    """
    Runs the extraction strategies over an oracle response.

    Args:
        parse_distance: Whether "Distance: <int>" clauses are honoured
        delta_strategies: Override the state-delta strategies
        option_strategies: Override the option strategies, in priority order
    """

    def __init__(
        self,
        parse_distance: bool = True,
        delta_strategies: Optional[list[ExtractionStrategy]] = None,
        option_strategies: Optional[list[ExtractionStrategy]] = None,
    ):
        self.delta_strategies = delta_strategies or [StateUpdateSectionStrategy(parse_distance)]
        self.option_strategies = option_strategies or [
            OptionsSectionStrategy(),
            NumberedLinesStrategy(),
        ]

    def _attempt(self, strategy: ExtractionStrategy, original: str, working: str) -> Optional[ParsedFragment]:
        try:
            return strategy.attempt(original, working)
        except Exception as e:
            logger.warning(f"Extraction strategy {strategy.name} failed: {e}")
            return None

    def parse(self, raw_text: Any) -> ParsedResponse:
        """
        Parse one oracle response. Never raises.

        Returns:
            ParsedResponse with a narrative, an optional delta, at least
            one option, and the death flag
        """
        if raw_text is None:
            original = ""
        elif isinstance(raw_text, str):
            original = raw_text
        else:
            original = str(raw_text)
        working = original

        state_delta: Optional[StateDelta] = None
        for strategy in self.delta_strategies:
            fragment = self._attempt(strategy, original, working)
            if fragment is not None:
                working = fragment.remaining
                state_delta = fragment.value
                break
        if state_delta is None:
            logger.debug("No STATE UPDATE section found")

        options: list[GameOption] = []
        used_fallback = False
        for index, strategy in enumerate(self.option_strategies):
            fragment = self._attempt(strategy, original, working)
            if fragment is None:
                continue
            working = fragment.remaining
            if fragment.value:
                options = list(fragment.value)
                used_fallback = index > 0
                break

        narrative = working.strip()
        death_detected = detect_death(narrative)

        used_default = False
        if not options:
            logger.warning("No options found in response, providing defaults")
            options = default_options()
            used_default = True

        logger.debug(
            f"Parse complete: narrative={bool(narrative)} delta={state_delta is not None} "
            f"options={len(options)} dead={death_detected}"
        )

        return ParsedResponse(
            narrative=narrative,
            state_delta=state_delta,
            options=options,
            death_detected=death_detected,
            used_fallback_options=used_fallback,
            used_default_options=used_default,
        )


_default_parser = ResponseParser()


def parse_response(raw_text: Any) -> ParsedResponse:
    """Parse with the default strategy pipeline."""
    return _default_parser.parse(raw_text)
