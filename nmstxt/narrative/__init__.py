"""
Narrative module for NMS.TXT.

Turns free-form Game Master responses into a narrative, a state delta and
a list of player options.
"""

from nmstxt.narrative.response_parser import (
    DEFAULT_OPTIONS,
    ExtractionStrategy,
    NumberedLinesStrategy,
    OptionsSectionStrategy,
    ParsedFragment,
    ParsedResponse,
    ResponseParser,
    StateDelta,
    StateUpdateSectionStrategy,
    default_options,
    detect_death,
    infer_difficulty,
    parse_inventory_change,
    parse_options,
    parse_options_anywhere,
    parse_response,
    parse_state_update,
)

__all__ = [
    "DEFAULT_OPTIONS",
    "ExtractionStrategy",
    "NumberedLinesStrategy",
    "OptionsSectionStrategy",
    "ParsedFragment",
    "ParsedResponse",
    "ResponseParser",
    "StateDelta",
    "StateUpdateSectionStrategy",
    "default_options",
    "detect_death",
    "infer_difficulty",
    "parse_inventory_change",
    "parse_options",
    "parse_options_anywhere",
    "parse_response",
    "parse_state_update",
]
