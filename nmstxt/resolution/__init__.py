"""Action resolution module.

Provides the d20 skill check and the keyword skill classifier.
"""

from nmstxt.resolution.dice_resolver import (
    difficulty_class_for,
    points_for_check,
    resolve,
)
from nmstxt.resolution.skill_classifier import (
    SKILL_KEYWORDS,
    classify_action,
)

__all__ = [
    "difficulty_class_for",
    "points_for_check",
    "resolve",
    "SKILL_KEYWORDS",
    "classify_action",
]
