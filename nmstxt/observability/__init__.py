"""
Observability for NMS.TXT.

Provides a per-session log of rolls, turn transitions, oracle calls and
applied state deltas.
"""

from nmstxt.observability.run_log import (
    EventType,
    LogEvent,
    OracleCallEvent,
    RollEvent,
    RunLog,
    StateDeltaEvent,
    TransitionEvent,
)

__all__ = [
    "EventType",
    "LogEvent",
    "OracleCallEvent",
    "RollEvent",
    "RunLog",
    "StateDeltaEvent",
    "TransitionEvent",
]
