"""
Run Log for game event tracking.

Captures the events of a session (dice rolls, turn phase transitions,
oracle calls, applied state deltas) so a session can be inspected or
exported after the fact. Each GameSession owns its own RunLog.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    ROLL = "roll"  # Skill check roll
    TRANSITION = "transition"  # Turn phase transition
    ORACLE_CALL = "oracle_call"  # Request to the text-generation backend
    STATE_DELTA = "state_delta"  # Changes applied to the game state
    CUSTOM = "custom"  # Custom event


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # event_type has a default so subclasses can add defaulted fields;
    # they set the real value in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        """Create from dictionary."""
        return cls(
            event_type=EventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence_number=data.get("sequence_number", 0),
            context=data.get("context", {}),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] {self.event_type.value.upper()} {self.context}"


@dataclass
class RollEvent(LogEvent):
    """A skill check roll."""

    roll: int = 0
    bonus: int = 0
    total: int = 0
    difficulty_class: int = 0
    success: bool = False
    skill: Optional[str] = None

    def __post_init__(self):
        self.event_type = EventType.ROLL

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "roll": self.roll,
                "bonus": self.bonus,
                "total": self.total,
                "difficulty_class": self.difficulty_class,
                "success": self.success,
                "skill": self.skill,
            }
        )
        return base

    def __str__(self) -> str:
        outcome = "success" if self.success else "failure"
        return (
            f"[{self.sequence_number}] ROLL d20: {self.roll} + {self.bonus} = {self.total} "
            f"vs DC {self.difficulty_class} ({outcome}, {self.skill})"
        )


@dataclass
class TransitionEvent(LogEvent):
    """A turn phase transition."""

    from_state: str = ""
    to_state: str = ""
    trigger: str = ""

    def __post_init__(self):
        self.event_type = EventType.TRANSITION

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "from_state": self.from_state,
                "to_state": self.to_state,
                "trigger": self.trigger,
            }
        )
        return base

    def __str__(self) -> str:
        return f"[{self.sequence_number}] TRANSITION {self.from_state} -> {self.to_state} ({self.trigger})"


@dataclass
class OracleCallEvent(LogEvent):
    """A request to the oracle and how it went."""

    provider: str = ""
    model: str = ""
    success: bool = True
    message_count: int = 0
    response_length: int = 0
    error: Optional[str] = None

    def __post_init__(self):
        self.event_type = EventType.ORACLE_CALL

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "provider": self.provider,
                "model": self.model,
                "success": self.success,
                "message_count": self.message_count,
                "response_length": self.response_length,
                "error": self.error,
            }
        )
        return base

    def __str__(self) -> str:
        if self.success:
            return (
                f"[{self.sequence_number}] ORACLE {self.provider}/{self.model}: "
                f"{self.message_count} messages -> {self.response_length} chars"
            )
        return f"[{self.sequence_number}] ORACLE {self.provider}/{self.model} FAILED: {self.error}"


@dataclass
class StateDeltaEvent(LogEvent):
    """Changes applied by the state reducer."""

    delta: dict[str, Any] = field(default_factory=dict)
    changes: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.event_type = EventType.STATE_DELTA

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"delta": self.delta, "changes": self.changes})
        return base

    def __str__(self) -> str:
        return f"[{self.sequence_number}] DELTA {'; '.join(self.changes) or 'no changes'}"


DEFAULT_MAX_EVENTS = 5000


class RunLog:
    """
    Event log for one game session.

    Subscribers are called with every event as it is logged; a failing
    subscriber is logged and does not stop the others. Only the most recent
    `max_events` events are kept; sequence numbers keep counting across the
    dropped ones.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS):
        self.max_events = max_events
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._seed: Optional[int] = None
        self._session_start: datetime = datetime.now()
        self._subscribers: list[Callable[[LogEvent], None]] = []

    def reset(self) -> None:
        """Reset the log for a new game."""
        self._events = []
        self._sequence = 0
        self._session_start = datetime.now()
        logger.info("RunLog reset")

    def set_seed(self, seed: Optional[int]) -> None:
        """Record the RNG seed used for this session."""
        self._seed = seed

    def get_seed(self) -> Optional[int]:
        return self._seed

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _log_event(self, event: LogEvent) -> None:
        self._sequence += 1
        event.sequence_number = self._sequence
        self._events.append(event)
        if len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events]

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_roll(
        self,
        roll: int,
        bonus: int,
        total: int,
        difficulty_class: int,
        success: bool,
        skill: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> RollEvent:
        """Log a skill check roll."""
        event = RollEvent(
            roll=roll,
            bonus=bonus,
            total=total,
            difficulty_class=difficulty_class,
            success=success,
            skill=skill,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_transition(
        self,
        from_state: str,
        to_state: str,
        trigger: str,
        context: Optional[dict[str, Any]] = None,
    ) -> TransitionEvent:
        """Log a phase transition."""
        event = TransitionEvent(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_oracle_call(
        self,
        provider: str,
        model: str,
        message_count: int,
        response_length: int = 0,
        success: bool = True,
        error: Optional[str] = None,
    ) -> OracleCallEvent:
        """Log an oracle request."""
        event = OracleCallEvent(
            provider=provider,
            model=model,
            message_count=message_count,
            response_length=response_length,
            success=success,
            error=error,
        )
        self._log_event(event)
        return event

    def log_state_delta(self, delta: dict[str, Any], changes: list[str]) -> StateDeltaEvent:
        """Log the result of applying a state delta."""
        event = StateDeltaEvent(delta=delta, changes=changes)
        self._log_event(event)
        return event

    def log_custom(self, event_name: str, details: dict[str, Any]) -> LogEvent:
        """Log a custom event."""
        event = LogEvent(
            event_type=EventType.CUSTOM,
            context={"event_name": event_name, **details},
        )
        self._log_event(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        since_sequence: int = 0,
    ) -> list[LogEvent]:
        """
        Get logged events.

        Args:
            event_type: Filter by event type (None = all)
            since_sequence: Only events after this sequence number
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_rolls(self) -> list[RollEvent]:
        return [e for e in self._events if isinstance(e, RollEvent)]

    def get_transitions(self) -> list[TransitionEvent]:
        return [e for e in self._events if isinstance(e, TransitionEvent)]

    def get_oracle_calls(self) -> list[OracleCallEvent]:
        return [e for e in self._events if isinstance(e, OracleCallEvent)]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run log."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "total_events": len(self._events),
            "rolls": len(self.get_rolls()),
            "transitions": len(self.get_transitions()),
            "oracle_calls": len(self.get_oracle_calls()),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entire log to a dictionary."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: str) -> None:
        """Save the log to a file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """
        Format the log as a human-readable string.

        Args:
            event_types: Filter by event types (None = all)
            max_events: Maximum number of (most recent) events to include
        """
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Seed: {self._seed if self._seed is not None else 'not set'}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        for event in events:
            lines.append(str(event))

        return "\n".join(lines)
