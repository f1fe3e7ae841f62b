"""
Execution events.

Each run produces an ordered list of IntentEvent records. The engine yields
them to whoever iterates the run; nothing is broadcast to listeners.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class EventType(Enum):
    """Kinds of execution events."""
    START = "start"
    PHASE = "phase"
    STEP_START = "step:start"
    STEP_RETRY = "step:retry"
    STEP_COMPLETE = "step:complete"
    STEP_FAILED = "step:failed"
    STEP_SKIPPED = "step:skipped"
    CHECK_FAILED = "check:failed"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_EVENTS = (EventType.COMPLETE, EventType.FAILED)


@dataclass(frozen=True)
class IntentEvent:
    """One state transition observed during a run."""
    type: EventType
    sequence: int
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def name(self) -> str:
        return self.type.value

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "type": self.type.value,
            "sequence": self.sequence,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
        }

    def format(self) -> str:
        """One-line human description."""
        step = self.data.get("step")
        if self.type == EventType.START:
            return f"Executing intent: {self.data.get('goal')} ({self.data.get('steps')} steps)"
        if self.type == EventType.PHASE:
            return f"{str(self.data.get('phase', '')).capitalize()}:"
        if self.type == EventType.STEP_START:
            return f"  Running: {step}"
        if self.type == EventType.STEP_RETRY:
            return f"  ↻ {step}: retry {self.data.get('attempt')} ({self.data.get('reason')})"
        if self.type == EventType.STEP_COMPLETE:
            return f"  ✓ {step} ({self.data.get('duration', 0):.0f}ms)"
        if self.type == EventType.STEP_FAILED:
            return f"  ✗ {step}: {self.data.get('reason')}"
        if self.type == EventType.STEP_SKIPPED:
            return f"  ○ {step}: {self.data.get('reason')}"
        if self.type == EventType.CHECK_FAILED:
            return f"  ! {self.data.get('check')}: {self.data.get('reason')} (non-critical)"
        if self.type == EventType.COMPLETE:
            return f"Completed in {self.data.get('duration', 0):.0f}ms"
        return f"Failed in {self.data.get('phase')}: {self.data.get('reason')}"


class EventLog:
    """Ordered, append-only event sequence for one run."""

    def __init__(self):
        self.events = []

    def record(self, event_type: EventType, **data: Any) -> IntentEvent:
        event = IntentEvent(type=event_type, sequence=len(self.events), data=data)
        self.events.append(event)
        return event

    def __iter__(self):
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def of_type(self, event_type: EventType):
        return [e for e in self.events if e.type == event_type]
