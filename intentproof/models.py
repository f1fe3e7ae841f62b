"""
Core data model for IntentProof.

Statuses, runtime steps, verification results and the terminal
execution result of one run.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from intentproof.events import IntentEvent


class StepStatus(Enum):
    """Runtime status of a step."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class IntentStatus(Enum):
    """Status of an intent. Nothing in the engine sets CANCELLED."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Allowed forward transitions within one execution pass
_STEP_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.SKIPPED},
    StepStatus.RUNNING: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
    StepStatus.SKIPPED: set(),
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


@dataclass(frozen=True)
class VerificationResult:
    """Verdict of evaluating one check."""
    success: bool
    message: str
    actual: Any = None
    expected: Any = None
    evidence: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "message": self.message,
            "actual": _jsonable(self.actual),
            "expected": _jsonable(self.expected),
            "evidence": list(self.evidence),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Step:
    """A step as tracked during execution."""
    id: str
    name: str
    description: Optional[str] = None
    status: StepStatus = StepStatus.PENDING
    result: Optional[VerificationResult] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[float] = None  # milliseconds
    dependencies: List[str] = field(default_factory=list)
    retry_count: int = 0

    def advance(self, status: StepStatus) -> None:
        """Move to a new status; steps never move backwards."""
        if status not in _STEP_TRANSITIONS[self.status]:
            raise ValueError(
                f"Step '{self.name}' cannot go from {self.status.value} to {status.value}"
            )
        self.status = status

    def reset(self) -> None:
        """Return to pending before a new execution pass."""
        self.status = StepStatus.PENDING
        self.result = None
        self.started_at = None
        self.completed_at = None
        self.duration = None
        self.retry_count = 0

    def snapshot(self) -> "Step":
        return replace(self, dependencies=list(self.dependencies))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "dependencies": list(self.dependencies),
            "retry_count": self.retry_count,
        }


@dataclass
class IntentOptions:
    """Execution options for an intent.

    Timeouts and backoff are in seconds.
    """
    stop_on_failure: bool = True
    verbose: bool = False
    parallel: bool = False
    max_workers: int = 4
    max_retries: int = 0
    retry_backoff: float = 0.5
    timeout: Optional[float] = 30.0

    def validate(self) -> List[str]:
        """Validate the options. Returns list of error messages."""
        errors = []
        for name in ("stop_on_failure", "verbose", "parallel"):
            if not isinstance(getattr(self, name), bool):
                errors.append(f"{name} must be true or false")

        for name in ("max_workers", "max_retries"):
            if not _is_int(getattr(self, name)):
                errors.append(f"{name} must be an integer")
        if _is_int(self.max_workers) and self.max_workers < 1:
            errors.append("max_workers must be at least 1")
        if _is_int(self.max_retries) and self.max_retries < 0:
            errors.append("max_retries must not be negative")

        if not _is_number(self.retry_backoff):
            errors.append("retry_backoff must be a number")
        elif self.retry_backoff < 0:
            errors.append("retry_backoff must not be negative")

        if self.timeout is not None:
            if not _is_number(self.timeout):
                errors.append("timeout must be a number")
            elif self.timeout <= 0:
                errors.append("timeout must be positive")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "stop_on_failure": self.stop_on_failure,
            "verbose": self.verbose,
            "parallel": self.parallel,
            "max_workers": self.max_workers,
            "max_retries": self.max_retries,
            "retry_backoff": self.retry_backoff,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IntentOptions":
        """Deserialize from dictionary. Unknown keys are ignored."""
        defaults = cls()
        return cls(
            stop_on_failure=data.get("stop_on_failure", defaults.stop_on_failure),
            verbose=data.get("verbose", defaults.verbose),
            parallel=data.get("parallel", defaults.parallel),
            max_workers=data.get("max_workers", defaults.max_workers),
            max_retries=data.get("max_retries", defaults.max_retries),
            retry_backoff=data.get("retry_backoff", defaults.retry_backoff),
            timeout=data.get("timeout", defaults.timeout),
        )


@dataclass
class IntentExecutionResult:
    """Terminal artifact of one execute() call."""
    success: bool
    status: IntentStatus
    steps: List[Step] = field(default_factory=list)
    failed_step: Optional[str] = None
    failure_reason: Optional[str] = None
    duration: float = 0.0  # milliseconds
    verification_log: List[VerificationResult] = field(default_factory=list)
    events: List["IntentEvent"] = field(default_factory=list)

    @property
    def completed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == StepStatus.COMPLETED]

    @property
    def failed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == StepStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "failed_step": self.failed_step,
            "failure_reason": self.failure_reason,
            "duration": self.duration,
            "verification_log": [r.to_dict() for r in self.verification_log],
            "events": [e.to_dict() for e in self.events],
        }

    def format_report(self) -> str:
        """Format a human-readable summary."""
        lines = ["=" * 50]
        if self.success:
            lines.append("Intent completed successfully")
            lines.append(f"  Duration: {self.duration:.0f}ms")
            lines.append(f"  Steps completed: {len(self.completed_steps)}/{len(self.steps)}")
        else:
            lines.append("Intent FAILED")
            lines.append(f"  Failed at: {self.failed_step}")
            lines.append(f"  Reason: {self.failure_reason}")
        return "\n".join(lines)
