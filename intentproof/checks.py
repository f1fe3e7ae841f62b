"""
Check definitions for IntentProof.

A check is the mechanism used to observe reality. Every check is one of a
small set of frozen dataclasses, each tagged with a ``kind`` that the engine
uses to pick a verifier. Shapes are inspected exactly once, in ``as_check``,
when a condition or step is declared.

Usage:
    as_check("pytest -q")                 # CommandCheck
    as_check(lambda: os.path.exists(p))   # PredicateCheck
    FileCheck("README.md", contains=("Usage",))
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Union


Predicate = Callable[[], Union[bool, Awaitable[bool]]]
Action = Callable[[], Any]


@dataclass(frozen=True)
class CommandCheck:
    """Run a shell command and match its trimmed stdout."""
    command: str
    cwd: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None  # seconds, None = intent default

    kind = "command"

    def describe(self) -> str:
        return self.command

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "command": self.command,
            "cwd": self.cwd,
            "env": dict(self.env),
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandCheck":
        """Deserialize from dictionary."""
        return cls(
            command=data.get("command", ""),
            cwd=data.get("cwd"),
            env=dict(data.get("env") or {}),
            timeout=data.get("timeout"),
        )


@dataclass(frozen=True)
class PredicateCheck:
    """Call a zero-argument function (sync or async)."""
    fn: Predicate

    kind = "predicate"

    def describe(self) -> str:
        return getattr(self.fn, "__name__", repr(self.fn))


@dataclass(frozen=True)
class FileCheck:
    """Inspect a file on disk: existence, size, mtime and content."""
    path: str
    exists: Optional[bool] = None
    contains: Tuple[str, ...] = ()
    matches: Optional[str] = None  # regular expression
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    modified_after: Optional[datetime] = None
    modified_before: Optional[datetime] = None

    kind = "file"

    def describe(self) -> str:
        return f"file {self.path}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "file": self.path,
            "exists": self.exists,
            "contains": list(self.contains),
            "matches": self.matches,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "modified_after": self.modified_after.isoformat() if self.modified_after else None,
            "modified_before": self.modified_before.isoformat() if self.modified_before else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileCheck":
        """Deserialize from dictionary.

        ``contains`` may be a single string or a list of strings.
        """
        contains = data.get("contains") or ()
        if isinstance(contains, str):
            contains = (contains,)
        return cls(
            path=data.get("file") or data.get("path", ""),
            exists=data.get("exists"),
            contains=tuple(contains),
            matches=data.get("matches"),
            min_size=data.get("min_size"),
            max_size=data.get("max_size"),
            modified_after=_parse_time(data.get("modified_after")),
            modified_before=_parse_time(data.get("modified_before")),
        )


Check = Union[CommandCheck, PredicateCheck, FileCheck]

CHECK_TYPES = (CommandCheck, PredicateCheck, FileCheck)


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def as_check(value: Any) -> Check:
    """Normalize a command string, a callable or a Check into a Check.

    Raises:
        TypeError: If the value has no supported shape
    """
    if isinstance(value, CHECK_TYPES):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise TypeError("Command check must not be empty")
        return CommandCheck(command=value)
    if callable(value):
        return PredicateCheck(fn=value)
    raise TypeError(
        f"Unsupported check: {value!r} (expected command string, callable, "
        "CommandCheck, PredicateCheck or FileCheck)"
    )


@dataclass(frozen=True)
class VerificationCheck:
    """A contract entry: check + expected value + criticality."""
    check: Check
    expected: Any = None
    name: Optional[str] = None
    critical: bool = True

    @property
    def label(self) -> str:
        return self.name or self.check.describe()


@dataclass(frozen=True)
class StepDefinition:
    """Everything needed to execute and verify one step."""
    name: str
    verify: Optional[Check] = None
    expected: Any = None
    description: Optional[str] = None
    dependencies: Tuple[str, ...] = ()  # step ids or names
    action: Optional[Action] = None
    timeout: Optional[float] = None  # seconds
    retries: Optional[int] = None  # overrides IntentOptions.max_retries
