"""
Expectation matching for command output.

Rules are tried in order, first match wins:

    /pattern/      regular expression searched in the output
    >N  <N  =N     integer comparison against the output's leading integer
    true / false   boolean coercion of the output ("true", "1", "yes" are true)
    exit 0         always matches (the command already exited 0)
    success        same as "exit 0"
    contains:TEXT  substring test
    anything else  substring test of the whole expected value
"""

from dataclasses import dataclass
from typing import Any, Optional
import re


# Expected values that make a failing command count as a pass
FAILURE_SENTINELS = ("fails", "error")

_COMPARATOR = re.compile(r"^([<>=])(\d+)$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TRUTHY = ("true", "1", "yes")


@dataclass(frozen=True)
class Match:
    """Outcome of matching output against an expectation."""
    matches: bool
    rule: str

    def __bool__(self) -> bool:
        return self.matches


def normalize_expected(expected: Any) -> Optional[str]:
    """Turn a non-string expectation into its textual form.

    Booleans become "true"/"false" so YAML ``expect: true`` behaves
    like the string form.
    """
    if expected is None:
        return None
    if isinstance(expected, bool):
        return "true" if expected else "false"
    return str(expected)


def parse_int(output: str) -> Optional[int]:
    """Parse the leading integer of the output, or None."""
    m = _LEADING_INT.match(output)
    if not m:
        return None
    return int(m.group(1))


def match_expectation(output: str, expected: str) -> Match:
    """Match command output against an expected value."""
    if len(expected) >= 2 and expected.startswith("/") and expected.endswith("/"):
        try:
            pattern = re.compile(expected[1:-1])
        except re.error:
            return Match(False, "regex")
        return Match(pattern.search(output) is not None, "regex")

    m = _COMPARATOR.match(expected)
    if m:
        operator, wanted = m.group(1), int(m.group(2))
        actual = parse_int(output)
        if actual is None:
            return Match(False, "numeric")
        if operator == ">":
            return Match(actual > wanted, "numeric")
        if operator == "<":
            return Match(actual < wanted, "numeric")
        return Match(actual == wanted, "numeric")

    if expected in ("true", "false"):
        return Match((expected == "true") == (output in _TRUTHY), "boolean")

    if expected in ("exit 0", "success"):
        return Match(True, "exit-status")

    if expected.startswith("contains:"):
        return Match(expected[len("contains:"):] in output, "contains")

    return Match(expected in output, "substring")
