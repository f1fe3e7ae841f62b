"""
IntentProof - contract-based verification of declared work.

Declare a goal, the conditions that must hold before and after, and the
steps that get you there. IntentProof runs real checks (commands,
predicates, file inspections) and reports success only when every check
that ran actually passed.

    from intentproof import create_intent

    result = (
        create_intent("Create test file")
        .step("Create file", action=write_file, verify="test -f /tmp/test.txt")
        .step("Verify content", verify="cat /tmp/test.txt", expected="IntentProof works!")
        .ensures("test -f /tmp/test.txt")
        .execute()
    )
"""

__version__ = "0.1.0"

from typing import Any, Dict, List, Optional, Sequence

from intentproof.checks import (
    CommandCheck,
    FileCheck,
    PredicateCheck,
    StepDefinition,
    VerificationCheck,
    as_check,
)
from intentproof.engine import Intent, IntentRun, create_intent
from intentproof.events import EventType, IntentEvent
from intentproof.graph import CircularDependencyError, DuplicateStepError
from intentproof.matcher import match_expectation
from intentproof.models import (
    IntentExecutionResult,
    IntentOptions,
    IntentStatus,
    Step,
    StepStatus,
    VerificationResult,
)
from intentproof.verifiers import (
    CommandVerifier,
    FileVerifier,
    PredicateVerifier,
    StateVerifier,
)


def verify(goal: str, steps: Sequence[Dict[str, Any]]) -> IntentExecutionResult:
    """Run a one-off intent made of {name, verify, expect} steps."""
    intent = create_intent(goal)
    for step in steps:
        intent.step(step["name"], verify=step["verify"], expected=step.get("expect"))
    return intent.execute()


def ensure_tests_pass(test_command: str = "pytest") -> Intent:
    """Intent that the test suite passes before and after."""
    return (
        create_intent("Ensure tests pass")
        .requires(test_command, "exit 0")
        .ensures(test_command, "exit 0")
    )


def ensure_bug_fixed(
    bug_description: str,
    verification_command: str,
    expected_output: Optional[str] = None,
    fix: Any = None,
) -> Intent:
    """Intent that a reproducing command fails first and succeeds after the fix."""
    return (
        create_intent(f"Fix bug: {bug_description}")
        .requires(verification_command, "fails", name="Bug reproduces")
        .step("Apply fix", action=fix, verify=lambda: True)
        .ensures(verification_command, expected_output or "success", name="Bug fixed")
    )


def ensure_files_created(files: List[str]) -> Intent:
    """Intent with one existence step per file."""
    intent = create_intent("Create required files")
    for path in files:
        intent.step(f"Create {path}", verify=FileCheck(path, exists=True))
    return intent


__all__ = [
    "CircularDependencyError",
    "CommandCheck",
    "CommandVerifier",
    "DuplicateStepError",
    "EventType",
    "FileCheck",
    "FileVerifier",
    "Intent",
    "IntentEvent",
    "IntentExecutionResult",
    "IntentOptions",
    "IntentRun",
    "IntentStatus",
    "PredicateCheck",
    "PredicateVerifier",
    "StateVerifier",
    "Step",
    "StepDefinition",
    "StepStatus",
    "VerificationCheck",
    "VerificationResult",
    "as_check",
    "create_intent",
    "ensure_bug_fixed",
    "ensure_files_created",
    "ensure_tests_pass",
    "match_expectation",
    "verify",
]
