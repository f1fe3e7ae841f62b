"""
Tests for the verification backends.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from intentproof.checks import CommandCheck, FileCheck, PredicateCheck
from intentproof.verifiers import (
    CommandVerifier,
    FileVerifier,
    PredicateVerifier,
    StateVerifier,
    run_callable,
)


class TestCommandVerifier:
    """Tests for CommandVerifier."""

    def test_success_without_expectation(self):
        """Exit 0 with no expectation passes."""
        result = CommandVerifier().verify(CommandCheck("echo hello"))
        assert result.success is True
        assert result.actual == "hello"
        assert result.message == "Command executed successfully"

    def test_output_is_trimmed_and_matched(self):
        """Should match trimmed stdout against the expectation."""
        result = CommandVerifier().verify(CommandCheck("echo '  hello  '"), "hello")
        assert result.success is True
        assert result.actual == "hello"
        assert "Rule: substring" in result.evidence

    def test_output_mismatch(self):
        """Should fail when output does not match."""
        result = CommandVerifier().verify(CommandCheck("echo hello"), "goodbye")
        assert result.success is False
        assert result.message == "Output does not match"
        assert result.expected == "goodbye"

    def test_nonzero_exit_fails(self):
        """A failing command is a failed verification."""
        result = CommandVerifier().verify(CommandCheck("exit 1"))
        assert result.success is False
        assert result.message.startswith("Command failed: exit code 1")

    def test_nonzero_exit_message_carries_stderr(self):
        """Should include stderr in the failure message."""
        result = CommandVerifier().verify(CommandCheck("echo oops >&2; exit 2"))
        assert result.success is False
        assert "exit code 2" in result.message
        assert "oops" in result.message

    @pytest.mark.parametrize("sentinel", ["fails", "error"])
    def test_expected_failure(self, sentinel):
        """A failing command passes when failure was expected."""
        result = CommandVerifier().verify(CommandCheck("exit 1"), sentinel)
        assert result.success is True
        assert result.message == "Command failed as expected"

    def test_expected_failure_with_successful_command(self):
        """'fails' against a succeeding command is a plain substring test."""
        result = CommandVerifier().verify(CommandCheck("echo ok"), "fails")
        assert result.success is False

    def test_working_directory(self, tmp_path):
        """Should run in the check's working directory."""
        (tmp_path / "marker.txt").write_text("found")
        result = CommandVerifier().verify(CommandCheck("cat marker.txt", cwd=str(tmp_path)), "found")
        assert result.success is True

    def test_missing_working_directory(self, tmp_path):
        """Should fail, not raise, when the directory is missing."""
        check = CommandCheck("true", cwd=str(tmp_path / "missing"))
        result = CommandVerifier().verify(check)
        assert result.success is False
        assert result.message.startswith("Command failed:")

    def test_environment_overrides(self):
        """Should merge env overrides into the environment."""
        check = CommandCheck("echo $GREETING", env={"GREETING": "hi there"})
        result = CommandVerifier().verify(check, "hi there")
        assert result.success is True

    def test_timeout(self):
        """Should fail when the command outlives its timeout."""
        result = CommandVerifier().verify(CommandCheck("sleep 5", timeout=0.2))
        assert result.success is False
        assert "timed out" in result.message

    def test_timeout_counts_as_expected_error(self):
        """A timed out command satisfies an 'error' expectation."""
        result = CommandVerifier(default_timeout=0.2).verify(CommandCheck("sleep 5"), "error")
        assert result.success is True

    def test_boolean_expectation(self):
        """Should normalize a bool expectation to 'true'."""
        result = CommandVerifier().verify(CommandCheck("echo yes"), True)
        assert result.success is True

    def test_undecodable_output_is_replaced(self):
        """Bytes that are not UTF-8 do not turn a passing command into a failure."""
        result = CommandVerifier().verify(CommandCheck("printf 'ok\\377'"), "ok")
        assert result.success is True
        assert result.actual.startswith("ok")

    def test_numeric_expectation(self):
        """Should apply the numeric comparator."""
        result = CommandVerifier().verify(CommandCheck("echo 5"), ">3")
        assert result.success is True
        assert "Rule: numeric" in result.evidence


class TestPredicateVerifier:
    """Tests for PredicateVerifier."""

    def test_truthy_without_expectation(self):
        """Should pass on a truthy value."""
        result = PredicateVerifier().verify(PredicateCheck(lambda: "non-empty"))
        assert result.success is True
        assert result.message == "Function verification passed"
        assert result.expected is True

    def test_falsy_without_expectation(self):
        """Should fail on a falsy value."""
        result = PredicateVerifier().verify(PredicateCheck(lambda: 0))
        assert result.success is False
        assert result.message == "Function verification failed"

    def test_explicit_expectation(self):
        """Should compare with an explicit expected value."""
        assert PredicateVerifier().verify(PredicateCheck(lambda: 42), 42).success is True
        assert PredicateVerifier().verify(PredicateCheck(lambda: 41), 42).success is False

    def test_boolean_expectation_is_exact(self):
        """1 is not exactly True."""
        assert PredicateVerifier().verify(PredicateCheck(lambda: 1), True).success is False
        assert PredicateVerifier().verify(PredicateCheck(lambda: False), False).success is True

    def test_exception_becomes_failure(self):
        """Should report a raised error instead of re-raising."""
        def boom():
            raise RuntimeError("boom")

        result = PredicateVerifier().verify(PredicateCheck(boom))
        assert result.success is False
        assert result.message == "Function threw error: boom"

    def test_async_predicate(self):
        """Should await coroutine results."""
        async def ready():
            await asyncio.sleep(0)
            return True

        result = PredicateVerifier().verify(PredicateCheck(ready))
        assert result.success is True

    def test_async_predicate_timeout(self):
        """Should fail when an async predicate exceeds the timeout."""
        async def slow():
            await asyncio.sleep(5)
            return True

        result = PredicateVerifier().verify(PredicateCheck(slow), timeout=0.05)
        assert result.success is False
        assert result.message.startswith("Function threw error")

    def test_async_predicate_inside_running_loop(self):
        """Async predicates still run when the caller already has a loop."""
        async def ready():
            await asyncio.sleep(0)
            return True

        async def main():
            return PredicateVerifier().verify(PredicateCheck(ready))

        result = asyncio.run(main())
        assert result.success is True
        assert result.message == "Function verification passed"

    def test_run_callable_plain(self):
        """Should return plain values unchanged."""
        assert run_callable(lambda: "value") == "value"


class TestFileVerifier:
    """Tests for FileVerifier."""

    def test_missing_file(self, tmp_path):
        """Should fail when the file is absent."""
        result = FileVerifier().verify(FileCheck(str(tmp_path / "nope.txt")))
        assert result.success is False
        assert result.message.startswith("File not found")

    def test_expected_absent(self, tmp_path):
        """Should pass when absence was expected."""
        result = FileVerifier().verify(FileCheck(str(tmp_path / "nope.txt"), exists=False))
        assert result.success is True
        assert result.message == "File does not exist as expected"

    def test_expected_present_but_missing(self, tmp_path):
        """Should name the missing file."""
        result = FileVerifier().verify(FileCheck(str(tmp_path / "nope.txt"), exists=True))
        assert result.success is False
        assert result.message.startswith("File does not exist")

    def test_should_not_exist(self, tmp_path):
        """Should fail when a file that should be gone is present."""
        path = tmp_path / "present.txt"
        path.write_text("x")
        result = FileVerifier().verify(FileCheck(str(path), exists=False))
        assert result.success is False
        assert result.message.startswith("File should not exist")

    def test_size_bounds(self, tmp_path):
        """Should enforce min and max size."""
        path = tmp_path / "data.txt"
        path.write_text("12345")

        too_small = FileVerifier().verify(FileCheck(str(path), min_size=10))
        assert too_small.success is False
        assert "too small" in too_small.message

        too_large = FileVerifier().verify(FileCheck(str(path), max_size=2))
        assert too_large.success is False
        assert "too large" in too_large.message

        ok = FileVerifier().verify(FileCheck(str(path), min_size=1, max_size=10))
        assert ok.success is True
        assert "File size: 5 bytes" in ok.evidence

    def test_modified_bounds(self, tmp_path):
        """Should enforce modification time bounds."""
        path = tmp_path / "data.txt"
        path.write_text("x")

        future = datetime.now() + timedelta(days=1)
        past = datetime.now() - timedelta(days=1)

        assert FileVerifier().verify(FileCheck(str(path), modified_after=future)).success is False
        assert FileVerifier().verify(FileCheck(str(path), modified_before=past)).success is False
        assert FileVerifier().verify(
            FileCheck(str(path), modified_after=past, modified_before=future)
        ).success is True

    def test_contains(self, tmp_path):
        """Should require every substring and record evidence."""
        path = tmp_path / "module.py"
        path.write_text("def feature():\n    return 1\n")

        result = FileVerifier().verify(FileCheck(str(path), contains=("def feature", "return")))
        assert result.success is True
        assert 'Contains: "def feature"' in result.evidence
        assert 'Contains: "return"' in result.evidence

        missing = FileVerifier().verify(FileCheck(str(path), contains=("class Feature",)))
        assert missing.success is False
        assert missing.message == 'File does not contain: "class Feature"'

    def test_matches(self, tmp_path):
        """Should search the pattern in the content."""
        path = tmp_path / "version.txt"
        path.write_text("version = 1.2.3\n")

        assert FileVerifier().verify(FileCheck(str(path), matches=r"\d+\.\d+\.\d+")).success is True
        failed = FileVerifier().verify(FileCheck(str(path), matches=r"^release"))
        assert failed.success is False
        assert failed.message.startswith("File does not match pattern")


class TestStateVerifier:
    """Tests for StateVerifier."""

    def test_missing_snapshot(self):
        """Should fail for an unknown key."""
        result = StateVerifier().verify("config")
        assert result.success is False
        assert result.message == "No snapshot found for key: config"

    def test_snapshot_exists(self):
        """Should pass with no expectation once snapshotted."""
        state = StateVerifier()
        state.snapshot("config", {"debug": True})
        assert state.verify("config").success is True

    def test_snapshot_is_deep_copy(self):
        """Later mutation of the source must not change the snapshot."""
        state = StateVerifier()
        value = {"items": [1, 2]}
        state.snapshot("before", value)
        value["items"].append(3)

        assert state.verify("before", {"items": [1, 2]}).success is True

    def test_structural_comparison(self):
        """Key order does not matter, values do."""
        state = StateVerifier()
        state.snapshot("config", {"a": 1, "b": {"c": 2}})

        assert state.verify("config", {"b": {"c": 2}, "a": 1}).success is True
        result = state.verify("config", {"a": 1, "b": {"c": 3}})
        assert result.success is False
        assert result.message == "State does not match"

    def test_diff(self):
        """Should compare two stored snapshots."""
        state = StateVerifier()
        state.snapshot("before", [1, 2, 3])
        state.snapshot("same", [1, 2, 3])
        state.snapshot("after", [1, 2])

        assert state.diff("before", "same").message == "States are identical"
        changed = state.diff("before", "after")
        assert changed.success is False
        assert changed.message == "States differ"

    def test_diff_missing(self):
        """Should fail when either snapshot is missing."""
        state = StateVerifier()
        state.snapshot("before", 1)
        assert state.diff("before", "after").message == "Missing snapshots for comparison"
