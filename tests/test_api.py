"""
Tests for the convenience builders exported by the package.
"""

from intentproof import (
    ensure_bug_fixed,
    ensure_files_created,
    ensure_tests_pass,
    verify,
)


class TestVerifyHelper:
    """Tests for verify()."""

    def test_all_steps_pass(self):
        """A list of name/verify/expect steps runs as one intent."""
        result = verify("Quick", [
            {"name": "count", "verify": "echo 4", "expect": ">3"},
            {"name": "plain", "verify": "true"},
        ])
        assert result.success is True
        assert len(result.completed_steps) == 2

    def test_failure_reported(self):
        """A failing step fails the helper's result."""
        result = verify("Quick", [{"name": "bad", "verify": "echo 2", "expect": ">3"}])
        assert result.failed_step == "bad"


class TestBuilders:
    """Tests for the ensure_* builders."""

    def test_ensure_tests_pass(self):
        """Passing command before and after gives success."""
        result = ensure_tests_pass("true").execute()
        assert result.success is True
        assert len(result.verification_log) == 2

    def test_ensure_tests_pass_failing(self):
        """A failing test command fails the precondition."""
        result = ensure_tests_pass("exit 1").execute()
        assert result.failed_step == "preconditions"

    def test_ensure_bug_fixed(self, tmp_path):
        """The bug must reproduce before the fix and be gone after."""
        marker = tmp_path / "fixed"
        intent = ensure_bug_fixed(
            "missing marker",
            f"test -f {marker}",
            fix=lambda: marker.write_text("done"),
        )

        result = intent.execute()
        assert result.success is True
        assert intent.goal == "Fix bug: missing marker"

    def test_ensure_bug_fixed_not_reproducing(self, tmp_path):
        """If the bug does not reproduce, the precondition fails."""
        marker = tmp_path / "fixed"
        marker.write_text("already")

        result = ensure_bug_fixed("gone", f"test -f {marker}").execute()
        assert result.failed_step == "preconditions"

    def test_ensure_files_created(self, tmp_path):
        """One step per file, each checking existence."""
        present = tmp_path / "a.txt"
        present.write_text("a")
        missing = tmp_path / "b.txt"

        intent = ensure_files_created([str(present), str(missing)])
        result = intent.execute()

        assert [s.name for s in intent.steps] == [f"Create {present}", f"Create {missing}"]
        assert result.success is False
        assert result.failed_step == f"Create {missing}"
