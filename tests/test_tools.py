"""
Tests for tool dispatch.
"""

from intentproof.tools import TOOLS, IntentSession, ToolResponse


def _declare(session, **extra):
    args = {"goal": "Fix bug", "steps": [{"name": "Check", "verify": "echo fixed", "expect": "fixed"}]}
    args.update(extra)
    return session.dispatch("intent_declare", args)


class TestToolList:
    """Tests for the tool catalogue."""

    def test_tool_names(self):
        """Five tools are exposed."""
        names = [t["name"] for t in IntentSession().list_tools()]
        assert names == [
            "intent_declare",
            "intent_verify",
            "intent_step",
            "intent_quick_check",
            "intent_status",
        ]

    def test_schemas(self):
        """Every tool has an object input schema."""
        for tool in TOOLS:
            assert tool["inputSchema"]["type"] == "object"
            assert tool["description"]

    def test_unknown_tool(self):
        """Unknown names produce an error response."""
        response = IntentSession().dispatch("intent_destroy", {})
        assert response.is_error is True
        assert response.text == "Unknown tool: intent_destroy"


class TestDeclareAndVerify:
    """Tests for the declare and verify flow."""

    def test_declare(self):
        """Declaring stores the intent as current."""
        session = IntentSession()
        response = _declare(session)

        assert response.is_error is False
        assert response.text.startswith("Intent declared: Fix bug")
        assert f"ID: {session.current.id}" in response.text
        assert "Steps: 1" in response.text
        assert session.intents[session.current.id] is session.current

    def test_declare_invalid(self):
        """An invalid declaration is an error response."""
        response = IntentSession().dispatch("intent_declare", {"steps": []})
        assert response.is_error is True
        assert response.text.startswith("Error:")
        assert "goal is required" in response.text

    def test_verify_success(self):
        """A passing intent is reported as verified."""
        session = IntentSession()
        _declare(session)
        response = session.dispatch("intent_verify", {})

        assert "✓ VERIFIED - All checks passed!" in response.text
        assert "Steps completed: 1/1" in response.text

    def test_verify_failure(self):
        """A failing intent warns against claiming completion."""
        session = IntentSession()
        session.dispatch("intent_declare", {"goal": "Broken", "steps": [{"name": "Fail", "verify": "exit 1"}]})
        response = session.dispatch("intent_verify", {})

        assert "✗ FAILED - Verification failed" in response.text
        assert "Failed at: Fail" in response.text
        assert "DO NOT claim this task is complete!" in response.text

    def test_verify_without_intent(self):
        """Verify needs a declared intent."""
        response = IntentSession().dispatch("intent_verify", {})
        assert response.text == "✗ No intent declared. Use intent_declare first."

    def test_verify_by_id(self):
        """A specific intent can be verified by id."""
        session = IntentSession()
        _declare(session)
        first_id = session.current.id
        session.dispatch("intent_declare", {"goal": "Other", "steps": [{"name": "Fail", "verify": "exit 1"}]})

        response = session.dispatch("intent_verify", {"intentId": first_id})
        assert "✓ VERIFIED" in response.text

        missing = session.dispatch("intent_verify", {"intentId": "nope"})
        assert missing.text == "✗ Intent not found: nope"


class TestStepsAndChecks:
    """Tests for adding steps, quick checks and status."""

    def test_add_step(self):
        """Steps are appended to the current intent."""
        session = IntentSession()
        _declare(session)
        response = session.dispatch("intent_step", {"name": "More", "verify": "true"})

        assert response.text == "✓ Step added: More"
        assert [s.name for s in session.current.steps] == ["Check", "More"]

    def test_add_step_without_intent(self):
        """Adding a step needs a declared intent."""
        response = IntentSession().dispatch("intent_step", {"name": "x", "verify": "true"})
        assert response.text == "✗ No current intent. Use intent_declare first."

    def test_add_duplicate_step(self):
        """A duplicate name is an error response."""
        session = IntentSession()
        _declare(session)
        response = session.dispatch("intent_step", {"name": "Check", "verify": "true"})
        assert response.is_error is True
        assert "Duplicate step name: Check" in response.text

    def test_quick_check(self):
        """Quick checks report pass or fail."""
        session = IntentSession()
        passed = session.dispatch("intent_quick_check", {"command": "echo 5", "expect": ">3"})
        assert passed.text == "✓ Verification passed: echo 5"

        failed = session.dispatch("intent_quick_check", {"command": "echo 5", "expect": ">10"})
        assert failed.text == "✗ Verification failed: Output does not match"

    def test_quick_check_missing_command(self):
        """A missing argument is an error response."""
        response = IntentSession().dispatch("intent_quick_check", {})
        assert response.is_error is True

    def test_status(self):
        """Status shows the intent summary."""
        session = IntentSession()
        assert session.dispatch("intent_status").text == "No intent active"

        _declare(session)
        response = session.dispatch("intent_status", {})
        assert "Intent: Fix bug" in response.text
        assert session.dispatch("intent_status", {"intentId": "nope"}).text == "Intent not found: nope"


class TestToolResponse:
    """Tests for ToolResponse."""

    def test_to_dict(self):
        """Responses serialize to text content blocks."""
        assert ToolResponse("ok").to_dict() == {"content": [{"type": "text", "text": "ok"}]}
        assert ToolResponse("bad", is_error=True).to_dict()["isError"] is True
