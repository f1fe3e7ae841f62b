"""
Tool dispatch for remote callers.

Exposes the engine as five named tools a caller (for example an AI
assistant integration) can list and invoke with JSON-style arguments:

    intent_declare      declare goal, preconditions, steps, postconditions
    intent_step         add a step to the current intent
    intent_verify       execute and verify an intent
    intent_quick_check  verify one command without declaring an intent
    intent_status       show an intent's progress

The transport that carries these calls is not part of this module.

Usage:
    session = IntentSession()
    session.dispatch("intent_declare", {"goal": "Fix bug", "steps": [...]})
    response = session.dispatch("intent_verify", {})
    print(response.text)
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

from intentproof.engine import Intent, create_intent
from intentproof.loader import IntentFileError, intent_from_dict

logger = logging.getLogger(__name__)


_CONDITION_ITEMS = {
    "type": "object",
    "properties": {
        "check": {"type": "string"},
        "expect": {"type": "string"},
    },
}

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "intent_declare",
        "description": "Declare an intent before taking action. This ensures claims can be verified.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "goal": {"type": "string", "description": "What you intend to accomplish"},
                "preconditions": {
                    "type": "array",
                    "description": "Conditions that must be true before starting",
                    "items": _CONDITION_ITEMS,
                },
                "steps": {
                    "type": "array",
                    "description": "Verifiable steps to accomplish the goal",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "verify": {"type": "string"},
                            "expect": {"type": "string"},
                        },
                        "required": ["name", "verify"],
                    },
                },
                "postconditions": {
                    "type": "array",
                    "description": "Conditions that must be true after completion",
                    "items": _CONDITION_ITEMS,
                },
            },
            "required": ["goal", "steps"],
        },
    },
    {
        "name": "intent_verify",
        "description": "Execute and verify the current intent. Returns success only if all verifications pass.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "intentId": {
                    "type": "string",
                    "description": "Optional intent ID. Uses current intent if not provided.",
                },
            },
        },
    },
    {
        "name": "intent_step",
        "description": "Add a verification step to the current intent",
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Step name"},
                "verify": {"type": "string", "description": "Verification command"},
                "expect": {"type": "string", "description": "Expected output"},
            },
            "required": ["name", "verify"],
        },
    },
    {
        "name": "intent_quick_check",
        "description": "Quick verification of a single command without creating a full intent",
        "inputSchema": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Command to verify"},
                "expect": {"type": "string", "description": "Expected output"},
            },
            "required": ["command"],
        },
    },
    {
        "name": "intent_status",
        "description": "Get the current status of an intent",
        "inputSchema": {
            "type": "object",
            "properties": {
                "intentId": {
                    "type": "string",
                    "description": "Optional intent ID. Uses current intent if not provided.",
                },
            },
        },
    },
]


@dataclass
class ToolResponse:
    """Text returned to the caller of a tool."""
    text: str
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            data["isError"] = True
        return data


class IntentSession:
    """Active intents for one caller, plus the current one."""

    def __init__(self):
        self.intents: Dict[str, Intent] = {}
        self.current: Optional[Intent] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], ToolResponse]] = {
            "intent_declare": self.declare,
            "intent_verify": self.verify,
            "intent_step": self.add_step,
            "intent_quick_check": self.quick_check,
            "intent_status": self.status,
        }

    def list_tools(self) -> List[Dict[str, Any]]:
        return list(TOOLS)

    def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Invoke a tool by name. Errors come back as error responses."""
        handler = self._handlers.get(name)
        if handler is None:
            return ToolResponse(f"Unknown tool: {name}", is_error=True)
        try:
            return handler(arguments or {})
        except (IntentFileError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Tool {name} failed: {e}")
            return ToolResponse(f"Error: {e}", is_error=True)

    def _resolve(self, arguments: Dict[str, Any]) -> Optional[Intent]:
        intent_id = arguments.get("intentId") or (self.current.id if self.current else None)
        if not intent_id:
            return None
        return self.intents.get(intent_id)

    def declare(self, arguments: Dict[str, Any]) -> ToolResponse:
        intent = intent_from_dict(arguments)
        self.intents[intent.id] = intent
        self.current = intent
        return ToolResponse(
            f"Intent declared: {intent.goal}\n"
            f"ID: {intent.id}\n"
            f"Steps: {len(intent.steps)}\n\n"
            "Use intent_verify to execute and verify all steps."
        )

    def add_step(self, arguments: Dict[str, Any]) -> ToolResponse:
        if self.current is None:
            return ToolResponse("✗ No current intent. Use intent_declare first.")
        self.current.step(
            arguments["name"],
            verify=arguments["verify"],
            expected=arguments.get("expect"),
        )
        return ToolResponse(f"✓ Step added: {arguments['name']}")

    def verify(self, arguments: Dict[str, Any]) -> ToolResponse:
        if not arguments.get("intentId") and self.current is None:
            return ToolResponse("✗ No intent declared. Use intent_declare first.")
        intent = self._resolve(arguments)
        if intent is None:
            return ToolResponse(f"✗ Intent not found: {arguments.get('intentId')}")

        result = intent.execute()
        lines = [f"Intent: {intent.goal}", "═" * 40, ""]
        if result.success:
            lines.append("✓ VERIFIED - All checks passed!")
            lines.append("")
            lines.append(f"Duration: {result.duration:.0f}ms")
            lines.append(f"Steps completed: {len(result.completed_steps)}/{len(result.steps)}")
        else:
            lines.append("✗ FAILED - Verification failed")
            lines.append("")
            lines.append(f"Failed at: {result.failed_step}")
            lines.append(f"Reason: {result.failure_reason}")
            lines.append("")
            lines.append("DO NOT claim this task is complete!")
        lines.append("")
        lines.append(intent.visualize())
        return ToolResponse("\n".join(lines))

    def quick_check(self, arguments: Dict[str, Any]) -> ToolResponse:
        command = arguments["command"]
        result = (
            create_intent("Quick check")
            .step("Verify", verify=command, expected=arguments.get("expect"))
            .execute()
        )
        if result.success:
            return ToolResponse(f"✓ Verification passed: {command}")
        return ToolResponse(f"✗ Verification failed: {result.failure_reason}")

    def status(self, arguments: Dict[str, Any]) -> ToolResponse:
        if not arguments.get("intentId") and self.current is None:
            return ToolResponse("No intent active")
        intent = self._resolve(arguments)
        if intent is None:
            return ToolResponse(f"Intent not found: {arguments.get('intentId')}")
        return ToolResponse(intent.visualize())
