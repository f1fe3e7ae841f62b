"""
Intent definition files.

Intents can be declared in JSON or YAML (chosen by file extension):

    goal: Create and test a new feature
    options:
      stop_on_failure: true
    preconditions:
      - check: test -d src
        name: Source directory exists
    steps:
      - name: Create feature file
        verify: {file: src/feature.py, contains: ["def feature"]}
      - name: Tests pass
        verify: pytest tests/test_feature.py
        expect: passed
        dependencies: [Create feature file]
    postconditions:
      - check: python -m compileall -q src
        expect: exit 0

A check is a command string, a ``{command, cwd, env, timeout}`` mapping or
a ``{file, exists, contains, matches, min_size, max_size}`` mapping.
Predicates cannot be expressed in files.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import os

import yaml

from intentproof.checks import Check, CommandCheck, FileCheck, as_check
from intentproof.config import ProjectConfig
from intentproof.engine import Intent
from intentproof.models import IntentOptions

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")

CONDITION_SECTIONS = ("preconditions", "postconditions", "invariants")


class IntentFileError(ValueError):
    """Raised when an intent definition is malformed."""
    def __init__(self, message: str, path: Optional[str] = None, details: Optional[List[str]] = None):
        self.message = message
        self.path = path
        self.details = details or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.path:
            msg = f"{self.path}: {msg}"
        if self.details:
            msg += "\n  - " + "\n  - ".join(self.details)
        return msg


def _check_errors(value: Any, where: str) -> List[str]:
    if isinstance(value, str):
        return [] if value.strip() else [f"{where}: command must not be empty"]
    if isinstance(value, dict):
        if value.get("command"):
            return []
        if value.get("file") or value.get("path"):
            return []
        return [f"{where}: mapping needs a 'command' or 'file' key"]
    return [f"{where}: must be a command string or a mapping"]


def validate_intent_data(data: Any) -> List[str]:
    """Validate a parsed intent definition. Returns list of error messages."""
    if not isinstance(data, dict):
        return ["intent definition must be a mapping"]

    errors = []
    goal = data.get("goal")
    if not isinstance(goal, str) or not goal.strip():
        errors.append("goal is required")

    options = data.get("options", {})
    if not isinstance(options, dict):
        errors.append("options must be a mapping")
    else:
        errors.extend(f"options: {e}" for e in IntentOptions.from_dict(options).validate())

    for section in CONDITION_SECTIONS:
        entries = data.get(section) or []
        if not isinstance(entries, list):
            errors.append(f"{section} must be a list")
            continue
        for i, entry in enumerate(entries):
            where = f"{section}[{i}]"
            if isinstance(entry, str):
                errors.extend(_check_errors(entry, where))
            elif isinstance(entry, dict):
                errors.extend(_check_errors(entry.get("check"), f"{where}.check"))
            else:
                errors.append(f"{where}: must be a command string or a mapping")

    steps = data.get("steps") or []
    if not isinstance(steps, list):
        errors.append("steps must be a list")
        return errors

    names = [s.get("name") for s in steps if isinstance(s, dict)]
    seen = set()
    for i, step in enumerate(steps):
        where = f"steps[{i}]"
        if not isinstance(step, dict):
            errors.append(f"{where}: must be a mapping")
            continue
        name = step.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{where}: name is required")
        elif name in seen:
            errors.append(f"{where}: duplicate step name '{name}'")
        seen.add(name)
        if "verify" not in step:
            errors.append(f"{where}: verify is required")
        else:
            errors.extend(_check_errors(step["verify"], f"{where}.verify"))
        dependencies = step.get("dependencies") or []
        if not isinstance(dependencies, list):
            errors.append(f"{where}: dependencies must be a list")
            continue
        for dep in dependencies:
            if dep not in names:
                errors.append(f"{where}: dependency '{dep}' does not name a step")

    return errors


def parse_check(value: Any, base_dir: Optional[str] = None) -> Check:
    """Turn a file-level check value into a Check.

    Relative file paths and missing working directories resolve
    against base_dir when one is given.
    """
    if isinstance(value, dict):
        if value.get("command"):
            check = CommandCheck.from_dict(value)
            if base_dir and not check.cwd:
                check = CommandCheck(check.command, base_dir, check.env, check.timeout)
            elif base_dir and not os.path.isabs(check.cwd):
                check = CommandCheck(check.command, os.path.join(base_dir, check.cwd), check.env, check.timeout)
            return check
        check = FileCheck.from_dict(value)
        if base_dir and not os.path.isabs(check.path):
            data = dict(value, file=os.path.join(base_dir, check.path))
            data.pop("path", None)
            check = FileCheck.from_dict(data)
        return check

    check = as_check(value)
    if base_dir and isinstance(check, CommandCheck):
        check = CommandCheck(check.command, cwd=base_dir)
    return check


def intent_from_dict(
    data: Dict[str, Any],
    config: Optional[ProjectConfig] = None,
    base_dir: Optional[str] = None,
) -> Intent:
    """Build an Intent from a parsed definition.

    Raises:
        IntentFileError: If the definition is invalid
    """
    errors = validate_intent_data(data)
    if errors:
        raise IntentFileError("Invalid intent definition", details=errors)

    config = config or ProjectConfig()
    options = config.to_options(data.get("options"))
    # Project config values are only checked once merged
    errors = options.validate()
    if errors:
        raise IntentFileError("Invalid intent options", details=errors)
    intent = Intent(data["goal"], options)

    def add_conditions(section: str, add) -> None:
        for entry in data.get(section) or []:
            if isinstance(entry, str):
                entry = {"check": entry}
            kwargs = {"name": entry.get("name")}
            if section != "invariants":
                kwargs["critical"] = entry.get("critical", True)
            add(parse_check(entry["check"], base_dir), entry.get("expect"), **kwargs)

    add_conditions("preconditions", intent.requires)
    add_conditions("invariants", intent.invariant)

    for step in data.get("steps") or []:
        intent.step(
            step["name"],
            verify=parse_check(step["verify"], base_dir),
            expected=step.get("expect"),
            description=step.get("description"),
            dependencies=step.get("dependencies"),
            timeout=step.get("timeout"),
            retries=step.get("retries"),
        )

    add_conditions("postconditions", intent.ensures)

    logger.debug(f"Loaded intent '{intent.goal}' with {len(intent.steps)} steps")
    return intent


def read_intent_data(path: str) -> Dict[str, Any]:
    """Read a JSON or YAML intent file.

    Raises:
        FileNotFoundError: If the file does not exist
        IntentFileError: If the file cannot be parsed
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Intent file not found: {path}")

    with open(p) as f:
        try:
            if p.suffix.lower() in YAML_SUFFIXES:
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise IntentFileError(f"Could not parse intent file: {e}", path=str(p))
    return data


def load_intent_file(
    path: str,
    config: Optional[ProjectConfig] = None,
    base_dir: Optional[str] = None,
) -> Intent:
    """Load an Intent from a JSON or YAML file."""
    data = read_intent_data(path)
    try:
        return intent_from_dict(data, config, base_dir)
    except IntentFileError as e:
        raise IntentFileError(e.message, path=str(path), details=e.details)


def example_intent() -> Dict[str, Any]:
    """Example definition written by `intentproof init`."""
    return {
        "goal": "Create and test a new feature",
        "options": {
            "stop_on_failure": True,
        },
        "preconditions": [
            {
                "name": "Source directory exists",
                "check": "test -d src",
            }
        ],
        "steps": [
            {
                "name": "Create feature file",
                "verify": {"file": "src/feature.py", "exists": True},
            },
            {
                "name": "Create test file",
                "verify": {"file": "tests/test_feature.py", "contains": ["def test_"]},
            },
            {
                "name": "Tests pass",
                "verify": "pytest tests/test_feature.py",
                "expect": "passed",
                "dependencies": ["Create feature file", "Create test file"],
            },
        ],
        "postconditions": [
            {
                "name": "Package compiles",
                "check": "python -m compileall -q src",
                "expect": "exit 0",
            }
        ],
    }


def dump_intent_data(data: Dict[str, Any], fmt: str = "json") -> str:
    """Serialize an intent definition as JSON or YAML text."""
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False)
    return json.dumps(data, indent=2) + "\n"
