"""
Verification backends for IntentProof.

Each verifier consumes one kind of check and returns a VerificationResult.
Verifiers never raise for a failed or erroring check: the error becomes a
failed result carrying the error message.

Usage:
    verifier = CommandVerifier(default_timeout=30)
    result = verifier.verify(CommandCheck("pytest -q"), "passed")
    if not result.success:
        print(f"Verification failed: {result.message}")
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import asyncio
import copy
import inspect
import json
import logging
import os
import re
import subprocess

from intentproof.checks import CommandCheck, FileCheck, PredicateCheck
from intentproof.matcher import FAILURE_SENTINELS, match_expectation, normalize_expected
from intentproof.models import VerificationResult

logger = logging.getLogger(__name__)


def _await(value: Any, timeout: Optional[float]) -> Any:
    async def _wait():
        return await asyncio.wait_for(value, timeout)
    return asyncio.run(_wait())


def run_callable(fn: Callable[[], Any], timeout: Optional[float] = None) -> Any:
    """Call fn, awaiting the result if it is awaitable.

    Awaitables are bounded by timeout; plain calls cannot be interrupted.
    When the calling thread already runs an event loop, the awaitable is
    driven by a fresh loop on a worker thread.
    """
    value = fn()
    if not inspect.isawaitable(value):
        return value
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _await(value, timeout)
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(_await, value, timeout).result()


class BaseVerifier:
    """Shared result construction."""

    def create_result(
        self,
        success: bool,
        message: str,
        actual: Any = None,
        expected: Any = None,
        evidence: Optional[List[str]] = None,
    ) -> VerificationResult:
        return VerificationResult(
            success=success,
            message=message,
            actual=actual,
            expected=expected,
            evidence=list(evidence or []),
            timestamp=datetime.now(),
        )


class CommandVerifier(BaseVerifier):
    """Runs shell commands and matches their output."""

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    def run_command(
        self, check: CommandCheck, timeout: Optional[float] = None
    ) -> subprocess.CompletedProcess:
        """Run the command in its working directory and environment."""
        env = None
        if check.env:
            env = {**os.environ, **check.env}

        return subprocess.run(
            check.command,
            shell=True,
            cwd=check.cwd or None,
            env=env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )

    def verify(
        self,
        check: CommandCheck,
        expected: Any = None,
        timeout: Optional[float] = None,
    ) -> VerificationResult:
        """Run the command and compare its output with expected."""
        wanted = normalize_expected(expected)
        limit = check.timeout or timeout or self.default_timeout
        logger.debug(f"Running command check: {check.command}")

        try:
            process = self.run_command(check, limit)
        except subprocess.TimeoutExpired:
            return self._execution_failed(
                check, wanted, f"timed out after {limit} seconds"
            )
        except OSError as e:
            return self._execution_failed(check, wanted, str(e))

        if process.returncode != 0:
            error = f"exit code {process.returncode}"
            detail = (process.stderr or process.stdout or "").strip()
            if detail:
                error = f"{error}: {detail}"
            return self._execution_failed(check, wanted, error)

        output = process.stdout.strip()

        if wanted is None:
            return self.create_result(
                True, "Command executed successfully", output,
                evidence=[f"$ {check.command}"],
            )

        match = match_expectation(output, wanted)
        return self.create_result(
            match.matches,
            "Output matches expectation" if match else "Output does not match",
            output,
            wanted,
            evidence=[f"$ {check.command}", f"Rule: {match.rule}"],
        )

    def _execution_failed(
        self, check: CommandCheck, wanted: Optional[str], error: str
    ) -> VerificationResult:
        if wanted in FAILURE_SENTINELS:
            return self.create_result(
                True, "Command failed as expected", error, wanted,
                evidence=[f"$ {check.command}"],
            )
        logger.debug(f"Command failed: {check.command} ({error})")
        return self.create_result(
            False, f"Command failed: {error}", error, wanted,
            evidence=[f"$ {check.command}"],
        )


class PredicateVerifier(BaseVerifier):
    """Calls predicate functions, awaiting async ones."""

    def verify(
        self,
        check: PredicateCheck,
        expected: Any = None,
        timeout: Optional[float] = None,
    ) -> VerificationResult:
        """Evaluate the predicate.

        With no expectation the returned value must be truthy; otherwise
        it must equal the expected value (booleans compare by identity).
        """
        try:
            value = run_callable(check.fn, timeout)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            return self.create_result(
                False, f"Function threw error: {message}", message, expected
            )

        if expected is None:
            success = bool(value)
            expected = True
        elif isinstance(expected, bool):
            success = value is expected
        else:
            success = value == expected

        return self.create_result(
            success,
            "Function verification passed" if success else "Function verification failed",
            value,
            expected,
        )


class FileVerifier(BaseVerifier):
    """Checks file existence, size, modification time and content."""

    def verify(self, check: FileCheck, expected: Any = None, timeout: Optional[float] = None) -> VerificationResult:
        path = check.path
        exists = os.path.isfile(path)

        if check.exists is not None:
            if exists != check.exists:
                message = (
                    f"File does not exist: {path}" if check.exists
                    else f"File should not exist: {path}"
                )
                return self.create_result(False, message, exists, check.exists)
            if not check.exists:
                return self.create_result(True, "File does not exist as expected")

        if not exists:
            return self.create_result(False, f"File not found: {path}")

        stats = os.stat(path)
        evidence = [f"File size: {stats.st_size} bytes"]

        if check.min_size is not None and stats.st_size < check.min_size:
            return self.create_result(
                False, f"File too small: {stats.st_size} < {check.min_size}",
                stats.st_size, check.min_size, evidence,
            )
        if check.max_size is not None and stats.st_size > check.max_size:
            return self.create_result(
                False, f"File too large: {stats.st_size} > {check.max_size}",
                stats.st_size, check.max_size, evidence,
            )

        mtime = datetime.fromtimestamp(stats.st_mtime)
        if check.modified_after and mtime < check.modified_after:
            return self.create_result(
                False, "File not modified recently", mtime, check.modified_after, evidence
            )
        if check.modified_before and mtime > check.modified_before:
            return self.create_result(
                False, "File modified too recently", mtime, check.modified_before, evidence
            )

        if check.contains or check.matches:
            with open(path, "r", errors="replace") as f:
                content = f.read()

            for term in check.contains:
                if term not in content:
                    return self.create_result(
                        False, f'File does not contain: "{term}"',
                        "file content", term, evidence,
                    )
                evidence.append(f'Contains: "{term}"')

            if check.matches and not re.search(check.matches, content):
                return self.create_result(
                    False, f"File does not match pattern: {check.matches}",
                    "file content", check.matches, evidence,
                )
            if check.matches:
                evidence.append(f"Matches: {check.matches}")

        return self.create_result(
            True, f"File verification passed: {path}", evidence=evidence
        )


class StateVerifier(BaseVerifier):
    """Stores deep-copied snapshots and compares them structurally."""

    def __init__(self):
        self.snapshots: Dict[str, Any] = {}

    @staticmethod
    def _serialize(value: Any) -> str:
        return json.dumps(value, sort_keys=True, default=str)

    def snapshot(self, key: str, value: Any) -> None:
        self.snapshots[key] = copy.deepcopy(value)

    def verify(self, key: str, expected: Any = None) -> VerificationResult:
        if key not in self.snapshots:
            return self.create_result(False, f"No snapshot found for key: {key}")

        actual = self.snapshots[key]
        if expected is None:
            return self.create_result(True, "Snapshot exists", actual)

        matches = self._serialize(actual) == self._serialize(expected)
        return self.create_result(
            matches,
            "State matches expected" if matches else "State does not match",
            actual,
            expected,
        )

    def diff(self, key1: str, key2: str) -> VerificationResult:
        """Report whether two stored snapshots are structurally identical."""
        if key1 not in self.snapshots or key2 not in self.snapshots:
            return self.create_result(False, "Missing snapshots for comparison")

        before = self.snapshots[key1]
        after = self.snapshots[key2]
        same = self._serialize(before) == self._serialize(after)
        return self.create_result(
            same,
            "States are identical" if same else "States differ",
            after,
            before,
        )
