"""
Intent execution engine.

An Intent is a declared goal plus its contract (preconditions,
postconditions, invariants) and an ordered set of verifiable steps.
Executing it runs, in order:

    1. preconditions   - first critical failure aborts ("preconditions")
    2. steps           - dependency gating, invariants around each step,
                         optional action, then the step's own check
    3. postconditions  - first critical failure aborts ("postconditions")
    4. completion

Success is reported only if every check that ran passed. Nothing raises
out of execute(): failures come back as an IntentExecutionResult.

Usage:
    intent = (
        create_intent("Fix auth bug")
        .requires("pytest tests/test_auth.py", "fails")
        .step("Remove singleton", verify="grep -c clientInstance lib/client.py", expected="=0")
        .ensures("pytest tests/test_auth.py", "passed")
    )
    result = intent.execute()
    if not result.success:
        print(f"Failed at: {result.failed_step}")
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import asyncio
import logging
import secrets
import time

from intentproof.checks import Check, StepDefinition, VerificationCheck, as_check
from intentproof.events import EventLog, EventType, IntentEvent
from intentproof.graph import (
    CircularDependencyError,
    DuplicateStepError,
    compute_waves,
    unmet_dependencies,
    validate_graph,
)
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
    run_callable,
)

logger = logging.getLogger(__name__)

# (failed_step label, failure reason)
Failure = Tuple[str, str]

STATUS_ICONS = {
    IntentStatus.PENDING: "○",
    IntentStatus.RUNNING: "…",
    IntentStatus.COMPLETED: "✓",
    IntentStatus.FAILED: "✗",
    IntentStatus.CANCELLED: "⊘",
}

STEP_ICONS = {
    StepStatus.PENDING: "○",
    StepStatus.RUNNING: "…",
    StepStatus.COMPLETED: "✓",
    StepStatus.FAILED: "✗",
    StepStatus.SKIPPED: "⊘",
}


@dataclass
class _RunState:
    """Frozen inputs and running outputs of one execution pass."""
    preconditions: Tuple[VerificationCheck, ...]
    postconditions: Tuple[VerificationCheck, ...]
    invariants: Tuple[VerificationCheck, ...]
    steps: List[Step]
    definitions: Dict[str, StepDefinition]
    started: float = field(default_factory=time.monotonic)
    log: EventLog = field(default_factory=EventLog)
    verification_log: List[VerificationResult] = field(default_factory=list)
    deps: Dict[str, List[str]] = field(default_factory=dict)
    first_failure: Optional[Failure] = None

    @property
    def steps_by_id(self) -> Dict[str, Step]:
        return {s.id: s for s in self.steps}

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000


class IntentRun:
    """A single execution pass, iterated to pull events.

    The result is available once iteration finishes:

        run = intent.run()
        for event in run:
            print(event.format())
        print(run.result.success)
    """

    def __init__(self, intent: "Intent"):
        self.intent = intent
        self.result: Optional[IntentExecutionResult] = None
        self._events = intent._execute(self)

    def __iter__(self) -> Iterator[IntentEvent]:
        return self

    def __next__(self) -> IntentEvent:
        return next(self._events)

    def wait(self) -> IntentExecutionResult:
        """Drain remaining events and return the result."""
        for _ in self:
            pass
        return self.result


class Intent:
    """A goal with a verification contract and verifiable steps."""

    def __init__(self, goal: str, options: Optional[IntentOptions] = None):
        self.options = options or IntentOptions()
        errors = self.options.validate()
        if errors:
            raise ValueError(f"Invalid intent options: {'; '.join(errors)}")

        self.id = secrets.token_hex(8)
        self.goal = goal
        self.created = datetime.now()
        self.status = IntentStatus.PENDING

        self.preconditions: List[VerificationCheck] = []
        self.postconditions: List[VerificationCheck] = []
        self.invariants: List[VerificationCheck] = []

        self._steps: List[Step] = []
        self._definitions: Dict[str, StepDefinition] = {}
        self._running = False
        self.last_result: Optional[IntentExecutionResult] = None

        self.verifiers = {
            "command": CommandVerifier(default_timeout=self.options.timeout),
            "predicate": PredicateVerifier(),
            "file": FileVerifier(),
        }
        # Snapshot store for predicates, e.g.
        #   intent.state.snapshot("before", load())
        #   intent.ensures(lambda: intent.state.snapshot("after", load())
        #                  or intent.state.diff("before", "after").success)
        self.state = StateVerifier()

    # ------------------------------------------------------------------
    # Contract and step declaration
    # ------------------------------------------------------------------

    @staticmethod
    def _condition(check: Any, expected: Any, name: Optional[str], critical: bool) -> VerificationCheck:
        if isinstance(check, VerificationCheck):
            return check
        return VerificationCheck(
            check=as_check(check), expected=expected, name=name, critical=critical
        )

    def requires(self, check: Any, expected: Any = None, *, name: Optional[str] = None, critical: bool = True) -> "Intent":
        """Add a precondition that must hold before any step runs."""
        self.preconditions.append(self._condition(check, expected, name, critical))
        return self

    def ensures(self, check: Any, expected: Any = None, *, name: Optional[str] = None, critical: bool = True) -> "Intent":
        """Add a postcondition that must hold after all steps."""
        self.postconditions.append(self._condition(check, expected, name, critical))
        return self

    def invariant(self, check: Any, expected: Any = None, *, name: Optional[str] = None) -> "Intent":
        """Add an invariant checked before and after every step.

        Invariants are always critical.
        """
        self.invariants.append(self._condition(check, expected, name, True))
        return self

    def step(
        self,
        name: str,
        definition: Optional[StepDefinition] = None,
        *,
        verify: Union[str, Check, Any, None] = None,
        expected: Any = None,
        description: Optional[str] = None,
        dependencies: Optional[List[str]] = None,
        action: Any = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> "Intent":
        """Add a step.

        Either pass a StepDefinition or the definition fields as keywords.
        Dependencies are step ids or step names.

        Raises:
            DuplicateStepError: If a step with this name already exists
            TypeError: If verify has an unsupported shape, or if both a
                StepDefinition and definition keywords are given
        """
        if any(s.name == name for s in self._steps):
            raise DuplicateStepError(name)

        keywords = (verify, expected, description, dependencies, action, timeout, retries)
        if definition is not None and any(k is not None for k in keywords):
            raise TypeError(f"Step '{name}': pass a StepDefinition or keywords, not both")

        if definition is None:
            definition = StepDefinition(
                name=name,
                verify=as_check(verify) if verify is not None else None,
                expected=expected,
                description=description,
                dependencies=tuple(dependencies or ()),
                action=action,
                timeout=timeout,
                retries=retries,
            )
        else:
            definition = replace(
                definition,
                name=name,
                verify=as_check(definition.verify) if definition.verify is not None else None,
            )

        step = Step(
            id=secrets.token_hex(4),
            name=name,
            description=definition.description,
            dependencies=list(definition.dependencies),
        )
        self._steps.append(step)
        self._definitions[step.id] = definition
        return self

    @property
    def steps(self) -> List[Step]:
        """Snapshots of the steps in declaration order."""
        return [s.snapshot() for s in self._steps]

    def step_id(self, name: str) -> Optional[str]:
        for s in self._steps:
            if s.name == name:
                return s.id
        return None

    def validate(self) -> None:
        """Check the step graph now instead of at execution.

        Raises:
            CircularDependencyError: If the steps' dependencies form a cycle
        """
        validate_graph(self._steps)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self) -> IntentRun:
        """Start an execution pass; iterate the returned run for events."""
        return IntentRun(self)

    def execute(self) -> IntentExecutionResult:
        """Execute the intent and verify every step."""
        return self.run().wait()

    async def aexecute(self) -> IntentExecutionResult:
        """Execute in a worker thread so an event loop is not blocked."""
        return await asyncio.to_thread(self.execute)

    def _execute(self, run: IntentRun) -> Iterator[IntentEvent]:
        if self._running:
            raise RuntimeError(f"Intent {self.id} is already executing")
        self._running = True
        try:
            state = self._freeze()
            failure = yield from self._execute_phases(state)
            run.result = self._finish(state, failure)
            yield state.log.events[-1]
        finally:
            self._running = False

    def _freeze(self) -> _RunState:
        for step in self._steps:
            step.reset()
        return _RunState(
            preconditions=tuple(self.preconditions),
            postconditions=tuple(self.postconditions),
            invariants=tuple(self.invariants),
            steps=list(self._steps),
            definitions=dict(self._definitions),
        )

    def _emit(self, state: _RunState, event_type: EventType, **data: Any) -> IntentEvent:
        event = state.log.record(event_type, **data)
        logger.debug(f"[{self.id}] {event.format()}")
        return event

    def _execute_phases(self, state: _RunState):
        self.status = IntentStatus.RUNNING
        yield self._emit(state, EventType.START, goal=self.goal, steps=len(state.steps))

        try:
            state.deps = validate_graph(state.steps)
        except CircularDependencyError as e:
            return ("step graph", str(e))

        failure = yield from self._check_conditions(state, "preconditions", state.preconditions)
        if failure:
            return failure

        logger.info(f"[{self.id}] Executing {len(state.steps)} steps")
        yield self._emit(state, EventType.PHASE, phase="execution")
        if self.options.parallel:
            failure = yield from self._run_waves(state)
        else:
            failure = yield from self._run_sequential(state)
        if failure:
            return failure

        failure = yield from self._check_conditions(state, "postconditions", state.postconditions)
        if failure:
            return failure

        return state.first_failure

    def _finish(self, state: _RunState, failure: Optional[Failure]) -> IntentExecutionResult:
        duration = state.elapsed_ms()
        if failure is None:
            self.status = IntentStatus.COMPLETED
            self._emit(state, EventType.COMPLETE, duration=duration, steps=len(state.steps))
            logger.info(f"[{self.id}] Intent completed: {self.goal}")
        else:
            self.status = IntentStatus.FAILED
            failed_step, reason = failure
            self._emit(state, EventType.FAILED, phase=failed_step, reason=reason)
            logger.info(f"[{self.id}] Intent failed at {failed_step}: {reason}")

        self.last_result = IntentExecutionResult(
            success=failure is None,
            status=self.status,
            steps=[s.snapshot() for s in state.steps],
            failed_step=failure[0] if failure else None,
            failure_reason=failure[1] if failure else None,
            duration=duration,
            verification_log=list(state.verification_log),
            events=list(state.log.events),
        )
        return self.last_result

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def _verify(self, check: Optional[Check], expected: Any, timeout: Optional[float] = None) -> VerificationResult:
        if check is None:
            return VerificationResult(False, "No verification defined for step")
        verifier = self.verifiers.get(getattr(check, "kind", None))
        if verifier is None:
            return VerificationResult(False, "Unknown verification type")
        try:
            return verifier.verify(check, expected, timeout=timeout or self.options.timeout)
        except Exception as e:
            logger.error(f"Verifier error for {check.describe()}: {e}")
            return VerificationResult(False, f"Verification error: {e}", actual=str(e), expected=expected)

    def _record(self, state: _RunState, label: str, result: VerificationResult) -> None:
        state.verification_log.append(result)
        level = logging.INFO if self.options.verbose else logging.DEBUG
        mark = "✓" if result.success else "✗"
        logger.log(level, f"[{self.id}] {mark} {label}: {result.message}")

    def _check_conditions(self, state: _RunState, phase: str, conditions):
        if not conditions:
            return None
        yield self._emit(state, EventType.PHASE, phase=phase)

        for condition in conditions:
            result = self._verify(condition.check, condition.expected)
            self._record(state, condition.label, result)
            if result.success:
                continue
            if condition.critical:
                return (phase, result.message)
            logger.warning(f"Non-critical {phase[:-1]} failed: {condition.label}: {result.message}")
            yield self._emit(
                state, EventType.CHECK_FAILED,
                phase=phase, check=condition.label, reason=result.message,
            )
        return None

    def _check_invariants(self, state: _RunState, label: str) -> Optional[Failure]:
        for condition in state.invariants:
            result = self._verify(condition.check, condition.expected)
            self._record(state, condition.label, result)
            if not result.success:
                return (label, result.message)
        return None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _retries_for(self, definition: StepDefinition) -> int:
        if definition.retries is not None:
            return max(definition.retries, 0)
        return self.options.max_retries

    def _attempt(self, definition: StepDefinition) -> VerificationResult:
        timeout = definition.timeout or self.options.timeout
        try:
            if definition.action is not None:
                run_callable(definition.action, timeout)
            return self._verify(definition.verify, definition.expected, timeout)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Step '{definition.name}' raised: {message}")
            return VerificationResult(
                False, f"Step execution error: {message}", actual=message
            )

    def _perform(self, definition: StepDefinition) -> Tuple[VerificationResult, List[str]]:
        """Run a step with retries. Safe to call from worker threads.

        Returns:
            The final verification result and the messages of failed
            attempts that were retried
        """
        attempts = 1 + self._retries_for(definition)
        retried: List[str] = []
        for attempt in range(1, attempts + 1):
            result = self._attempt(definition)
            if result.success or attempt == attempts:
                return result, retried
            retried.append(result.message)
            delay = self.options.retry_backoff * (2 ** (attempt - 1))
            logger.warning(
                f"Step '{definition.name}' failed (attempt {attempt}/{attempts}), "
                f"retrying in {delay:.2f}s"
            )
            if delay:
                time.sleep(delay)
        return result, retried

    def _start_step(self, state: _RunState, step: Step) -> IntentEvent:
        step.advance(StepStatus.RUNNING)
        step.started_at = datetime.now()
        return self._emit(state, EventType.STEP_START, step=step.name)

    def _finish_step(self, state: _RunState, step: Step, result: VerificationResult, retried: List[str]):
        for attempt, reason in enumerate(retried, start=1):
            yield self._emit(state, EventType.STEP_RETRY, step=step.name, attempt=attempt, reason=reason)

        self._record(state, step.name, result)
        step.result = result
        step.retry_count = len(retried)
        step.completed_at = datetime.now()
        step.duration = (step.completed_at - step.started_at).total_seconds() * 1000

        if result.success:
            step.advance(StepStatus.COMPLETED)
            yield self._emit(state, EventType.STEP_COMPLETE, step=step.name, duration=step.duration)
        else:
            step.advance(StepStatus.FAILED)
            if state.first_failure is None:
                state.first_failure = (step.name, result.message)
            yield self._emit(state, EventType.STEP_FAILED, step=step.name, reason=result.message)

    def _skip_if_blocked(self, state: _RunState, step: Step):
        unmet = unmet_dependencies(step, state.deps, state.steps_by_id)
        if not unmet:
            return False
        step.advance(StepStatus.SKIPPED)
        yield self._emit(
            state, EventType.STEP_SKIPPED,
            step=step.name, reason=f"unmet dependencies: {', '.join(unmet)}",
        )
        return True

    def _run_sequential(self, state: _RunState):
        for step in state.steps:
            skipped = yield from self._skip_if_blocked(state, step)
            if skipped:
                continue

            failure = self._check_invariants(state, f"invariant before {step.name}")
            if failure:
                return failure

            yield self._start_step(state, step)
            result, retried = self._perform(state.definitions[step.id])
            yield from self._finish_step(state, step, result, retried)

            if step.status == StepStatus.FAILED and self.options.stop_on_failure:
                return (step.name, result.message)

            failure = self._check_invariants(state, f"invariant after {step.name}")
            if failure:
                return failure
        return None

    def _run_waves(self, state: _RunState):
        """Run dependency waves on a bounded thread pool.

        Invariants are checked around each wave instead of each step.
        """
        waves = compute_waves(state.steps, state.deps)
        with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
            for number, wave in enumerate(waves, start=1):
                ready = []
                for step in wave:
                    skipped = yield from self._skip_if_blocked(state, step)
                    if not skipped:
                        ready.append(step)
                if not ready:
                    continue

                failure = self._check_invariants(state, f"invariant before wave {number}")
                if failure:
                    return failure

                futures = {}
                for step in ready:
                    yield self._start_step(state, step)
                    futures[step.id] = pool.submit(self._perform, state.definitions[step.id])

                for step in ready:
                    result, retried = futures[step.id].result()
                    yield from self._finish_step(state, step, result, retried)

                failed = [s for s in ready if s.status == StepStatus.FAILED]
                if failed and self.options.stop_on_failure:
                    return (failed[0].name, failed[0].result.message)

                failure = self._check_invariants(state, f"invariant after wave {number}")
                if failure:
                    return failure
        return None

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def visualize(self) -> str:
        """Text summary of the goal, status and every step's outcome."""
        lines = [
            f"Intent: {self.goal}",
            f"  ID: {self.id}",
            f"  Status: {STATUS_ICONS[self.status]} {self.status.value}",
            f"  Created: {self.created.isoformat()}",
        ]

        if self.preconditions:
            lines.append("")
            lines.append(f"  Preconditions: {len(self.preconditions)}")

        if self._steps:
            lines.append("")
            lines.append("  Steps:")
            for step in self._steps:
                lines.append(f"  {STEP_ICONS[step.status]} {step.name}")
                if step.result and not step.result.success:
                    lines.append(f"     └─ ✗ {step.result.message}")
                elif step.duration is not None:
                    lines.append(f"     └─ {step.duration:.0f}ms")

        if self.postconditions:
            lines.append("")
            lines.append(f"  Postconditions: {len(self.postconditions)}")

        if self.invariants:
            lines.append(f"  Invariants: {len(self.invariants)}")

        return "\n".join(lines)


def create_intent(goal: str, options: Union[IntentOptions, Dict[str, Any], None] = None, **overrides: Any) -> Intent:
    """Create an Intent.

    Args:
        goal: What the intent accomplishes
        options: IntentOptions or a dict of option values
        **overrides: Individual option values, e.g. stop_on_failure=False

    Raises:
        ValueError: If the resulting options are invalid
    """
    if isinstance(options, dict):
        options = IntentOptions.from_dict(options)
    options = options or IntentOptions()
    if overrides:
        options = replace(options, **overrides)
    return Intent(goal, options)
