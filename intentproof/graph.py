"""
Step graph helpers.

Steps run in declaration order. Dependencies name other steps by id or by
name; this module resolves those references, rejects cycles and groups
steps into waves for parallel execution.
"""

from typing import Dict, List, Optional, Sequence

from intentproof.models import Step, StepStatus


class DuplicateStepError(ValueError):
    """Raised when a step name is declared twice in one intent."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate step name: {name}")


class CircularDependencyError(Exception):
    """Raised when circular dependencies are detected in step graph."""
    def __init__(self, step_name: str):
        self.step_name = step_name
        super().__init__(f"Circular dependency detected at step: {step_name}")


def resolve_dependencies(steps: Sequence[Step]) -> Dict[str, List[str]]:
    """Map each step id to the ids of the steps it depends on.

    References that match neither an id nor a name are kept as-is; they
    never resolve to a step, so the dependent step is never satisfied.
    """
    ids = {s.id for s in steps}
    by_name = {s.name: s.id for s in steps}

    resolved: Dict[str, List[str]] = {}
    for step in steps:
        deps = []
        for ref in step.dependencies:
            if ref in ids:
                deps.append(ref)
            else:
                deps.append(by_name.get(ref, ref))
        resolved[step.id] = deps
    return resolved


def find_cycle(steps: Sequence[Step], deps: Optional[Dict[str, List[str]]] = None) -> Optional[str]:
    """Return the name of a step on a dependency cycle, or None."""
    if deps is None:
        deps = resolve_dependencies(steps)
    by_id = {s.id: s for s in steps}
    visiting: set = set()
    visited: set = set()

    def visit(step_id: str) -> Optional[str]:
        if step_id in visited or step_id not in by_id:
            return None
        if step_id in visiting:
            return by_id[step_id].name
        visiting.add(step_id)
        for dep_id in deps.get(step_id, []):
            found = visit(dep_id)
            if found:
                return found
        visiting.remove(step_id)
        visited.add(step_id)
        return None

    for step in steps:
        found = visit(step.id)
        if found:
            return found
    return None


def validate_graph(steps: Sequence[Step]) -> Dict[str, List[str]]:
    """Resolve dependencies and reject cycles.

    Returns:
        Dict mapping step id to resolved dependency ids

    Raises:
        CircularDependencyError: If circular dependencies detected
    """
    deps = resolve_dependencies(steps)
    cyclic = find_cycle(steps, deps)
    if cyclic:
        raise CircularDependencyError(cyclic)
    return deps


def compute_waves(steps: Sequence[Step], deps: Dict[str, List[str]]) -> List[List[Step]]:
    """Group steps into execution waves.

    Steps with no known dependencies go in the first wave; a step
    depending on wave N goes in wave N+1. Declaration order is kept
    inside each wave. The graph must already be acyclic.
    """
    by_id = {s.id: s for s in steps}
    step_to_wave: Dict[str, int] = {}

    def get_wave(step_id: str) -> int:
        if step_id in step_to_wave:
            return step_to_wave[step_id]
        known = [d for d in deps.get(step_id, []) if d in by_id]
        wave = max((get_wave(d) for d in known), default=0) + 1
        step_to_wave[step_id] = wave
        return wave

    waves: Dict[int, List[Step]] = {}
    for step in steps:
        waves.setdefault(get_wave(step.id), []).append(step)
    return [waves[n] for n in sorted(waves)]


def unmet_dependencies(step: Step, deps: Dict[str, List[str]], steps_by_id: Dict[str, Step]) -> List[str]:
    """Dependencies of step that are missing or not completed."""
    unmet = []
    for dep_id in deps.get(step.id, []):
        dep = steps_by_id.get(dep_id)
        if dep is None or dep.status != StepStatus.COMPLETED:
            unmet.append(dep.name if dep else dep_id)
    return unmet

