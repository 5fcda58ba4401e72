"""
Offline Flow Check.

Structural validation of a FlowDefinition, run once at startup and from
scripts/check_flow.py rather than per request. Returns every issue found so
a broken flow can be fixed in one pass.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..domain.models import Derived, Fixed, FlowDefinition, InputKind, SideEffect, StepSpec
from .binding import FieldBindingTable
from .persistence import VIRTUAL_FIELDS
from .side_effects import ANALYSIS_FIELD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlowIssue:
    step_id: Optional[str]
    message: str

    def __str__(self) -> str:
        where = f"[{self.step_id}] " if self.step_id else ""
        return f"{where}{self.message}"


class FlowConfigurationError(Exception):
    """A flow definition failed the structural check. Fatal at load time."""

    def __init__(self, flow_name: str, issues: List[FlowIssue]):
        self.flow_name = flow_name
        self.issues = issues
        details = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(f"Flow '{flow_name}' has {len(issues)} configuration error(s):\n{details}")


def successors(step: StepSpec) -> Tuple[Set[str], List[str]]:
    """
    Every step id the step's `next` can produce.

    Literal next -> that id. Derived next on an option step -> evaluated
    for each option value. Derived next elsewhere -> its declared targets.

    Returns:
        (targets, problems) where problems describe targets that could not
        be determined.
    """
    problems: List[str] = []
    if step.is_terminal or step.next is None:
        return set(), problems

    if isinstance(step.next, Fixed):
        return ({step.next.value} if step.next.value else set()), problems

    targets: Set[str] = set(step.next.targets)
    if step.input_kind == InputKind.OPTION_CHOICE and step.options:
        for option in step.options:
            try:
                target = step.next.fn(option.value)
            except Exception as e:
                problems.append(f"next resolver raised for option '{option.value}': {e}")
                continue
            if target:
                targets.add(target)
    elif not targets:
        if step.requires_input:
            problems.append("derived next on a free-input step must declare its targets")
        else:
            # No-input steps always resolve with the empty value
            try:
                target = step.next.fn("")
            except Exception as e:
                problems.append(f"next resolver raised for empty value: {e}")
            else:
                if target:
                    targets.add(target)
    return targets, problems


def check_flow(
    flow: FlowDefinition,
    bindings: Optional[FieldBindingTable] = None,
    milestones: Optional[Mapping[str, Iterable[str]]] = None,
) -> List[FlowIssue]:
    issues: List[FlowIssue] = []

    if flow.entry not in flow:
        issues.append(FlowIssue(None, f"entry step '{flow.entry}' does not exist"))
        return issues

    edges: Dict[str, Set[str]] = {}
    for step_id, step in flow.steps.items():
        if step_id != step.id:
            issues.append(FlowIssue(step_id, f"registered under a different id than its own ('{step.id}')"))

        targets, problems = successors(step)
        issues.extend(FlowIssue(step_id, problem) for problem in problems)
        for target in sorted(targets):
            if target not in flow:
                issues.append(FlowIssue(step_id, f"next resolves to unknown step '{target}'"))
        edges[step_id] = {target for target in targets if target in flow}

        if step.validation is not None and not step.error_message:
            issues.append(FlowIssue(step_id, "validation defined without an error_message"))
        if step.input_kind == InputKind.OPTION_CHOICE and not step.options:
            issues.append(FlowIssue(step_id, "option_choice step without options"))
        if step.options and step.input_kind != InputKind.OPTION_CHOICE:
            issues.append(FlowIssue(step_id, "options on a step that is not option_choice"))
        if not step.is_terminal and step.next is None:
            issues.append(FlowIssue(step_id, "non-terminal step without next"))
        if step.is_terminal and step.next is not None:
            issues.append(FlowIssue(step_id, "terminal step declares a next that is never resolved"))

        effect = step.side_effect
        if effect is not None and effect.kind == SideEffect.PERSIST_PATCH:
            if milestones is not None and effect.milestone not in milestones:
                issues.append(FlowIssue(step_id, f"unknown persistence milestone '{effect.milestone}'"))

    # Reachability from the entry step
    reachable = _reachable(flow.entry, edges)
    for step_id in flow.steps:
        if step_id not in reachable:
            issues.append(FlowIssue(step_id, "unreachable from the entry step"))

    if not any(flow.steps[step_id].is_terminal for step_id in reachable):
        issues.append(FlowIssue(None, "no terminal step is reachable from the entry step"))

    # Auto-advance loops: no-input steps chained in a cycle never yield
    silent = {
        step_id: {t for t in targets if not flow.steps[t].requires_input and not flow.steps[t].is_terminal}
        for step_id, targets in edges.items()
        if not flow.steps[step_id].requires_input and not flow.steps[step_id].is_terminal
    }
    for step_id in sorted(_cyclic(silent)):
        issues.append(FlowIssue(step_id, "part of an auto-advance cycle with no input step"))

    if bindings is not None:
        for step_id in bindings.step_ids():
            if step_id not in flow:
                issues.append(FlowIssue(step_id, "field binding for an unknown step"))
            elif not flow.steps[step_id].requires_input:
                issues.append(FlowIssue(step_id, "field binding on a step that takes no input"))

        if milestones is not None:
            known = bindings.fields() | set(VIRTUAL_FIELDS) | {ANALYSIS_FIELD}
            for milestone, fields in milestones.items():
                for name in fields:
                    if name not in known:
                        issues.append(FlowIssue(None, f"milestone '{milestone}' writes unbound field '{name}'"))

    return issues


def assert_valid_flow(
    flow: FlowDefinition,
    bindings: Optional[FieldBindingTable] = None,
    milestones: Optional[Mapping[str, Iterable[str]]] = None,
) -> None:
    issues = check_flow(flow, bindings, milestones)
    if issues:
        raise FlowConfigurationError(flow.name, issues)
    logger.info(f"Flow '{flow.name}' passed structural check ({len(flow.steps)} steps)")


def _reachable(entry: str, edges: Mapping[str, Set[str]]) -> Set[str]:
    seen = {entry}
    stack = [entry]
    while stack:
        for target in edges.get(stack.pop(), ()):
            if target not in seen:
                seen.add(target)
                stack.append(target)
    return seen


def _cyclic(edges: Mapping[str, Set[str]]) -> Set[str]:
    """Nodes that lie on a cycle of the given graph."""
    on_cycle: Set[str] = set()
    for start in edges:
        stack = list(edges[start])
        seen: Set[str] = set()
        while stack:
            node = stack.pop()
            if node == start:
                on_cycle.add(start)
                break
            if node in seen or node not in edges:
                continue
            seen.add(node)
            stack.extend(edges[node])
    return on_cycle
