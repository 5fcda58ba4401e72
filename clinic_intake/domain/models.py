"""
Domain Layer - Static Flow Models

This module defines the declarative structure of an intake conversation:
a FlowDefinition is an immutable mapping from step ids to StepSpecs. Each
StepSpec describes what the bot says, what input it collects, how that
input is gated, where the conversation goes next and which external
operation fires when the step is entered.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union


class InputKind(str, Enum):
    """
    The UI affordance a step asks for. Also selects the default validator.
    """
    NONE = "none"
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    PHONE = "phone"
    EMAIL = "email"
    OPTION_CHOICE = "option_choice"
    IMAGE = "image"


@dataclass(frozen=True)
class Fixed:
    """A literal message or step id."""
    value: str


@dataclass(frozen=True)
class Derived:
    """
    A value computed when the step is reached.

    For messages, fn(session_data, settings) -> str.
    For next-step resolvers, fn(submitted_value) -> step id.

    Attributes:
        fn: Pure function producing the value.
        targets: Step ids a next-step resolver may return. Lets the offline
            check verify free-text branches it cannot enumerate by itself.
    """
    fn: Callable[..., str]
    targets: Tuple[str, ...] = ()


MessageSpec = Union[Fixed, Derived]
NextSpec = Union[Fixed, Derived]


@dataclass(frozen=True)
class Option:
    """
    One selectable answer of an option_choice step.

    Attributes:
        label: Text shown on the button and echoed into the transcript.
        value: Raw value submitted, validated and bound.
    """
    label: str
    value: str


@dataclass(frozen=True)
class SideEffect:
    """
    External operation run when a step is entered.

    Tags:
        analyze-image              -> image analysis of the uploaded photo
        persist-create             -> first durable write of the consultation
        persist-patch:<milestone>  -> partial update for a named milestone
        forward-portal             -> forward the finished record to the portal
    """
    ANALYZE_IMAGE = "analyze-image"
    PERSIST_CREATE = "persist-create"
    PERSIST_PATCH = "persist-patch"
    FORWARD_PORTAL = "forward-portal"

    kind: str
    milestone: Optional[str] = None

    @classmethod
    def parse(cls, tag: str) -> "SideEffect":
        kind, _, milestone = tag.partition(":")
        if kind not in (cls.ANALYZE_IMAGE, cls.PERSIST_CREATE, cls.PERSIST_PATCH, cls.FORWARD_PORTAL):
            raise ValueError(f"Unknown side effect tag '{tag}'")
        if kind == cls.PERSIST_PATCH and not milestone:
            raise ValueError(f"Side effect '{tag}' needs a milestone name")
        return cls(kind=kind, milestone=milestone or None)

    @property
    def tag(self) -> str:
        return f"{self.kind}:{self.milestone}" if self.milestone else self.kind


@dataclass(frozen=True)
class StepSpec:
    """
    One node of the conversation graph.

    Attributes:
        id: Unique key, stable across a session.
        message: What the bot says on entry. None for silent steps.
        input_kind: Input the step collects. NONE means informational.
        options: Selectable answers (option_choice steps only).
        validation: Predicate over the raw submitted string. Overrides
            the input-kind default.
        error_message: Shown when validation fails.
        optional: Text and email steps also accept an empty answer.
        next: Successor step id, literal or derived from the submitted value.
        is_terminal: Ends the session; next is never resolved.
        side_effect: External operation run on entry.
        delay_ms: Cosmetic typing delay before the step's turn.
    """
    id: str
    message: Optional[MessageSpec] = None
    input_kind: InputKind = InputKind.NONE
    options: Tuple[Option, ...] = ()
    validation: Optional[Callable[[str], bool]] = None
    error_message: Optional[str] = None
    optional: bool = False
    next: Optional[NextSpec] = None
    is_terminal: bool = False
    side_effect: Optional[SideEffect] = None
    delay_ms: int = 600

    @property
    def requires_input(self) -> bool:
        return self.input_kind != InputKind.NONE

    def label_for(self, value: str) -> Optional[str]:
        for option in self.options:
            if option.value == value:
                return option.label
        return None


class UnknownStepError(LookupError):
    """Raised when a step id is not part of the flow. Indicates a broken graph."""

    def __init__(self, step_id: Any, flow_name: str = ""):
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' not found in flow '{flow_name}'.")


@dataclass(frozen=True)
class FlowDefinition:
    """
    Immutable conversation graph.

    Attributes:
        name: Identifier of the flow.
        entry: Step id every session starts from.
        steps: Read-only mapping of step id -> StepSpec.
    """
    name: str
    entry: str
    steps: Mapping[str, StepSpec] = field(default_factory=dict)

    @classmethod
    def build(cls, name: str, entry: str, *steps: StepSpec) -> "FlowDefinition":
        index: Dict[str, StepSpec] = {}
        for step in steps:
            if step.id in index:
                raise ValueError(f"Duplicate step id '{step.id}' in flow '{name}'")
            index[step.id] = step
        return cls(name=name, entry=entry, steps=MappingProxyType(index))

    def get(self, step_id: str) -> StepSpec:
        step = self.steps.get(step_id)
        if step is None:
            raise UnknownStepError(step_id, self.name)
        return step

    def __contains__(self, step_id: object) -> bool:
        return step_id in self.steps
