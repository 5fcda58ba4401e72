"""
Clinic Intake Chatbot

A scripted intake assistant for a nail surgery clinic: a declarative flow
definition walked by a deterministic runtime that gates input, binds
answers to consultation fields, and persists the record progressively.
"""

from clinic_intake.domain import (
    Derived,
    Fixed,
    FlowDefinition,
    InputKind,
    Option,
    SideEffect,
    StepSpec,
    UnknownStepError,
)
from clinic_intake.state import (
    SessionState,
    TranscriptEntry,
)
from clinic_intake.execution import FlowRuntime, check_flow

__all__ = [
    # Domain Layer
    "Derived",
    "Fixed",
    "FlowDefinition",
    "InputKind",
    "Option",
    "SideEffect",
    "StepSpec",
    "UnknownStepError",
    # State Layer
    "SessionState",
    "TranscriptEntry",
    # Execution Layer
    "FlowRuntime",
    "check_flow",
]
