"""
Domain Layer - Static Flow Models

Defines the declarative structure of the intake conversation: steps,
options, side effect tags and the flow definition itself.
"""

from clinic_intake.domain.models import (
    Derived,
    Fixed,
    FlowDefinition,
    InputKind,
    Option,
    SideEffect,
    StepSpec,
    UnknownStepError,
)

__all__ = [
    "Derived",
    "Fixed",
    "FlowDefinition",
    "InputKind",
    "Option",
    "SideEffect",
    "StepSpec",
    "UnknownStepError",
]
