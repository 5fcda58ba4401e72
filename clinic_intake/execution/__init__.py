"""
Execution Layer - Flow Runtime and its Policies

Defines the FlowRuntime (deterministic state machine) together with the
validation gate, field binding, side-effect runner, progressive
persistence policy and the offline structural check of a flow.
"""

from clinic_intake.execution.binding import FieldBinding, FieldBindingTable
from clinic_intake.execution.checks import FlowConfigurationError, FlowIssue, assert_valid_flow, check_flow
from clinic_intake.execution.engine import (
    FlowRuntime,
    InputNotExpectedError,
    StepView,
    SubmitResult,
    TransitionInProgressError,
)
from clinic_intake.execution.persistence import ProgressivePersistence
from clinic_intake.execution.side_effects import SideEffectOutcome, SideEffectRunner
from clinic_intake.execution.validation import ValidationResult, validate


__all__ = [
    "FieldBinding",
    "FieldBindingTable",
    "FlowConfigurationError",
    "FlowIssue",
    "assert_valid_flow",
    "check_flow",
    "FlowRuntime",
    "InputNotExpectedError",
    "StepView",
    "SubmitResult",
    "TransitionInProgressError",
    "ProgressivePersistence",
    "SideEffectOutcome",
    "SideEffectRunner",
    "ValidationResult",
    "validate",
]
