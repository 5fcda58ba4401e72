"""
State Layer - Runtime Data Models

Defines the runtime state that tracks one visitor's progress through the
intake flow: accumulated answers, transcript and current step.
"""

from clinic_intake.state.models import (
    SessionState,
    TranscriptEntry,
)

__all__ = [
    "SessionState",
    "TranscriptEntry",
]
