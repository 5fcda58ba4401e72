"""
Schemas - Structured Output Models for Image Analysis

This module defines the Pydantic models the vision model must fill in, and
the fixed fallback payload substituted whenever analysis fails or times out.
"""
from typing import List

from pydantic import BaseModel, Field

DISCLAIMER = (
    "This is an AI-assisted preliminary assessment only. Please consult with a "
    "qualified healthcare professional for proper diagnosis and treatment."
)


class ImageAssessment(BaseModel):
    """
    The strict JSON structure the vision model must generate.
    """
    condition: str = Field(
        ...,
        description="Specific name of the most likely condition based on visible symptoms."
    )
    severity: str = Field(
        ...,
        description="Apparent severity: mild, moderate or severe."
    )
    recommendations: List[str] = Field(
        ...,
        description="Up to 3 specific recommendations for the patient."
    )


class ImageAnalysis(BaseModel):
    """
    Result handed back to the conversation: the assessment plus a disclaimer.
    """
    condition: str
    severity: str
    recommendations: List[str] = Field(default_factory=list)
    disclaimer: str = DISCLAIMER
    is_fallback: bool = False

    @classmethod
    def from_assessment(cls, assessment: ImageAssessment) -> "ImageAnalysis":
        return cls(
            condition=assessment.condition,
            severity=assessment.severity,
            recommendations=assessment.recommendations[:3],
        )


FALLBACK_ANALYSIS = ImageAnalysis(
    condition="Unable to analyze image",
    severity="unknown",
    recommendations=[
        "Continue with the consultation to describe your symptoms.",
        "Consider visiting a clinic for an in-person assessment if concerned.",
    ],
    disclaimer=(
        "This is a fallback response due to a service issue. Please describe your "
        "symptoms or visit a clinic for proper assessment."
    ),
    is_fallback=True,
)
