"""
Schemas - Structured Models Exchanged with External Services

Defines the Pydantic models for the vision model's structured output and
for the portal-managed chatbot settings.
"""

from clinic_intake.schemas.analysis import (
    DISCLAIMER,
    FALLBACK_ANALYSIS,
    ImageAnalysis,
    ImageAssessment,
)
from clinic_intake.schemas.settings import DEFAULT_SETTINGS, ChatbotSettings

__all__ = [
    "DISCLAIMER",
    "FALLBACK_ANALYSIS",
    "ImageAnalysis",
    "ImageAssessment",
    "DEFAULT_SETTINGS",
    "ChatbotSettings",
]
