"""
Image Analysis Service.

Turns an uploaded photo into a structured preliminary assessment using a
vision-capable LLM provider. This service raises on any failure; the
conversation's side-effect runner owns the timeout and the fallback.
"""

import base64
import binascii
import logging
import re

from ..config import settings
from ..execution.prompts import Template, render
from ..llm.interface import LLMProvider
from ..schemas.analysis import ImageAnalysis, ImageAssessment

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

COMMON_CONDITIONS = [
    "ingrown toenails",
    "fungal nail infection (onychomycosis)",
    "subungual haematoma (bruised nail)",
    "nail trauma or lifting",
    "paronychia",
    "corns",
    "calluses",
]


class InvalidImageError(ValueError):
    """Raised when the payload is not decodable base64 image data."""


def clean_base64(image_payload: str) -> str:
    """
    Strips a data URL prefix and checks the remainder decodes as base64.
    """
    if not image_payload or not isinstance(image_payload, str):
        raise InvalidImageError("Invalid base64 image data provided")

    cleaned = _DATA_URL_PREFIX.sub("", image_payload).strip()
    if not cleaned:
        raise InvalidImageError("Empty base64 image data after cleaning")

    try:
        base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError("Invalid base64 format") from e
    return cleaned


class ImageAnalysisService:
    def __init__(self, llm_provider: LLMProvider, clinic_name: str = settings.CLINIC_GROUP):
        self.llm = llm_provider
        self.clinic_name = clinic_name

    async def analyze(self, image_payload: str) -> ImageAnalysis:
        cleaned = clean_base64(image_payload)
        logger.info(f"Starting image analysis ({len(cleaned)} base64 chars)")

        messages = [
            {
                "role": "system",
                "content": render(
                    Template.IMAGE_ANALYSIS_SYSTEM,
                    clinic_name=self.clinic_name,
                    common_conditions=COMMON_CONDITIONS,
                ),
            },
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "I need help identifying this nail condition. Please analyze the image and provide a detailed assessment.",
                    },
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/jpeg;base64,{cleaned}", "detail": "high"},
                    },
                ],
            },
        ]

        assessment = await self.llm.generate_structured_output(
            messages=messages,
            response_model=ImageAssessment,
            temperature=settings.LLM_TEMPERATURE,
        )
        logger.info("Image analysis completed successfully")
        return ImageAnalysis.from_assessment(assessment)
