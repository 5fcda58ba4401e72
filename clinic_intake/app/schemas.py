"""
API Layer - Request/Response Schemas

Pydantic models for API request and response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class UserMessage(BaseModel):
    text: str = ""


class OptionSelection(BaseModel):
    value: str


class ImageUpload(BaseModel):
    """Base64 body for clients that cannot send multipart (e.g. the embedded widget)."""
    image: str
    content_type: str = "image/jpeg"


class OptionRead(BaseModel):
    label: str
    value: str


class TranscriptEntryRead(BaseModel):
    role: str
    kind: str
    content: str
    step_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class StepRead(BaseModel):
    """
    Rendering state for the widget: which affordance to show and whether
    input is currently disabled.
    """
    session_id: str
    step_id: Optional[str] = None
    input_kind: str
    options: List[OptionRead] = []
    optional: bool = False
    disabled: bool
    ended: bool
    transcript: List[TranscriptEntryRead] = []


class SubmitResponse(BaseModel):
    accepted: bool
    error: Optional[str] = None
    step: StepRead


class ConsultationRead(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    issue_category: Optional[str] = None
    has_image: bool = False
    image_analysis: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str
    store: str
    image_analysis: str
