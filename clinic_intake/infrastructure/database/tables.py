"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the in-memory conversation models (SessionState).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class ConsultationDBModel(SQLModel, table=True):
    """
    Persistence model for Consultation Records.
    Maps 1-to-1 with the 'consultations' table in Postgres.
    """

    __tablename__ = "consultations"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Identity & contact
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    preferred_clinic: Optional[str] = None

    # Triage
    issue_category: Optional[str] = None
    issue_specifics: Optional[str] = None
    symptom_description: Optional[str] = None
    previous_treatment: Optional[str] = None
    treatment_details: Optional[str] = None

    # Image capture
    has_image: bool = Field(default=False)
    image_path: Optional[str] = None
    image_analysis: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))

    # Wrap-up
    booking_confirmation: Optional[str] = None
    final_question: Optional[str] = None
    additional_help: Optional[str] = None
    emoji_survey: Optional[str] = None

    # Conversation trace
    conversation_log: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))
    completed_steps: List[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))

    source: Optional[str] = None
    clinic_group: Optional[str] = None
    clinic_domain: Optional[str] = None
    status: str = Field(default="new")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# Business columns a partial update may touch
RECORD_COLUMNS = frozenset(
    name for name in ConsultationDBModel.model_fields if name not in ("id", "created_at", "updated_at")
)
