"""
State Layer - Runtime Data Models

This module defines the per-session runtime state: the accumulated answers
(SessionData), the append-only transcript and the pointer into the flow.
One SessionState belongs to exactly one conversation and is never shared.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class TranscriptEntry(BaseModel):
    """
    A single line of the conversation as rendered by the widget.
    """
    role: Literal["bot", "user"]
    kind: Literal["text", "analysis", "error", "notice", "image"] = "text"
    content: str
    step_id: Optional[str] = None

    # Structured payload for special entries (e.g. analysis results)
    data: Optional[Dict[str, Any]] = None


class SessionState(BaseModel):
    """
    The state of one intake conversation.
    """
    session_id: str
    current_step_id: Optional[str] = None

    # SessionData: grows monotonically, fields are added or overwritten
    data: Dict[str, Any] = Field(default_factory=dict)
    transcript: List[TranscriptEntry] = Field(default_factory=list)

    # Durable record id, set once the creation milestone succeeded
    consultation_id: Optional[int] = None
    completed_steps: List[str] = Field(default_factory=list)

    busy: bool = False
    ended: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def append(self, entry: TranscriptEntry) -> None:
        self.transcript.append(entry)

    def user_entries(self) -> List[TranscriptEntry]:
        return [entry for entry in self.transcript if entry.role == "user"]
