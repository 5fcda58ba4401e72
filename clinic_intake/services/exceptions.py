"""
Service Layer Exceptions

Custom exceptions for the ChatService and related orchestration logic.
"""


class SessionNotFoundError(LookupError):
    """Raised when a session id is unknown or the session already ended."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")
