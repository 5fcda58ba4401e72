import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..state.models import SessionState

logger = logging.getLogger(__name__)


class SessionRepository(ABC):
    """
    Defines how the application accesses live conversations.
    Sessions are not durable entities: once a session ends only its
    ConsultationRecord survives, so the repository only has to hold
    conversations that are still in progress.
    """

    @abstractmethod
    def create(self) -> SessionState:
        """Creates a new empty session with a unique ID."""
        pass

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionState]:
        """Retrieves a session by ID."""
        pass

    @abstractmethod
    def save(self, session: SessionState) -> bool:
        """
        Stores the session state. Returns False without storing anything
        if the session was deleted or evicted in the meantime.
        """
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Deletes a session. Returns True if found and deleted."""
        pass

    @abstractmethod
    def evict_idle(self) -> List[str]:
        """Drops sessions with no activity within the idle TTL. Returns their IDs."""
        pass


class InMemorySessionRepository(SessionRepository):
    """
    Process-local dictionary of live sessions. Each entry is owned by
    exactly one conversation; nothing is shared between sessions.

    Visitors who close the widget never reach the end of the flow, so every
    entry carries its last-activity time and is evicted once idle for longer
    than `idle_ttl` seconds. The sweep runs on create and get.
    """

    def __init__(self, idle_ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.idle_ttl = idle_ttl
        self.clock = clock
        self._store: Dict[str, SessionState] = {}
        self._last_active: Dict[str, float] = {}

    def create(self) -> SessionState:
        self.evict_idle()
        new_id = str(uuid.uuid4())
        session = SessionState(session_id=new_id)
        self._store[new_id] = session
        self._last_active[new_id] = self.clock()
        return session

    def get(self, session_id: str) -> Optional[SessionState]:
        self.evict_idle()
        session = self._store.get(session_id)
        if session is not None:
            self._last_active[session_id] = self.clock()
        return session

    def save(self, session: SessionState) -> bool:
        # Never resurrect a session deleted while its transition was running
        if session.session_id not in self._store:
            return False
        self._store[session.session_id] = session
        self._last_active[session.session_id] = self.clock()
        return True

    def delete(self, session_id: str) -> bool:
        self._last_active.pop(session_id, None)
        if session_id in self._store:
            del self._store[session_id]
            return True
        return False

    def evict_idle(self) -> List[str]:
        if self.idle_ttl is None:
            return []

        cutoff = self.clock() - self.idle_ttl
        expired = [
            session_id
            for session_id, last_active in self._last_active.items()
            if last_active < cutoff and not self._store[session_id].busy
        ]
        for session_id in expired:
            self.delete(session_id)
        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s)")
        return expired
