"""
Chat Service - Application Orchestration Layer

This service is the entry point for all conversation operations. It
orchestrates the interaction between the live session registry, the
FlowRuntime and the API. It ensures that sessions are loaded, driven one
transition at a time, and saved (or discarded once they end).
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..domain.models import FlowDefinition
from ..execution.binding import FieldBindingTable
from ..execution.engine import FlowRuntime, StepView, SubmitResult
from ..execution.side_effects import SideEffectRunner
from ..repositories.session import SessionRepository
from ..schemas.settings import DEFAULT_SETTINGS, ChatbotSettings
from ..state.models import SessionState
from .exceptions import SessionNotFoundError
from .settings_provider import SettingsCache

logger = logging.getLogger(__name__)

R = TypeVar("R")


class ChatService:
    def __init__(
        self,
        session_repository: SessionRepository,
        flow: FlowDefinition,
        bindings: FieldBindingTable,
        effects: Optional[SideEffectRunner],
        settings_cache: Optional[SettingsCache] = None,
        pace: bool = False,
    ):
        self.session_repo = session_repository
        self.flow = flow
        self.bindings = bindings
        self.effects = effects
        self.settings_cache = settings_cache
        self.pace = pace

    async def start_session(self) -> StepView:
        """Creates a new session and runs it up to the first input step."""
        session = self.session_repo.create()
        logger.info(f"Starting session {session.session_id} on flow '{self.flow.name}'")
        runtime = await self._runtime(session)
        await self._drive(session, runtime.start)
        return runtime.view()

    def get_session(self, session_id: str) -> StepView:
        session = self._load(session_id)
        return FlowRuntime(self.flow, session, self.effects, self.bindings).view()

    def delete_session(self, session_id: str) -> bool:
        """Abandons a session. The consultation record, if any, is left as is."""
        deleted = self.session_repo.delete(session_id)
        if deleted:
            logger.info(f"Session {session_id} abandoned by client")
        return deleted

    async def submit_message(self, session_id: str, text: str) -> SubmitResult:
        session = self._load(session_id)
        runtime = await self._runtime(session)
        return await self._drive(session, lambda: runtime.submit_input(text))

    async def select_option(self, session_id: str, value: str) -> SubmitResult:
        session = self._load(session_id)
        runtime = await self._runtime(session)
        return await self._drive(session, lambda: runtime.select_option(value))

    async def upload_image(self, session_id: str, data: bytes, content_type: str) -> SubmitResult:
        session = self._load(session_id)
        runtime = await self._runtime(session)
        return await self._drive(session, lambda: runtime.upload_image(data, content_type))

    async def current_settings(self) -> ChatbotSettings:
        if self.settings_cache is None:
            return DEFAULT_SETTINGS
        return await self.settings_cache.get()

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _load(self, session_id: str) -> SessionState:
        session = self.session_repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _runtime(self, session: SessionState) -> FlowRuntime:
        return FlowRuntime(
            flow=self.flow,
            session=session,
            effects=self.effects,
            bindings=self.bindings,
            settings=await self.current_settings(),
            pace=self.pace,
        )

    async def _drive(self, session: SessionState, action: Callable[[], Awaitable[R]]) -> R:
        try:
            return await action()
        finally:
            # Ended sessions are discarded; only the consultation record survives
            if session.ended:
                self.session_repo.delete(session.session_id)
                logger.info(f"Session {session.session_id} ended and was discarded")
            elif not self.session_repo.save(session):
                logger.info(f"Session {session.session_id} was discarded during its transition; not saved")
