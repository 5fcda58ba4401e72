"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Selecting the capability-checked implementations at startup (OpenAI vs.
   unavailable provider, Postgres vs. in-memory consultation store).
2. Wiring them together (store -> persistence policy -> side-effect runner
   -> chat service).
3. Managing the lifecycle of these objects using @lru_cache to ensure
   they are created only once per application process.

By consolidating construction logic here, we keep the API layer (main.py)
clean and strictly focused on routing, while allowing for easy dependency
overrides during testing.
"""

import logging
from functools import lru_cache

from fastapi import Depends

from ..config import settings
from ..data.intake_flow import CREATE_FIELDS, FIELD_BINDINGS, INTAKE_FLOW, MILESTONES
from ..execution.persistence import ProgressivePersistence
from ..execution.side_effects import SideEffectRunner
from ..infrastructure.database.connection import get_engine
from ..llm.adapters.openai_adapter import OpenAIAdapter
from ..llm.interface import LLMProvider, UnavailableLLMProvider
from ..repositories.consultation import (
    ConsultationStore,
    InMemoryConsultationStore,
    PostgresConsultationStore,
)
from ..repositories.session import InMemorySessionRepository, SessionRepository
from ..services.chat import ChatService
from ..services.image_analysis import ImageAnalysisService
from ..services.portal_webhook import PortalWebhookForwarder
from ..services.settings_provider import PortalSettingsClient, SettingsCache

logger = logging.getLogger(__name__)

# LLM Provider (Singleton)
@lru_cache()
def get_llm_provider() -> LLMProvider:
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set; image analysis will use the fallback response")
        return UnavailableLLMProvider()
    return OpenAIAdapter(api_key=settings.OPENAI_API_KEY)

# Consultation Store (Singleton)
# Note: the in-memory store must be a singleton so records persist across requests!
@lru_cache()
def get_consultation_store() -> ConsultationStore:
    defaults = {
        "source": settings.CLINIC_SOURCE,
        "clinic_group": settings.CLINIC_GROUP,
        "clinic_domain": settings.CLINIC_DOMAIN,
        "preferred_clinic": settings.PREFERRED_CLINIC,
    }
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set; running consultation store in mock mode")
        return InMemoryConsultationStore(defaults)
    return PostgresConsultationStore(get_engine(), defaults)

# Session Repository (Singleton)
@lru_cache()
def get_session_repository() -> SessionRepository:
    return InMemorySessionRepository(idle_ttl=settings.SESSION_IDLE_TTL_SECONDS)

# Settings Cache (Singleton)
@lru_cache()
def get_settings_cache() -> SettingsCache:
    return SettingsCache(PortalSettingsClient())

@lru_cache()
def get_side_effect_runner(
    llm: LLMProvider = Depends(get_llm_provider),
    store: ConsultationStore = Depends(get_consultation_store),
) -> SideEffectRunner:
    persistence = ProgressivePersistence(
        store=store,
        milestones=MILESTONES,
        create_fields=CREATE_FIELDS,
        timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    return SideEffectRunner(
        analyzer=ImageAnalysisService(llm),
        persistence=persistence,
        forwarder=PortalWebhookForwarder(),
        analysis_timeout=settings.ANALYSIS_TIMEOUT_SECONDS,
        forward_timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
    )

# The Chat Service (Singleton Service)
@lru_cache()
def get_chat_service(
    session_repo: SessionRepository = Depends(get_session_repository),
    effects: SideEffectRunner = Depends(get_side_effect_runner),
    settings_cache: SettingsCache = Depends(get_settings_cache),
) -> ChatService:
    """
    Injects all necessary components into the ChatService.
    """
    return ChatService(
        session_repository=session_repo,
        flow=INTAKE_FLOW,
        bindings=FIELD_BINDINGS,
        effects=effects,
        settings_cache=settings_cache,
        pace=settings.PACE_TRANSITIONS,
    )
