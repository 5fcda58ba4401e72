import asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from clinic_intake.app.dependencies import get_chat_service, get_consultation_store, get_llm_provider
from clinic_intake.app.main import app
from clinic_intake.data.intake_flow import CREATE_FIELDS, FIELD_BINDINGS, INTAKE_FLOW, MILESTONES
from clinic_intake.execution.engine import FlowRuntime
from clinic_intake.execution.persistence import ProgressivePersistence
from clinic_intake.execution.side_effects import SideEffectRunner
from clinic_intake.llm.interface import UnavailableLLMProvider
from clinic_intake.repositories.consultation import InMemoryConsultationStore
from clinic_intake.repositories.session import InMemorySessionRepository
from clinic_intake.schemas.analysis import ImageAnalysis
from clinic_intake.services.chat import ChatService
from clinic_intake.services.portal_webhook import ForwardResult
from clinic_intake.state.models import SessionState


class RecordingStore(InMemoryConsultationStore):
    """In-memory store that remembers every create/patch payload."""

    def __init__(self):
        super().__init__({"source": "nailsurgery"})
        self.creates: List[Dict[str, Any]] = []
        self.patches: List[Tuple[int, Dict[str, Any]]] = []

    async def create(self, fields: Mapping[str, Any]) -> int:
        self.creates.append(dict(fields))
        return await super().create(fields)

    async def patch(self, record_id: int, fields: Mapping[str, Any]) -> None:
        self.patches.append((record_id, dict(fields)))
        await super().patch(record_id, fields)


class FailingStore(InMemoryConsultationStore):
    async def create(self, fields: Mapping[str, Any]) -> int:
        raise ConnectionError("database unavailable")

    async def patch(self, record_id: int, fields: Mapping[str, Any]) -> None:
        raise ConnectionError("database unavailable")


class StubAnalyzer:
    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.delay = delay
        self.error = error
        self.calls: List[str] = []

    async def analyze(self, image_payload: str) -> ImageAnalysis:
        self.calls.append(image_payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return ImageAnalysis(
            condition="Ingrown toenail",
            severity="mild",
            recommendations=["Soak the foot in warm salt water", "Wear open-toed shoes"],
        )


class RecordingForwarder:
    def __init__(self, success: bool = True):
        self.success = success
        self.calls: List[Tuple[Dict[str, Any], Optional[str]]] = []

    async def forward(self, fields: Mapping[str, Any], image: Optional[str] = None) -> ForwardResult:
        self.calls.append((dict(fields), image))
        return ForwardResult(success=self.success, message="ok" if self.success else "failed")


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def analyzer():
    return StubAnalyzer()


@pytest.fixture
def forwarder():
    return RecordingForwarder()


@pytest.fixture
def persistence(store):
    return ProgressivePersistence(store, MILESTONES, CREATE_FIELDS, timeout=1.0)


@pytest.fixture
def effects(analyzer, persistence, forwarder):
    return SideEffectRunner(analyzer, persistence, forwarder, analysis_timeout=1.0)


@pytest.fixture
def make_analyzer():
    return StubAnalyzer


@pytest.fixture
def make_effects(analyzer, persistence, forwarder):
    """Side-effect runner with any collaborator swapped out."""

    def _make(analyzer=analyzer, persistence=persistence, forwarder=forwarder, analysis_timeout=1.0, forward_timeout=1.0):
        return SideEffectRunner(
            analyzer, persistence, forwarder, analysis_timeout=analysis_timeout, forward_timeout=forward_timeout
        )

    return _make


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def make_runtime(effects):
    """Builds a runtime over the intake flow (or any flow) for a fresh session."""

    def _make(flow=INTAKE_FLOW, session: Optional[SessionState] = None, runner=effects, bindings=FIELD_BINDINGS):
        return FlowRuntime(flow, session or SessionState(session_id="test-session"), runner, bindings)

    return _make


@pytest.fixture
def chat_service(effects):
    return ChatService(
        session_repository=InMemorySessionRepository(),
        flow=INTAKE_FLOW,
        bindings=FIELD_BINDINGS,
        effects=effects,
    )


@pytest.fixture(scope="function")
def test_client(chat_service, store):
    """
    Provides a TestClient for API integration tests, wired to in-memory
    collaborators so no database, LLM or portal is contacted.
    """
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_consultation_store] = lambda: store
    app.dependency_overrides[get_llm_provider] = lambda: UnavailableLLMProvider()

    # The app's lifespan (flow check at startup) is managed by the TestClient
    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
