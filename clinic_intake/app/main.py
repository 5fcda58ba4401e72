import asyncio
import base64
import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ..config import settings
from ..data.intake_flow import FIELD_BINDINGS, INTAKE_FLOW, MILESTONES
from ..domain.models import UnknownStepError
from ..execution.checks import assert_valid_flow
from ..execution.engine import InputNotExpectedError, StepView, SubmitResult, TransitionInProgressError
from ..infrastructure.database.connection import init_db
from ..llm.interface import LLMProvider, UnavailableLLMProvider
from ..repositories.consultation import ConsultationStore, InMemoryConsultationStore
from ..services.chat import ChatService
from ..services.csv_export import export_consultations, export_filename
from ..services.exceptions import SessionNotFoundError
from ..services.image_analysis import InvalidImageError, clean_base64
from ..services.portal_webhook import decode_data_url
from .dependencies import get_chat_service, get_consultation_store, get_llm_provider, get_settings_cache
from .schemas import (
    ConsultationRead,
    HealthResponse,
    ImageUpload,
    OptionSelection,
    StepRead,
    SubmitResponse,
    UserMessage,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # A broken flow must never serve traffic
    assert_valid_flow(INTAKE_FLOW, FIELD_BINDINGS, MILESTONES)

    if settings.DATABASE_URL:
        init_db()

    refresher = None
    if settings.SETTINGS_REFRESH_ENABLED:
        cache = get_settings_cache()
        await cache.refresh()
        refresher = asyncio.create_task(cache.refresh_periodically())

    yield

    if refresher is not None:
        refresher.cancel()


app = FastAPI(title="Clinic Intake Chatbot", lifespan=lifespan)

# The widget is embedded on the clinic's own site
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# --- Error Mapping ---

@app.exception_handler(SessionNotFoundError)
async def session_not_found(request: Request, exc: SessionNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(TransitionInProgressError)
async def transition_in_progress(request: Request, exc: TransitionInProgressError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(InputNotExpectedError)
async def input_not_expected(request: Request, exc: InputNotExpectedError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(UnknownStepError)
async def unknown_step(request: Request, exc: UnknownStepError):
    logger.critical(f"Flow graph is broken: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "The conversation could not continue. Please contact the clinic directly."},
    )


# --- DTO Mapping ---

def _step_read(view: StepView) -> StepRead:
    # Explicitly map the runtime's StepView onto the public API model
    return StepRead(
        session_id=view.session_id,
        step_id=view.step_id,
        input_kind=view.input_kind.value,
        options=[{"label": option.label, "value": option.value} for option in view.options],
        optional=view.optional,
        disabled=view.disabled,
        ended=view.ended,
        transcript=[entry.model_dump() for entry in view.transcript],
    )


def _submit_response(result: SubmitResult) -> SubmitResponse:
    return SubmitResponse(accepted=result.accepted, error=result.error, step=_step_read(result.view))


def _decode_upload(upload: ImageUpload) -> tuple[bytes, str]:
    decoded = decode_data_url(upload.image)
    if decoded:
        content_type, blob = decoded
        return blob, content_type
    try:
        cleaned = clean_base64(upload.image)
    except InvalidImageError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return base64.b64decode(cleaned), upload.content_type


# --- Session Endpoints ---

@app.post("/sessions", response_model=StepRead, status_code=status.HTTP_201_CREATED)
async def create_session(service: ChatService = Depends(get_chat_service)):
    """Starts a new session and runs it up to the first question."""
    return _step_read(await service.start_session())


@app.get("/sessions/{session_id}", response_model=StepRead)
def get_session(session_id: str, service: ChatService = Depends(get_chat_service)):
    return _step_read(service.get_session(session_id))


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: str, service: ChatService = Depends(get_chat_service)):
    """
    Abandons a session. Returns 204 No Content on success.
    """
    if not service.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")

    # For 204, we must explicitly return a Response object with no content
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/messages", response_model=SubmitResponse)
async def submit_message(
    session_id: str,
    message: UserMessage,
    service: ChatService = Depends(get_chat_service),
):
    return _submit_response(await service.submit_message(session_id, message.text))


@app.post("/sessions/{session_id}/options", response_model=SubmitResponse)
async def select_option(
    session_id: str,
    selection: OptionSelection,
    service: ChatService = Depends(get_chat_service),
):
    return _submit_response(await service.select_option(session_id, selection.value))


@app.post("/sessions/{session_id}/images", response_model=SubmitResponse)
async def upload_image(
    session_id: str,
    upload: ImageUpload,
    service: ChatService = Depends(get_chat_service),
):
    blob, content_type = _decode_upload(upload)
    return _submit_response(await service.upload_image(session_id, blob, content_type))


# --- Staff Endpoints ---

@app.get("/consultations", response_model=List[ConsultationRead])
async def list_consultations(
    page: int = 1,
    limit: int = 10,
    store: ConsultationStore = Depends(get_consultation_store),
):
    return await store.list(page=page, limit=limit)


@app.get("/consultations/export/csv")
async def export_all_consultations(store: ConsultationStore = Depends(get_consultation_store)):
    records = []
    page = 1
    while True:
        batch = await store.list(page=page, limit=100)
        records.extend(batch)
        if len(batch) < 100:
            break
        page += 1
    return _csv_response(export_consultations(records), export_filename())


@app.get("/consultations/{consultation_id}", response_model=ConsultationRead)
async def get_consultation(consultation_id: int, store: ConsultationStore = Depends(get_consultation_store)):
    record = await store.get(consultation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Consultation not found")
    return record


@app.get("/consultations/{consultation_id}/export/csv")
async def export_consultation(consultation_id: int, store: ConsultationStore = Depends(get_consultation_store)):
    record = await store.get(consultation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Consultation not found")
    return _csv_response(export_consultations([record]), export_filename(f"consultation-{consultation_id}"))


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Widget Support ---

@app.get("/chatbot-settings")
async def chatbot_settings(service: ChatService = Depends(get_chat_service)):
    current = await service.current_settings()
    return current.model_dump(by_alias=True)


@app.get("/health", response_model=HealthResponse)
def health(
    store: ConsultationStore = Depends(get_consultation_store),
    llm: LLMProvider = Depends(get_llm_provider),
):
    return HealthResponse(
        status="ok",
        store="memory" if isinstance(store, InMemoryConsultationStore) else "postgres",
        image_analysis="unavailable" if isinstance(llm, UnavailableLLMProvider) else "openai",
    )
