"""
Engine - Flow Runtime

The FlowRuntime is the deterministic state machine that walks one session
through a FlowDefinition. It owns no conversation logic of its own: what is
said, what is collected and where to go next all come from the StepSpecs.
-----------------------------------------------

The Control Logic is "Momentum-Based":
1. Entering a step runs its side effect, then emits its message.
2. If the step needs no input and is not terminal (Transition=ADVANCE), the
    runtime resolves `next` with an empty value and keeps going (System Turn).
3. If the step waits for input (Transition=HOLD) or ends the session
    (Transition=EXIT), control goes back to the caller (User Turn).

Exactly one transition runs per session at a time. Input arriving while a
transition (including its side-effect wait) is in flight is rejected.
"""

import asyncio
import base64
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..domain.models import (
    Derived,
    Fixed,
    FlowDefinition,
    InputKind,
    Option,
    StepSpec,
)
from ..schemas.settings import DEFAULT_SETTINGS, ChatbotSettings
from ..state.models import SessionState, TranscriptEntry
from .binding import FieldBindingTable
from .side_effects import ANALYSIS_FIELD, SideEffectRunner
from .validation import validate

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "📷 Photo uploaded"
GENERIC_ERROR = "Please check your answer and try again."


class TransitionInProgressError(RuntimeError):
    """Raised when input arrives while the session is still transitioning."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is busy; wait for the current step to finish.")


class InputNotExpectedError(ValueError):
    """Raised when input does not fit the session's current step (or the session ended)."""


class StateMachineTransition(Enum):
    """What happened to the step pointer after entering a step."""

    HOLD = auto()  # Pointer stays; waiting for user input
    ADVANCE = auto()  # Pointer moves on without input
    EXIT = auto()  # Terminal step reached


@dataclass
class StepView:
    """
    Read-only rendering state for the embedding widget.
    """
    session_id: str
    step_id: Optional[str]
    input_kind: InputKind
    options: List[Option]
    optional: bool
    disabled: bool
    ended: bool
    transcript: List[TranscriptEntry] = field(default_factory=list)


@dataclass
class SubmitResult:
    accepted: bool
    view: StepView
    error: Optional[str] = None


class FlowRuntime:
    def __init__(
        self,
        flow: FlowDefinition,
        session: SessionState,
        effects: Optional[SideEffectRunner],
        bindings: FieldBindingTable,
        settings: ChatbotSettings = DEFAULT_SETTINGS,
        pace: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.flow = flow
        self.session = session
        self.effects = effects
        self.bindings = bindings
        self.settings = settings
        self.pace = pace
        self._sleep = sleep

    # ==========================================================================
    # Public Surface
    # ==========================================================================

    async def start(self) -> StepView:
        """
        Enters the flow's entry step. A session that already started is left as is.
        """
        if self.session.current_step_id is None:
            await self.enter_step(self.flow.entry)
        return self.view()

    async def enter_step(self, step_id: str) -> StepView:
        async with self._transition():
            await self._run_from(step_id)
        return self.view()

    async def submit_input(self, value: Optional[str]) -> SubmitResult:
        """
        Gates, records and binds one answer to the current step, then advances.

        Returns:
            SubmitResult; accepted=False when validation failed (the step's
            error message is in the transcript and the step did not change).
        """
        raw = value or ""

        async with self._transition():
            step = self._awaiting_step()

            result = validate(step, raw)
            if not result.ok:
                message = result.message or GENERIC_ERROR
                self._bot(step, message, kind="error")
                logger.info(f"Session {self.session.session_id}: input rejected at '{step.id}'")
                error = message
            else:
                error = None
                self._echo(step, raw)
                bound = self.bindings.bind(step.id, raw, self.session.data)
                if bound:
                    logger.debug(f"Session {self.session.session_id}: '{step.id}' -> data['{bound}']")
                self.session.completed_steps.append(step.id)

                next_step_id = self._resolve_next(step, raw)
                if next_step_id:
                    await self._run_from(next_step_id)
                else:
                    logger.info(f"Session {self.session.session_id}: '{step.id}' resolved no next step; staying")

        return SubmitResult(accepted=error is None, view=self.view(), error=error)

    async def select_option(self, value: str) -> SubmitResult:
        step = self._current_step()
        if step is None or step.input_kind != InputKind.OPTION_CHOICE:
            raise InputNotExpectedError(f"Step '{self.session.current_step_id}' does not offer options.")
        return await self.submit_input(value)

    async def upload_image(self, data: bytes, content_type: str = "image/jpeg") -> SubmitResult:
        """Encodes the upload as a base64 data URL and submits it to the image step."""
        step = self._current_step()
        if step is None or step.input_kind != InputKind.IMAGE:
            raise InputNotExpectedError(f"Step '{self.session.current_step_id}' does not accept an image.")
        encoded = base64.b64encode(data).decode("ascii")
        return await self.submit_input(f"data:{content_type};base64,{encoded}")

    def view(self) -> StepView:
        step = self._current_step()
        waiting = step is not None and step.requires_input and not self.session.ended
        return StepView(
            session_id=self.session.session_id,
            step_id=self.session.current_step_id,
            input_kind=step.input_kind if waiting else InputKind.NONE,
            options=list(step.options) if waiting else [],
            optional=step.optional if waiting else False,
            disabled=self.session.busy or not waiting,
            ended=self.session.ended,
            transcript=list(self.session.transcript),
        )

    # ==========================================================================
    # State Machine
    # ==========================================================================

    @asynccontextmanager
    async def _transition(self):
        if self.session.busy:
            raise TransitionInProgressError(self.session.session_id)
        self.session.busy = True
        try:
            yield
        finally:
            self.session.busy = False

    async def _run_from(self, step_id: str) -> StateMachineTransition:
        """
        Enters steps until one holds for input or ends the session.
        """
        next_step_id: Optional[str] = step_id
        while True:
            transition, next_step_id = await self._enter(next_step_id)
            if transition != StateMachineTransition.ADVANCE:
                return transition

    async def _enter(self, step_id: str) -> Tuple[StateMachineTransition, Optional[str]]:
        # 1. Lookup (UnknownStepError propagates: broken graph, never continue)
        step = self.flow.get(step_id)
        self.session.current_step_id = step.id

        # 2. Cosmetic typing delay
        if self.pace and step.delay_ms:
            await self._sleep(step.delay_ms / 1000)

        # 3. Side effect against the data as it stood on entry
        payload: Dict[str, Any] = {}
        if step.side_effect is not None:
            snapshot = dict(self.session.data)
            if self.effects is None:
                logger.warning(f"No side-effect runner; skipping '{step.side_effect.tag}' at '{step.id}'")
            else:
                outcome = await self.effects.run(step.side_effect, self.session, snapshot)
                if outcome.notice:
                    self._bot(step, outcome.notice, kind="notice")
                if outcome.data:
                    self.session.data.update(outcome.data)
                    payload = outcome.data

        # 4. Message
        message = self._resolve_message(step)
        if message:
            if ANALYSIS_FIELD in payload:
                self._bot(step, message, kind="analysis", data=payload[ANALYSIS_FIELD])
            else:
                self._bot(step, message)

        # 5. Control
        if step.is_terminal:
            self.session.ended = True
            logger.info(f"Session {self.session.session_id} reached terminal step '{step.id}'")
            return StateMachineTransition.EXIT, None

        if step.requires_input:
            return StateMachineTransition.HOLD, None

        self.session.completed_steps.append(step.id)
        next_step_id = self._resolve_next(step, "")
        if not next_step_id:
            logger.warning(f"Informational step '{step.id}' resolved no next step; holding")
            return StateMachineTransition.HOLD, None
        return StateMachineTransition.ADVANCE, next_step_id

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _resolve_message(self, step: StepSpec) -> Optional[str]:
        if isinstance(step.message, Fixed):
            return step.message.value
        if isinstance(step.message, Derived):
            return step.message.fn(self.session.data, self.settings)
        return None

    def _resolve_next(self, step: StepSpec, value: str) -> Optional[str]:
        if isinstance(step.next, Fixed):
            return step.next.value or None
        if isinstance(step.next, Derived):
            return step.next.fn(value) or None
        return None

    def _current_step(self) -> Optional[StepSpec]:
        if self.session.current_step_id is None:
            return None
        return self.flow.get(self.session.current_step_id)

    def _awaiting_step(self) -> StepSpec:
        if self.session.ended:
            raise InputNotExpectedError(f"Session {self.session.session_id} has ended.")
        step = self._current_step()
        if step is None:
            raise InputNotExpectedError(f"Session {self.session.session_id} has not started.")
        if not step.requires_input:
            raise InputNotExpectedError(f"Step '{step.id}' does not take input.")
        return step

    def _echo(self, step: StepSpec, raw: str) -> None:
        if step.input_kind == InputKind.IMAGE:
            self.session.append(
                TranscriptEntry(role="user", kind="image", content=IMAGE_PLACEHOLDER, step_id=step.id)
            )
            return
        content = step.label_for(raw) or raw
        if content:
            self.session.append(TranscriptEntry(role="user", content=content, step_id=step.id))

    def _bot(self, step: StepSpec, content: str, kind: str = "text", data: Optional[Dict[str, Any]] = None) -> None:
        self.session.append(
            TranscriptEntry(role="bot", kind=kind, content=content, step_id=step.id, data=data)
        )
