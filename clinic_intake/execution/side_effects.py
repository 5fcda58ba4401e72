"""
Side-Effect Runner.

Executes the external operation a step names on entry: image analysis,
the creation/patch persistence milestones, or forwarding to the portal.
Every call is bounded and degrades instead of raising, so no side-effect
error unwinds past the transition that triggered it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from ..domain.models import SideEffect
from ..schemas.analysis import FALLBACK_ANALYSIS, ImageAnalysis
from ..state.models import SessionState
from .persistence import ProgressivePersistence

logger = logging.getLogger(__name__)

# Reserved SessionData keys
IMAGE_FIELD = "image_path"
ANALYSIS_FIELD = "image_analysis"

ANALYSIS_APOLOGY = (
    "⚠️ Our image analysis service is temporarily unavailable. "
    "Let's continue with your consultation."
)
NO_IMAGE_NOTICE = "No valid image found for analysis. Let's continue with your consultation."


class ImageAnalyzer(Protocol):
    async def analyze(self, image_payload: str) -> ImageAnalysis: ...


class Forwarder(Protocol):
    async def forward(self, fields: Mapping[str, Any], image: Optional[str] = None) -> Any: ...


@dataclass
class SideEffectOutcome:
    """
    What a side effect hands back to the runtime.

    Attributes:
        data: Fields to merge into SessionData.
        notice: User-facing apology to append before the step's message.
        failed: The operation degraded (fallback used or skipped).
    """
    data: Dict[str, Any] = field(default_factory=dict)
    notice: Optional[str] = None
    failed: bool = False


class SideEffectRunner:
    def __init__(
        self,
        analyzer: ImageAnalyzer,
        persistence: ProgressivePersistence,
        forwarder: Optional[Forwarder] = None,
        analysis_timeout: float = 12.0,
        forward_timeout: float = 15.0,
    ):
        self.analyzer = analyzer
        self.persistence = persistence
        self.forwarder = forwarder
        self.analysis_timeout = analysis_timeout
        self.forward_timeout = forward_timeout

    async def run(
        self, effect: SideEffect, session: SessionState, snapshot: Mapping[str, Any]
    ) -> SideEffectOutcome:
        logger.debug(f"Session {session.session_id}: running side effect '{effect.tag}'")

        if effect.kind == SideEffect.ANALYZE_IMAGE:
            return await self._analyze(session, snapshot)

        if effect.kind == SideEffect.PERSIST_CREATE:
            record_id = await self.persistence.create(session, snapshot)
            return SideEffectOutcome(failed=record_id is None)

        if effect.kind == SideEffect.PERSIST_PATCH:
            ok = await self.persistence.patch(effect.milestone, session, snapshot)
            return SideEffectOutcome(failed=not ok)

        if effect.kind == SideEffect.FORWARD_PORTAL:
            return await self._forward(session, snapshot)

        logger.error(f"No handler for side effect '{effect.tag}'")
        return SideEffectOutcome(failed=True)

    async def _analyze(self, session: SessionState, snapshot: Mapping[str, Any]) -> SideEffectOutcome:
        image = snapshot.get(IMAGE_FIELD)
        if not image:
            logger.warning(f"Session {session.session_id}: analysis requested without an image")
            return SideEffectOutcome(
                data={ANALYSIS_FIELD: FALLBACK_ANALYSIS.model_dump()},
                notice=NO_IMAGE_NOTICE,
                failed=True,
            )

        try:
            analysis = await asyncio.wait_for(self.analyzer.analyze(image), timeout=self.analysis_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Session {session.session_id}: image analysis timed out after {self.analysis_timeout}s"
            )
            analysis = None
        except Exception as e:
            logger.error(f"Session {session.session_id}: image analysis failed: {e}")
            analysis = None

        if analysis is None:
            return SideEffectOutcome(
                data={ANALYSIS_FIELD: FALLBACK_ANALYSIS.model_dump()},
                notice=ANALYSIS_APOLOGY,
                failed=True,
            )
        return SideEffectOutcome(data={ANALYSIS_FIELD: analysis.model_dump()})

    async def _forward(self, session: SessionState, snapshot: Mapping[str, Any]) -> SideEffectOutcome:
        if self.forwarder is None:
            logger.info("No portal forwarder configured; skipping forward")
            return SideEffectOutcome()

        fields = self.persistence.project(self.persistence.record_fields, session, snapshot)
        fields["consultation_id"] = session.consultation_id

        # Inline images travel as the multipart file, not inside the JSON
        image = snapshot.get(IMAGE_FIELD)
        if isinstance(image, str) and image.startswith("data:image/"):
            fields.pop(IMAGE_FIELD, None)
        else:
            image = None

        try:
            result = await asyncio.wait_for(self.forwarder.forward(fields, image), timeout=self.forward_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Session {session.session_id}: portal forward timed out after {self.forward_timeout}s"
            )
            return SideEffectOutcome(failed=True)
        except Exception as e:
            logger.error(f"Session {session.session_id}: portal forward raised: {e}")
            return SideEffectOutcome(failed=True)

        success = bool(getattr(result, "success", False))
        if not success:
            logger.warning(
                f"Session {session.session_id}: portal forward failed: {getattr(result, 'message', result)}"
            )
        return SideEffectOutcome(failed=not success)
