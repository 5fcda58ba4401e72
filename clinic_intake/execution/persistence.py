"""
Progressive Persistence.

Pushes accumulated session data to the consultation store at designated
milestones: one creation milestone (at most one create per session) and a
set of patch milestones (partial updates, only once a record id exists).

Every call works on the snapshot of SessionData taken when the triggering
step was entered, so a step's own answer reaches the store from the next
milestone onward. Store failures are logged and swallowed.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..repositories.consultation import ConsultationStore
from ..state.models import SessionState

logger = logging.getLogger(__name__)

# Fields computed from the session rather than read from SessionData
VIRTUAL_FIELDS = ("conversation_log", "completed_steps")


class ProgressivePersistence:
    def __init__(
        self,
        store: ConsultationStore,
        milestones: Mapping[str, Tuple[str, ...]],
        create_fields: Tuple[str, ...],
        timeout: float = 10.0,
    ):
        self.store = store
        self.milestones = dict(milestones)
        self.create_fields = tuple(create_fields)
        self.timeout = timeout

    @property
    def record_fields(self) -> Tuple[str, ...]:
        """Every field any milestone writes, in first-seen order."""
        seen: Dict[str, None] = dict.fromkeys(self.create_fields)
        for fields in self.milestones.values():
            seen.update(dict.fromkeys(fields))
        return tuple(seen)

    async def create(self, session: SessionState, snapshot: Mapping[str, Any]) -> Optional[int]:
        """
        Creation milestone. Idempotent: skipped when a record id already exists.

        Returns:
            The record id, or None if the store was unavailable.
        """
        if session.consultation_id is not None:
            logger.debug(
                f"Session {session.session_id} already persisted as {session.consultation_id}; skipping create"
            )
            return session.consultation_id

        payload = self.project(self.create_fields, session, snapshot)
        try:
            record_id = await asyncio.wait_for(self.store.create(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Consultation create timed out for session {session.session_id}")
            return None
        except Exception as e:
            logger.error(f"Consultation create failed for session {session.session_id}: {e}")
            return None

        session.consultation_id = record_id
        logger.info(f"Session {session.session_id} persisted as consultation {record_id}")
        return record_id

    async def patch(self, milestone: str, session: SessionState, snapshot: Mapping[str, Any]) -> bool:
        """
        Patch milestone. No-op until the creation milestone has produced a record id.

        Returns:
            True if the store accepted the update.
        """
        if session.consultation_id is None:
            logger.info(f"Skipping '{milestone}' patch for session {session.session_id}: no record yet")
            return False

        fields = self.milestones.get(milestone)
        if fields is None:
            logger.error(f"Unknown persistence milestone '{milestone}'")
            return False

        payload = self.project(fields, session, snapshot)
        if not payload:
            return False

        try:
            await asyncio.wait_for(
                self.store.patch(session.consultation_id, payload), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Consultation patch '{milestone}' timed out for record {session.consultation_id}")
            return False
        except Exception as e:
            logger.error(f"Consultation patch '{milestone}' failed for record {session.consultation_id}: {e}")
            return False

        logger.debug(f"Patched record {session.consultation_id} at '{milestone}': {sorted(payload)}")
        return True

    def project(
        self, fields: Iterable[str], session: SessionState, snapshot: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Builds the payload for the given fields. Fields not yet collected are left out.
        """
        payload: Dict[str, Any] = {}
        for field in fields:
            if field == "conversation_log":
                payload[field] = [
                    {"step": entry.step_id or "unknown", "response": entry.content}
                    for entry in session.user_entries()
                ]
            elif field == "completed_steps":
                payload[field] = list(session.completed_steps)
            elif field in snapshot:
                payload[field] = snapshot[field]
        return payload
