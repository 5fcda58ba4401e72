import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..infrastructure.database.tables import ConsultationDBModel, RECORD_COLUMNS

logger = logging.getLogger(__name__)


class ConsultationNotFoundError(LookupError):
    """Raised when a record id does not exist in the store."""


class ConsultationStore(ABC):
    """
    Defines how the application persists consultation records.
    The conversation only ever creates once and then patches, so this is
    all the flow needs; get/list serve the staff-facing endpoints.
    """

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None):
        # Clinic identity stamped on every new record
        self.defaults: Dict[str, Any] = dict(defaults or {})

    @abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> int:
        """Creates a record from the given fields. Returns its id."""
        pass

    @abstractmethod
    async def patch(self, record_id: int, fields: Mapping[str, Any]) -> None:
        """Merges the given fields into an existing record."""
        pass

    @abstractmethod
    async def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        """Retrieves a record by id."""
        pass

    @abstractmethod
    async def list(self, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent records first."""
        pass

    def _clean(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - RECORD_COLUMNS
        if unknown:
            logger.debug(f"Dropping non-record fields: {sorted(unknown)}")
        return {key: value for key, value in fields.items() if key in RECORD_COLUMNS}


class InMemoryConsultationStore(ConsultationStore):
    """
    Mock mode: used when no DATABASE_URL is configured.
    Same contract as the Postgres store, nothing survives a restart.
    """

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None):
        super().__init__(defaults)
        self._records: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def create(self, fields: Mapping[str, Any]) -> int:
        record_id = next(self._ids)
        now = datetime.utcnow()
        record = ConsultationDBModel(**{**self.defaults, **self._clean(fields)})
        self._records[record_id] = {
            **record.model_dump(),
            "id": record_id,
            "created_at": now,
            "updated_at": now,
        }
        logger.warning(f"Consultation store in mock mode: record {record_id} kept in memory only.")
        return record_id

    async def patch(self, record_id: int, fields: Mapping[str, Any]) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise ConsultationNotFoundError(f"Consultation {record_id} not found in mock store")
        record.update(self._clean(fields))
        record["updated_at"] = datetime.utcnow()

    async def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        record = self._records.get(record_id)
        return dict(record) if record else None

    async def list(self, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
        ordered = sorted(self._records.values(), key=lambda r: (r["created_at"], r["id"]), reverse=True)
        start = (max(page, 1) - 1) * limit
        return [dict(record) for record in ordered[start:start + limit]]


class PostgresConsultationStore(ConsultationStore):
    """
    PostgreSQL storage via SQLModel. The session API is synchronous, so
    every call runs in a worker thread to keep the event loop free.
    """

    def __init__(self, engine: Engine, defaults: Optional[Mapping[str, Any]] = None):
        super().__init__(defaults)
        self.engine = engine

    async def create(self, fields: Mapping[str, Any]) -> int:
        return await asyncio.to_thread(self._create, {**self.defaults, **self._clean(fields)})

    async def patch(self, record_id: int, fields: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._patch, record_id, self._clean(fields))

    async def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, record_id)

    async def list(self, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list, page, limit)

    def _create(self, fields: Dict[str, Any]) -> int:
        with Session(self.engine) as db:
            record = ConsultationDBModel(**fields)
            db.add(record)
            db.commit()
            db.refresh(record)
            return record.id

    def _patch(self, record_id: int, fields: Dict[str, Any]) -> None:
        with Session(self.engine) as db:
            record = db.get(ConsultationDBModel, record_id)
            if record is None:
                raise ConsultationNotFoundError(f"Consultation {record_id} does not exist in DB.")
            # Last write wins per column
            for key, value in fields.items():
                setattr(record, key, value)
            record.updated_at = datetime.utcnow()
            db.add(record)
            db.commit()

    def _get(self, record_id: int) -> Optional[Dict[str, Any]]:
        with Session(self.engine) as db:
            record = db.get(ConsultationDBModel, record_id)
            return record.model_dump() if record else None

    def _list(self, page: int, limit: int) -> List[Dict[str, Any]]:
        with Session(self.engine) as db:
            statement = (
                select(ConsultationDBModel)
                .order_by(ConsultationDBModel.created_at.desc())
                .offset((max(page, 1) - 1) * limit)
                .limit(limit)
            )
            return [record.model_dump() for record in db.exec(statement).all()]
