"""
Database Connection Manager.

This module handles the low-level details of connecting to PostgreSQL.
The engine is created on first use so that importing the package never
requires a database (mock mode runs without DATABASE_URL).
"""

from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from ...config import settings


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not configured.")
    # echo=False in production to avoid leaking patient data in logs
    return create_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)


def init_db(engine: Engine | None = None):
    """
    Idempotent initialization.
    Creates tables if they do not exist.
    """
    # Register the table metadata before create_all
    from . import tables  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())
