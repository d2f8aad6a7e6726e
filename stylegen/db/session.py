from __future__ import annotations

import logging
from typing import Any, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stylegen.core.config import settings

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Sourcing fans out on worker threads and the API serves sync routes off-loop.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": settings.db_pool_size}


engine = create_engine(settings.database_url, future=True, **engine_options(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db_session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def database_ready() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("database_ping_failed")
        return False
    return True
