from __future__ import annotations

from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from stylegen.db.session import get_db_session
from stylegen.services.generation_workflow import GenerationOrchestrator


def get_db() -> Session:
    yield from get_db_session()


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    # Identity is asserted by the upstream gateway; this service does not authenticate.
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator()
