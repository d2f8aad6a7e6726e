from __future__ import annotations

import logging

from fastapi import FastAPI

from stylegen.api.v1.router import api_router
from stylegen.core.config import settings
from stylegen.core.logging import configure_logging
from stylegen.db.session import database_ready
from stylegen.middleware.request_context import RequestContextMiddleware
from stylegen.services.image_store import get_image_store
from stylegen.services.planning import get_planner

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Stylegen API", version="0.1.0")
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


@app.on_event("startup")
def startup() -> None:
    planner = get_planner()
    store = get_image_store()
    logger.info(
        "startup_complete env=%s planner=%s image_store=%s proxy=%s",
        settings.app_env,
        type(planner).__name__,
        type(store).__name__ if store is not None else "none",
        settings.has_proxy_credentials,
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict:
    db_ok = database_ready()
    return {"ready": db_ok, "db": db_ok}
