from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from stylegen.core.context import request_id_ctx, user_id_ctx

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request and caller ids for log records and times each request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        rid_token = request_id_ctx.set(rid)
        uid_token = user_id_ctx.set((request.headers.get("x-user-id") or "").strip() or None)
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            response.headers["x-request-id"] = rid
            logger.info(
                "request_completed method=%s path=%s status=%d duration_ms=%d",
                request.method,
                request.url.path,
                response.status_code,
                int((time.perf_counter() - started) * 1000),
            )
            return response
        finally:
            user_id_ctx.reset(uid_token)
            request_id_ctx.reset(rid_token)
