from __future__ import annotations

from contextvars import ContextVar

# Bound per HTTP request by RequestContextMiddleware.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[str | None] = ContextVar("user_id", default=None)
# Bound by GenerationOrchestrator.run for the lifetime of one pipeline run.
generation_id_ctx: ContextVar[str | None] = ContextVar("generation_id", default=None)
