"""
Middleware for the voice controller API.
"""

import time
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

# Session polling would otherwise drown the log
QUIET_PATHS = {"/healthz", "/docs", "/redoc", "/openapi.json", "/api/v1/session"}


def session_state(request: Request) -> Optional[dict]:
    """Status fields of the controller session, if the app has one yet."""
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        return None
    session = controller.session
    return {
        "status": session.status.value,
        "verified": session.verified,
        "user": session.current_user,
        "busy": controller.busy
    }


class SessionAuditMiddleware(BaseHTTPMiddleware):
    """
    Logs every controller request together with the session transition it caused.

    Binds the ``X-Call-ID`` correlation ID into the structlog context and echoes
    it back. Responses are marked uncacheable because session snapshots hand
    over queued speech and routes exactly once.
    """

    def __init__(self, app, quiet_paths: set = None):
        super().__init__(app)
        self.quiet_paths = quiet_paths or QUIET_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Call-ID", f"req_{int(time.time() * 1000)}")
        quiet = request.url.path in self.quiet_paths

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        before = session_state(request)
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                session=before
            )
            raise

        after = session_state(request)
        if not quiet:
            logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                session_before=before,
                session_after=after
            )

        response.headers["X-Call-ID"] = correlation_id
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response
