"""HTTP middleware for error translation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wirecheck.core.errors import WirecheckError

logger = structlog.get_logger()

# Type alias for the call_next function
CallNext = Callable[[Request], Awaitable[Response]]


class WirecheckErrorMiddleware(BaseHTTPMiddleware):
    """Render WirecheckError as its JSON form.

    Retryable errors (store locked, checkout flaky) map to 503, the rest to 500.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        try:
            return await call_next(request)
        except WirecheckError as e:
            logger.error("request_failed", path=request.url.path, error=e.error_name)
            return JSONResponse(e.to_dict(), status_code=503 if e.retryable else 500)
