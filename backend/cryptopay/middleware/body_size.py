import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body is larger than ``max_body_size``."""

    def __init__(self, app: ASGIApp, max_body_size: int = 1_048_576):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > self.max_body_size
            except ValueError:
                return PlainTextResponse("Invalid Content-Length", status_code=400)
            if too_large:
                logger.warning(f"Rejected {content_length} byte body on {request.url.path}")
                return PlainTextResponse("Payload too large", status_code=413)
        return await call_next(request)
