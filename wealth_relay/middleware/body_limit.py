from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from wealth_relay.config import settings


def _too_large(max_bytes: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "error_code": "PAYLOAD_TOO_LARGE",
            "message": "Payload too large",
            "details": {"max_bytes": max_bytes},
        },
    )


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above ``max_bytes`` with 413.

    The ceiling sits above MAX_UPLOAD_SIZE so an oversized image still reaches
    the upload handler and gets its 400 validation error. Bodies sent without
    ``content-length`` (chunked) are counted while buffered.
    """

    def __init__(self, app, max_bytes: int = None):
        super().__init__(app)
        self.max_bytes = max_bytes or settings.request_body_limit

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > self.max_bytes:
                    return _too_large(self.max_bytes)
            except ValueError:
                pass
        elif request.method in ("POST", "PUT", "PATCH"):
            total = 0
            body = bytearray()
            async for chunk in request.stream():
                total += len(chunk)
                if total > self.max_bytes:
                    return _too_large(self.max_bytes)
                body.extend(chunk)
            # Replayed to the endpoint by BaseHTTPMiddleware
            request._body = bytes(body)
        return await call_next(request)
