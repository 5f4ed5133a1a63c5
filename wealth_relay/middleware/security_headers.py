from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wealth_relay.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, upload_prefix: str = None):
        super().__init__(app)
        self.upload_prefix = (upload_prefix or settings.UPLOAD_URL_PREFIX).rstrip("/") + "/"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        if request.url.path.startswith(self.upload_prefix):
            # Stored proofs are user-supplied; never let them run as a document.
            response.headers["Content-Security-Policy"] = "default-src 'none'; img-src 'self'; sandbox"
        else:
            response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        return response
