"""
Request id propagation for the relay's HTTP surface.

The id comes from ``X-Request-ID`` or is generated, is echoed on the response
and is held in ``request_id_var`` for the duration of the request, so the
upload path's log lines (validation, storage, the ``file-uploaded`` fan-out)
carry it without passing it around. WebSocket traffic never passes through
here; those logs are keyed by ``connection_id``.
"""
import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from wealth_relay.config import settings
from wealth_relay.utils.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, upload_prefix: str = None):
        super().__init__(app)
        self.static_prefix = (upload_prefix or settings.UPLOAD_URL_PREFIX).rstrip("/") + "/"

    def _level_for(self, request: Request) -> int:
        # Served proof images are frequent and uninteresting
        if request.method == "GET" and request.url.path.startswith(self.static_prefix):
            return logging.DEBUG
        return logging.INFO

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        client_ip = request.client.host if request.client else None
        start = time.time()

        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}: {e}",
                extra={"duration_ms": int((time.time() - start) * 1000)},
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.log(
            self._level_for(request),
            f"{request.method} {request.url.path} from {client_ip}",
            extra={
                "request_id": request_id,
                "status": response.status_code,
                "duration_ms": int((time.time() - start) * 1000),
            },
        )
        return response
