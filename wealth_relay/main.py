from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from wealth_relay.config import Settings, settings as default_settings
from wealth_relay.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from wealth_relay.middleware.body_limit import BodySizeLimitMiddleware
from wealth_relay.middleware.request_id import RequestIDMiddleware
from wealth_relay.middleware.security_headers import SecurityHeadersMiddleware
from wealth_relay.rate_limit import limiter, rate_limit_exceeded_handler
from wealth_relay.realtime.manager import ConnectionManager
from wealth_relay.realtime.router import EventRouter
from wealth_relay.routers import api, realtime, uploads
from wealth_relay.services.state import RelayState
from wealth_relay.services.storage import LocalDiskStorage
from wealth_relay.utils.logging import configure_logging

import logging

logger = logging.getLogger(__name__)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed form/query input is a client error (400), same shape as ValidationError."""
    logger.warning(
        "Request validation failed",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=400,
        content={
            "error_code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": {"errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()
            ]},
        },
    )


def _init_sentry(settings: Settings) -> None:
    if not settings.SENTRY_DSN:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
    )
    logger.info("Sentry error tracking initialized")


def create_app(
    settings: Optional[Settings] = None,
    state: Optional[RelayState] = None,
) -> FastAPI:
    """Build the relay application.

    Each app owns its relay state, connection manager and event router; they
    are reachable through ``app.state`` and injected into handlers via deps.
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL.upper(), fmt=settings.LOG_FORMAT)
    _init_sentry(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Real-time investor chat relay with payment-proof uploads",
        version="1.0.0"
    )

    relay_state = state or RelayState()
    connections = ConnectionManager(queue_size=settings.OUTBOUND_QUEUE_SIZE)
    app.state.settings = settings
    app.state.relay = relay_state
    app.state.connections = connections
    app.state.event_router = EventRouter(relay_state, connections)
    app.state.storage = LocalDiskStorage(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)

    # Add rate limiting state
    app.state.limiter = limiter

    # Register exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    allowed_origins = settings.cors_origins_list
    allow_any = "*" in allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_any else allowed_origins,
        allow_credentials=not allow_any,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(RequestIDMiddleware, upload_prefix=settings.UPLOAD_URL_PREFIX)
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.request_body_limit)
    app.add_middleware(SecurityHeadersMiddleware, upload_prefix=settings.UPLOAD_URL_PREFIX)

    @app.on_event("startup")
    async def startup_event():
        app.state.storage.ensure_dir()
        logger.info(f"{settings.APP_NAME} running on port {settings.PORT}")
        logger.info(f"File uploads enabled - storing to {settings.UPLOAD_DIR}")
        logger.info("Real-time communication active")

    @app.on_event("shutdown")
    async def shutdown_event():
        await connections.close_all()

    app.include_router(realtime.router)
    app.include_router(uploads.router)
    app.include_router(api.router)

    @app.get("/")
    def read_root():
        """Root endpoint"""
        return {
            "message": f"{settings.APP_NAME} API",
            "version": "1.0.0",
            "status": "running"
        }

    @app.get("/health")
    def health_check():
        return {
            "status": "ok",
            "connections": connections.get_connection_count(),
            "investors": relay_state.registry.count(),
        }

    # Serve uploaded files
    app.state.storage.ensure_dir()
    app.mount(
        settings.UPLOAD_URL_PREFIX,
        StaticFiles(directory=settings.UPLOAD_DIR),
        name="uploads",
    )

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_config=None,
    )


app = create_app()
