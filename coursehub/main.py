"""CourseHub billing backend: FastAPI application entry point."""

import asyncio
import contextlib
import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before all other coursehub imports
# (structlog caches the processor chain on first use).
from coursehub.core.logging import configure_structlog
from coursehub.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coursehub.api.dependencies import get_reconciliation_service
from coursehub.api.routes import api_router, webhook_router
from coursehub.core.config import get_settings
from coursehub.core.exceptions import CourseHubError
from coursehub.db import close_db, close_redis, init_db, init_redis
from coursehub.integrations.stripe_gateway import configure_stripe
from coursehub.middleware.correlation import get_correlation_id, setup_correlation_middleware
from coursehub.services.reconciliation_service import run_periodic_reconciliation

logger = structlog.get_logger(__name__)


def validate_stripe_config() -> None:
    """Fail fast if Stripe keys are missing outside debug mode."""
    settings = get_settings()
    if settings.debug:
        return  # Skip in dev/test mode
    required = {
        "stripe_secret_key": settings.stripe_secret_key,
        "stripe_webhook_secret": settings.stripe_webhook_secret,
        "jwt_secret": settings.jwt_secret,
    }
    missing = [k for k, v in required.items() if not v]
    if missing:
        raise RuntimeError(f"Missing billing configuration at startup: {missing}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the health check returns 503 while draining
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_stripe_config()
    configure_stripe()

    await init_db()
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    reconciler: asyncio.Task | None = None
    if settings.reconcile_interval_seconds > 0:
        reconciler = asyncio.create_task(
            run_periodic_reconciliation(get_reconciliation_service(), settings.reconcile_interval_seconds)
        )

    yield

    logger.info("shutdown_begin")
    if reconciler is not None:
        reconciler.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reconciler
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _error_body(status_code: int, message, debug_id: str) -> dict:
    return {"success": False, "statusCode": status_code, "message": message, "debug_id": debug_id}


async def coursehub_exception_handler(request: Request, exc: CourseHubError) -> JSONResponse:
    """Render domain errors (NotFound, Conflict, RemoteProvider) as JSON."""
    debug_id = str(uuid.uuid4())

    logger.warning(
        "domain_error",
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.message,
    )

    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, exc.message, debug_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global handler for HTTPException with debug_id tracking."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )

    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, exc.detail, debug_id))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global handler for unhandled errors: full log, generic 500 to the client."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(status_code=500, content=_error_body(500, "Internal server error", debug_id))


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(CourseHubError)(coursehub_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Course platform subscription billing",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.cors_origins],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )

    setup_correlation_middleware(app)
    register_exception_handlers(app)

    # Webhook sits outside /api/v1 and reads its body raw
    app.include_router(webhook_router, tags=["webhooks"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coursehub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
