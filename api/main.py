"""FastAPI application for the CEU Certificates API."""

import asyncio
from contextlib import asynccontextmanager

import fastapi
import httpx
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core.auth import close_clerk_client, init_clerk_client
from core.config import get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging, get_logger
from core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from core.ratelimit import limiter, rate_limit_exceeded_handler
from routes import classes_router, health_router, redemptions_router
from services.artifact_store import AzureBlobArtifactStore
from services.notification_service import PostmarkNotifier

configure_logging()
logger = get_logger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        exc_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(exc.errors()),
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Create shared clients at startup, close them on shutdown.

    The pipeline never builds its own clients: the DB engine, the blob client
    and the HTTP client used for Postmark all live on app.state.
    """
    settings = get_settings()

    app.state.engine = create_engine()
    app.state.session_maker = create_session_maker(app.state.engine)
    app.state.http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    app.state.notifier = PostmarkNotifier.from_settings(app.state.http_client)

    app.state.artifact_store = None
    if settings.azure_storage_connection_string:
        app.state.artifact_store = AzureBlobArtifactStore.from_settings()
    else:
        logger.warning("artifact_store.not_configured")

    if not app.state.notifier.is_configured:
        logger.warning("email.not_configured")

    try:
        async with asyncio.timeout(60):
            await asyncio.gather(
                asyncio.to_thread(init_clerk_client),
                init_db(app.state.engine),
            )
        logger.info("init.complete")
    except TimeoutError:
        logger.error("init.timeout", hint="Startup hung - check DB connectivity")
        raise RuntimeError("Application startup timed out")

    try:
        yield
    finally:
        if app.state.artifact_store is not None:
            await app.state.artifact_store.close()
        await app.state.http_client.aclose()
        close_clerk_client()
        await dispose_engine(app.state.engine)


_settings = get_settings()

app = fastapi.FastAPI(
    title="CEU Certificates API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["X-Request-Id"],
    max_age=600,
)
app.add_middleware(RequestContextMiddleware)

app.include_router(health_router)
app.include_router(classes_router)
app.include_router(redemptions_router)
