"""Request rate limits (slowapi).

The redemption endpoint is public and reachable from a printed QR code, so it
is limited per client IP. Counters live in RATELIMIT_STORAGE_URI; memory://
is per-process and only suitable for local development.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import Settings, get_settings
from core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = "100/minute"
HEALTH_LIMIT = "30/minute"
REDEMPTION_LIMIT = "10/minute"


def request_key(request: Request) -> str:
    """Signed-in creators are limited per user, everyone else per IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


def build_limiter(settings: Settings) -> Limiter:
    storage_uri = settings.ratelimit_storage_uri
    if settings.environment != "development" and storage_uri == "memory://":
        logger.warning(
            "ratelimit.memory_storage",
            environment=settings.environment,
            hint="set RATELIMIT_STORAGE_URI to a redis:// URL",
        )

    return Limiter(
        key_func=request_key,
        default_limits=[DEFAULT_LIMIT],
        storage_uri=storage_uri,
        # Degrade to per-process counters if Redis drops out
        in_memory_fallback_enabled=storage_uri.startswith("redis://"),
        key_prefix="ceu:",
    )


limiter = build_limiter(get_settings())


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(
        "ratelimit.exceeded",
        key=request_key(request),
        path=request.url.path,
        limit=exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please wait a minute and try again.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )
