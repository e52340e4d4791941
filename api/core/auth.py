"""Clerk bearer-token authentication for creator endpoints.

Only the creator dashboard authenticates; the redemption form is public.
Tokens arrive in the Authorization header and are verified locally against
Clerk's cached JWKS. JWKS failures (a Clerk outage, not a bad token) trip a
circuit breaker so an outage turns into fast 401s instead of blocked workers.

Creators and learners share one identity provider; the creator role is a
flag on the local users table (see services.users_service).
"""

from __future__ import annotations

from functools import cache
from typing import TYPE_CHECKING, Annotated

from circuitbreaker import CircuitBreakerError, circuit
from fastapi import Depends, HTTPException, Request

from core.config import get_settings
from core.logger import bind_contextvars, get_logger

if TYPE_CHECKING:
    from clerk_backend_api import Clerk
    from clerk_backend_api.security.types import RequestState

logger = get_logger(__name__)

AUTH_CIRCUIT = "clerk_auth"

_clerk_client: Clerk | None = None
_clerk_initialized: bool = False


class AuthUnavailableError(Exception):
    """Clerk's signing keys could not be loaded."""

    def __init__(self, reason: object):
        self.reason = reason
        super().__init__(f"Clerk auth unavailable: {reason}")


@cache
def _jwks_failure_reasons() -> frozenset:
    from clerk_backend_api.security.types import TokenVerificationErrorReason

    return frozenset(
        {
            TokenVerificationErrorReason.JWK_FAILED_TO_LOAD,
            TokenVerificationErrorReason.JWK_REMOTE_INVALID,
            TokenVerificationErrorReason.JWK_FAILED_TO_RESOLVE,
            TokenVerificationErrorReason.JWK_KID_MISMATCH,
        }
    )


def init_clerk_client() -> None:
    """Create the Clerk SDK client. Without CLERK_SECRET_KEY every
    authenticated endpoint answers 401."""
    global _clerk_client, _clerk_initialized
    _clerk_initialized = True

    secret_key = get_settings().clerk_secret_key
    if not secret_key:
        logger.warning("clerk.not_configured")
        return

    from clerk_backend_api import Clerk as _Clerk

    _clerk_client = _Clerk(bearer_auth=secret_key)
    logger.info("clerk.client.initialized")


def close_clerk_client() -> None:
    global _clerk_client
    _clerk_client = None


def _bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@circuit(
    failure_threshold=5,
    recovery_timeout=60,
    expected_exception=(AuthUnavailableError,),
    name=AUTH_CIRCUIT,
)
def _verify_request(
    clerk: Clerk, request: Request, authorized_parties: list[str]
) -> RequestState:
    from clerk_backend_api.security.types import AuthenticateRequestOptions

    state = clerk.authenticate_request(
        request,
        AuthenticateRequestOptions(authorized_parties=authorized_parties),
    )
    if not state.is_signed_in:
        reason = getattr(state, "reason", None)
        if reason in _jwks_failure_reasons():
            raise AuthUnavailableError(reason)
    return state


def authenticate(request: Request) -> str | None:
    """Clerk user id for the request's bearer token, or None.

    Synchronous: verification is CPU-bound once the JWKS is cached.
    """
    if not _clerk_initialized or _clerk_client is None:
        return None
    if _bearer_token(request) is None:
        return None

    try:
        state = _verify_request(
            _clerk_client, request, get_settings().allowed_origins
        )
    except CircuitBreakerError:
        logger.warning("auth.circuit_open", circuit=AUTH_CIRCUIT)
        return None
    except AuthUnavailableError as e:
        logger.warning("auth.jwks_unavailable", reason=str(e.reason))
        return None

    if not state.is_signed_in or state.payload is None:
        return None
    return state.payload.get("sub")


def require_auth(request: Request) -> str:
    user_id = authenticate(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    # request_key in core.ratelimit reads this
    request.state.user_id = user_id
    bind_contextvars(user_id=user_id)
    return user_id


UserId = Annotated[str, Depends(require_auth)]
