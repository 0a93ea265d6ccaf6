"""
Per-client rate limiting built on slowapi.

The limiter is a single object attached to ``app.state.limiter``; its
counters live in whatever ``rate_limit_storage_uri`` points at (in-process
memory by default, Redis or Memcached for multi-instance deployments).
Limit strings are resolved from settings on every request.

Usage in route files:
    router = APIRouter(route_class=RateLimitedRoute)

    @router.post("/login")
    @auth_limit
    async def login(request: Request, ...):
        ...

The decorators register each tier against its endpoint. ``RateLimitedRoute``
checks those limits before the body is parsed or any dependency runs, so
requests later rejected for a bad token or an invalid body still count.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from script_labs.config import settings
from script_labs.core.errors import utc_timestamp

logger = logging.getLogger(__name__)


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop when present, otherwise the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return get_remote_address(request)


def is_bypassed(request: Request) -> bool:
    if not settings.rate_limit_bypass_loopback:
        return False
    address = client_address(request)
    if address not in settings.get_rate_limit_bypass_addresses():
        return False
    if not settings.is_test:
        logger.warning("[RATE LIMIT BYPASS] IP: %s, Path: %s", address, request.url.path)
    return True


def _limit_string(max_attr: str, window_attr: str) -> Callable[[], str]:
    def provider() -> str:
        return f"{getattr(settings, max_attr)} per {getattr(settings, window_attr)} seconds"
    return provider


limiter = Limiter(
    key_func=client_address,
    strategy="moving-window",
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
    key_style="endpoint",
)

# General API traffic
api_limit = limiter.limit(
    _limit_string("rate_limit_max_requests", "rate_limit_window_seconds"),
    error_message="Too many API requests from this IP, please try again later",
    exempt_when=is_bypassed,
)

# Credential checks
auth_limit = limiter.limit(
    _limit_string("rate_limit_max_auth_requests", "rate_limit_window_seconds"),
    error_message="Too many authentication attempts from this IP, please try again later",
    exempt_when=is_bypassed,
)

# Sensitive operations (account creation)
strict_limit = limiter.limit(
    _limit_string("rate_limit_strict_max_requests", "rate_limit_strict_window_seconds"),
    error_message="Too many sensitive operation attempts from this IP, please try again later",
    exempt_when=is_bypassed,
)

# Cheap, token-only endpoints
relaxed_limit = limiter.limit(
    _limit_string("rate_limit_relaxed_max_requests", "rate_limit_window_seconds"),
    error_message="Too many requests from this IP, please try again later",
    exempt_when=is_bypassed,
)


class RateLimitedRoute(APIRoute):
    def get_route_handler(self) -> Callable:
        route_handler = super().get_route_handler()
        endpoint = self.endpoint

        async def rate_limited_route_handler(request: Request) -> Response:
            if limiter.enabled and not getattr(request.state, "_rate_limiting_complete", False):
                limiter._check_request_limit(request, endpoint, False)
                # The endpoint decorator skips its own check after this
                request.state._rate_limiting_complete = True
            return await route_handler(request)

        return rate_limited_route_handler


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = exc.limit.limit.get_expiry()
    if not settings.is_test:
        logger.warning("[RATE LIMIT] IP: %s, Path: %s", client_address(request), request.url.path)
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "message": exc.detail,
                "code": "RATE_LIMIT_EXCEEDED",
                "retryAfter": retry_after,
            },
            "timestamp": utc_timestamp(),
        },
        headers={"Retry-After": str(retry_after)},
    )
