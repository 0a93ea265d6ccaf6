import json
import logging
from typing import Iterable, List

from script_labs.core.errors import utc_timestamp

logger = logging.getLogger(__name__)

STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self'",
    "style-src 'self' https://fonts.googleapis.com",
    "img-src 'self' data:",
    "connect-src 'self' https://*.supabase.co",
    "font-src 'self' https://fonts.gstatic.com",
    "object-src 'none'",
    "frame-src 'none'",
    "upgrade-insecure-requests",
])


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                    (b"Referrer-Policy", b"no-referrer"),
                    (b"Content-Security-Policy", CONTENT_SECURITY_POLICY.encode("latin-1")),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


class OriginCheckMiddleware:
    """Reject state-changing requests whose Origin or Referer is not an allowed origin."""

    def __init__(self, app, allowed_origins: Iterable[str]):
        self.app = app
        self.allowed_origins: List[str] = [o for o in allowed_origins if o]

    def _is_allowed(self, value: str) -> bool:
        # Absent headers are allowed (curl, server-to-server)
        if not value:
            return True
        return any(value.startswith(origin) for origin in self.allowed_origins)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["method"] not in STATE_CHANGING_METHODS:
            await self.app(scope, receive, send)
            return

        headers = {name.decode("latin-1").lower(): value.decode("latin-1") for name, value in scope["headers"]}
        origin = headers.get("origin", "")
        referer = headers.get("referer", "")
        if self._is_allowed(origin) and self._is_allowed(referer):
            await self.app(scope, receive, send)
            return

        logger.warning("Blocked %s %s from origin=%r referer=%r", scope["method"], scope["path"], origin, referer)
        body = json.dumps({
            "success": False,
            "error": {"message": "Origin/Referer not allowed", "code": "CSRF_ORIGIN_REFERER"},
            "timestamp": utc_timestamp(),
        }).encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": 403,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("latin-1")),
            ],
        })
        await send({"type": "http.response.body", "body": body})
