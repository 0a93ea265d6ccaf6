import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from fastapi import Request

from script_labs.config import settings
from script_labs.core.rate_limit import client_address

logger = logging.getLogger(__name__)

REDACTED_FIELDS = ("password", "token")


class RequestStats:
    """In-process request counters; one instance per application."""

    def __init__(self):
        self._lock = threading.Lock()
        self.requests = 0
        self.errors = 0
        self.endpoints: Dict[str, int] = {}
        self.start_time = time.time()

    def record(self, endpoint: str, status_code: int):
        with self._lock:
            self.requests += 1
            self.endpoints[endpoint] = self.endpoints.get(endpoint, 0) + 1
            if status_code >= 400:
                self.errors += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            uptime = time.time() - self.start_time
            hours = int(uptime // 3600)
            minutes = int((uptime % 3600) // 60)
            error_rate = (self.errors / self.requests * 100) if self.requests else 0.0
            return {
                "requests": self.requests,
                "endpoints": dict(self.endpoints),
                "errors": self.errors,
                "startTime": int(self.start_time * 1000),
                "uptime": f"{hours}h {minutes}m",
                "requestsPerHour": round(self.requests / (uptime / 3600)) if uptime > 0 else 0,
                "errorRate": f"{error_rate:.2f}%",
            }


def _redact(body: bytes) -> Any:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(payload, dict):
        for name in REDACTED_FIELDS:
            if name in payload:
                payload[name] = "[REDACTED]"
    return payload


class RequestLoggingMiddleware:
    def __init__(self, app, stats: RequestStats):
        self.app = app
        self.stats = stats

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500
        body_chunks = []

        async def capture_receive():
            message = await receive()
            if settings.is_development and message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        async def capture_send(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, capture_receive, capture_send)
        finally:
            route = scope.get("route")
            endpoint = f"{scope['method']} {getattr(route, 'path', scope['path'])}"
            self.stats.record(endpoint, status_code)
            if not settings.is_test:
                self._log(scope, status_code, (time.perf_counter() - start) * 1000, b"".join(body_chunks))

    def _log(self, scope, status_code: int, duration_ms: float, body: bytes):
        request = Request(scope)
        ip = client_address(request)
        level = logging.INFO
        if 400 <= status_code < 500:
            level = logging.WARNING
        elif status_code >= 500:
            level = logging.ERROR
        logger.log(level, "%s %s - %s (%dms) - %s", scope["method"], scope["path"], status_code, duration_ms, ip)

        if settings.is_development:
            details: Dict[str, Any] = {
                "userAgent": request.headers.get("user-agent"),
            }
            user_id = scope.get("state", {}).get("user_id")
            if user_id is not None:
                details["userId"] = user_id
            if scope["method"] != "GET" and body:
                details["body"] = _redact(body)
            logger.debug("Request details: %s", json.dumps(details, default=str))


def security_log(operation: str) -> Callable[[Request], None]:
    """Route dependency that records an audit line for a sensitive operation."""

    def log_attempt(request: Request):
        if settings.is_test:
            return
        logger.info("SECURITY: %s attempt from %s", operation, client_address(request))
        logger.info("   User-Agent: %s", request.headers.get("user-agent"))
        user_id: Optional[Any] = getattr(request.state, "user_id", None)
        if user_id is not None:
            logger.info("   User ID: %s", user_id)

    return log_attempt
