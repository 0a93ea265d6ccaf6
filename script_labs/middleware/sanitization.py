"""
Strip markup from every string in the JSON body and the query string.

Runs before routing, so request schemas only ever see cleaned input.
"""

import json
import logging
import re
from typing import Any
from urllib.parse import parse_qsl, urlencode

logger = logging.getLogger(__name__)

SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
HTML_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_string(value: str) -> str:
    value = SCRIPT_TAG_RE.sub("", value)
    value = HTML_TAG_RE.sub("", value)
    return value.strip()


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {key: sanitize_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    return value


def sanitize_query_string(query_string: bytes) -> bytes:
    if not query_string:
        return query_string
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    return urlencode([(key, sanitize_string(value)) for key, value in pairs]).encode("latin-1")


def _is_json(scope) -> bool:
    for name, value in scope.get("headers", []):
        if name == b"content-type":
            return b"json" in value.lower()
    return False


class SanitizationMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope["query_string"] = sanitize_query_string(scope.get("query_string", b""))

        if scope["method"] in ("GET", "HEAD", "OPTIONS") or not _is_json(scope):
            await self.app(scope, receive, send)
            return

        chunks = []
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                await self.app(scope, receive, send)
                return
            chunks.append(message.get("body", b""))
            more_body = message.get("more_body", False)
        body = b"".join(chunks)

        if body:
            try:
                payload = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                # Leave malformed JSON for the body parser to reject
                pass
            else:
                body = json.dumps(sanitize_value(payload)).encode("utf-8")
                scope["headers"] = [
                    (name, value) for name, value in scope["headers"] if name != b"content-length"
                ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        sent = False

        async def replay_receive():
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)
