"""
Helpers shared by the request schemas.

Schemas raise ``field_error`` for rules that carry a hand-written message;
everything else is rendered from pydantic's own error text. All failures of
one request are joined into a single message.
"""

from typing import Any, Dict, Iterable, Optional

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticCustomError

CUSTOM_ERROR_PREFIX = "field_"

_LOCATION_ROOTS = {"body", "query", "path", "header", "cookie"}


def field_error(kind: str, message: str) -> PydanticCustomError:
    return PydanticCustomError(f"{CUSTOM_ERROR_PREFIX}{kind}", message)


def _field_name(loc: Iterable[Any]) -> Optional[str]:
    parts = [str(p) for p in loc if str(p) not in _LOCATION_ROOTS]
    return ".".join(parts) or None


def format_error(error: Dict[str, Any]) -> str:
    error_type = error.get("type", "")
    message = error.get("msg", "")
    field = _field_name(error.get("loc", ()))
    if error_type.startswith(CUSTOM_ERROR_PREFIX):
        return message
    if error_type == "missing" and field:
        return f"{field[:1].upper()}{field[1:]} is required"
    if field:
        return f'"{field}" {message[:1].lower()}{message[1:]}'
    return message


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> str:
    return ", ".join(format_error(err) for err in errors)


def check_text(value: Any, label: str, max_length: int, empty_message: Optional[str] = None) -> str:
    """Trimmed, non-empty string of at most ``max_length`` characters."""
    if not isinstance(value, str):
        raise field_error("string_type", f"{label} must be a string")
    value = value.strip()
    if not value:
        raise field_error("string_empty", empty_message or f"{label} cannot be empty")
    if len(value) > max_length:
        raise field_error("string_max", f"{label} cannot exceed {max_length} characters")
    return value


def validate_model(model: type, data: Dict[str, Any]) -> BaseModel:
    """Validate outside FastAPI's parameter parsing, failing like a request body would."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc
