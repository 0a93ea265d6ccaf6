from typing import Any, Dict, Optional

from script_labs.core.errors import utc_timestamp


def success_body(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Standard ``{success: true, ...}`` envelope; ``data``/``message`` only when given."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    body["timestamp"] = utc_timestamp()
    return body
