"""
API error parsing for the REST client.

Turns httpx failures into a semantic category and a short human-readable message,
which is what the store shows to the user when an optimistic write is rolled back.
"""

from dataclasses import dataclass
from typing import Any, Literal

import httpx

ErrorCategory = Literal[
    "auth",        # 401 - Missing, invalid or expired token
    "forbidden",   # 403 - Row-level security rejected the request
    "not_found",   # 404 - Resource not found
    "conflict",    # 409 - Unique or foreign key violation
    "validation",  # 400/422 - Invalid payload
    "network",     # Transport-level failure, no response
    "internal",    # 5xx or unexpected errors
]


@dataclass
class ParsedApiError:
    """Parsed API error with semantic category and message."""

    category: ErrorCategory
    message: str
    code: str | None = None


def parse_http_error(  # noqa: PLR0911
    e: httpx.HTTPStatusError,
    entity_type: str = "",
    entity_name: str = "",
) -> ParsedApiError:
    """
    Parse HTTP error into semantic categories.

    Args:
        e: The HTTP status error from httpx
        entity_type: Type of entity (e.g., "bookmark", "collection") for error messages
        entity_name: Name/ID of entity for error messages

    Returns:
        ParsedApiError with category, message, and the backend error code if present
    """
    status = e.response.status_code
    body = _safe_get_body(e)
    code = body.get("code") if isinstance(body.get("code"), str) else None

    if status == 401:
        return ParsedApiError("auth", "Invalid or expired session", code)

    if status == 403:
        return ParsedApiError("forbidden", "Access denied", code)

    if status == 404:
        if entity_name:
            msg = f"{entity_type.title()} '{entity_name}' not found" if entity_type else f"'{entity_name}' not found"  # noqa: E501
        else:
            msg = f"{entity_type.title()} not found" if entity_type else "Not found"
        return ParsedApiError("not_found", msg, code)

    if status == 409:
        return ParsedApiError(
            "conflict", _body_message(body) or "The request conflicts with existing data", code,
        )

    if status in (400, 422):
        return ParsedApiError("validation", _body_message(body) or "Validation error", code)

    # Generic error for other status codes
    return ParsedApiError("internal", f"API error {status}", code)


def describe_failure(exc: BaseException, entity_type: str = "") -> str:
    """
    Build a human-readable cause for any failure of a remote operation.

    HTTP status errors are parsed into their category message, transport errors
    are reported as network problems, and anything else falls back to the
    exception text.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return parse_http_error(exc, entity_type=entity_type).message
    if isinstance(exc, httpx.TimeoutException):
        return "The request timed out"
    if isinstance(exc, httpx.RequestError):
        return f"Network error: {exc}" if str(exc) else "Network error"
    return str(exc) or type(exc).__name__


def _safe_get_body(e: httpx.HTTPStatusError) -> dict[str, Any]:
    """Safely extract the JSON error body from a response."""
    try:
        body = e.response.json()
    except ValueError:
        return {}
    # Non-dict JSON body (list, string, etc.) - return empty
    return body if isinstance(body, dict) else {}


def _body_message(body: dict[str, Any]) -> str:
    """Extract the error message, falling back to `details`."""
    for key in ("message", "msg", "details"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
