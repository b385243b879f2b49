"""
Temporary identifiers for locally created entities.

An entity created optimistically is shown under a temporary id until the backend
confirms it with a permanent one. Temporary ids live in their own namespace so an
external update or delete for a permanent id can never match a placeholder.
"""
from uuid import uuid4

TEMP_ID_PREFIX = "temp-"


def new_temp_id() -> str:
    """Generate a collision-resistant temporary identifier."""
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


def is_temp_id(value: str | None) -> bool:
    """Check whether an identifier is a temporary placeholder."""
    return bool(value) and value.startswith(TEMP_ID_PREFIX)
