"""Pydantic schemas for collection rows."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from schemas.bookmark import as_aware_utc

MAX_COLLECTION_NAME_LENGTH = 100


def normalize_collection_name(name: str | None) -> str:
    """
    Validate and normalize a collection name entered by the user.

    Names are not required to be unique.

    Raises:
        ValueError: If the name is blank or too long.
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Collection name cannot be empty")
    if len(name) > MAX_COLLECTION_NAME_LENGTH:
        raise ValueError(
            f"Collection name exceeds maximum length of {MAX_COLLECTION_NAME_LENGTH} characters "
            f"(got {len(name)} characters).",
        )
    return name


class Collection(BaseModel):
    """A named group of bookmarks."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    created_at: datetime
    user_id: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Identifiers are opaque strings."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("created_at")
    @classmethod
    def check_created_at_timezone(cls, v: datetime) -> datetime:
        """Normalize created_at to an aware datetime."""
        return as_aware_utc(v)
