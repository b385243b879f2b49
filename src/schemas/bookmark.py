"""Pydantic schemas for bookmark rows."""
import re
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Only the leading scheme is removed for display; the stored URL keeps it.
SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

FAVICON_URL_TEMPLATE = "https://www.google.com/s2/favicons?domain={domain}&sz=32"


def strip_scheme(url: str) -> str:
    """Remove a leading http:// or https:// from a URL."""
    return SCHEME_PATTERN.sub("", url, count=1)


def ensure_scheme(url: str) -> str:
    """
    Prefix https:// to URLs typed without a scheme.

    URLs that already start with "http" (including "https") are returned unchanged.
    """
    url = url.strip()
    if url.lower().startswith("http"):
        return url
    return f"https://{url}"


def url_domain(url: str) -> str:
    """Return the host part of a URL, falling back to the raw URL."""
    return strip_scheme(url).split("/")[0] or url


def derive_title(url: str, title: str | None) -> str:
    """Use the given title, or the URL's domain when the title is empty."""
    title = (title or "").strip()
    return title or url_domain(url)


def normalize_bookmark_url(url: str | None) -> str:
    """
    Validate and normalize a URL entered by the user.

    Raises:
        ValueError: If the URL is empty.
    """
    url = (url or "").strip()
    if not url:
        raise ValueError("URL cannot be empty")
    return ensure_scheme(url)


def as_aware_utc(value: datetime) -> datetime:
    """Treat naive datetimes from the backend as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Bookmark(BaseModel):
    """
    A bookmark as held by the client.

    Rows from the backend use `is_archived` and may carry the joined collection as
    `collections: {"name": ...}`; both shapes are accepted. An empty or NULL title is
    replaced by the URL's domain, so placeholders and confirmed rows read the same.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    url: str
    title: str = ""
    collection_id: str | None = None
    collection_name: str | None = None
    archived: bool = Field(
        default=False,
        validation_alias=AliasChoices("archived", "is_archived"),
    )
    created_at: datetime
    user_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_row(cls, data: Any) -> Any:
        """Lift the joined collection name and fill in a missing title."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "collections" in data:
            joined = data.pop("collections")
            if isinstance(joined, dict) and "collection_name" not in data:
                data["collection_name"] = joined.get("name")
        title = data.get("title")
        if isinstance(data.get("url"), str) and (title is None or isinstance(title, str)):
            data["title"] = derive_title(data["url"], title)
        return data

    @field_validator("id", "collection_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Identifiers are opaque strings; UUIDs and ints are stringified."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("created_at")
    @classmethod
    def check_created_at_timezone(cls, v: datetime) -> datetime:
        """Normalize created_at to an aware datetime."""
        return as_aware_utc(v)

    @property
    def domain(self) -> str:
        """Host part of the URL."""
        return url_domain(self.url)

    @property
    def display_url(self) -> str:
        """URL without its scheme."""
        return strip_scheme(self.url)

    @property
    def display_title(self) -> str:
        """Title, or the domain when the title is empty."""
        return derive_title(self.url, self.title)

    @property
    def favicon_url(self) -> str:
        """Favicon service URL for the bookmark's domain."""
        return FAVICON_URL_TEMPLATE.format(domain=self.domain)

    def detached(self) -> "Bookmark":
        """Copy of this bookmark with its collection reference cleared."""
        return self.model_copy(update={"collection_id": None, "collection_name": None})
