"""
HTTP client for the backend's REST surface (PostgREST conventions).

Row-level security on the backend scopes every table to the authenticated user, so
the client never filters by user itself.
"""
import logging
from typing import Any, Protocol

import httpx

from core.config import Settings, get_settings
from schemas.bookmark import Bookmark
from schemas.collection import Collection

logger = logging.getLogger(__name__)

BOOKMARK_SELECT = "*,collections(name)"
COLLECTION_SELECT = "*"

RETURN_REPRESENTATION = "return=representation"
RETURN_MINIMAL = "return=minimal"


class ApiResponseError(Exception):
    """Raised when a successful response does not contain the expected rows."""


class RemoteDataService(Protocol):
    """Request/response CRUD operations the store's actions depend on."""

    async def list_bookmarks(self) -> list[Bookmark]: ...

    async def get_bookmark(self, bookmark_id: str) -> Bookmark | None: ...

    async def create_bookmark(
        self, url: str, title: str, collection_id: str | None = None,
    ) -> Bookmark: ...

    async def update_bookmark(self, bookmark_id: str, url: str, title: str) -> Bookmark: ...

    async def set_bookmark_collection(
        self, bookmark_id: str, collection_id: str | None,
    ) -> None: ...

    async def archive_bookmark(self, bookmark_id: str, archived: bool) -> None: ...

    async def delete_bookmark(self, bookmark_id: str) -> None: ...

    async def list_collections(self) -> list[Collection]: ...

    async def create_collection(self, name: str) -> Collection: ...

    async def delete_collection(self, collection_id: str) -> None: ...


def _get_headers(api_key: str, token: str | None, prefer: str | None = None) -> dict[str, str]:
    """Get common headers for API requests."""
    headers = {
        "apikey": api_key,
        "Authorization": f"Bearer {token or api_key}",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers


def _json_or_none(response: httpx.Response) -> Any:
    """Decode a JSON body; `return=minimal` responses have none."""
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def _eq(value: str) -> str:
    return f"eq.{value}"


def _first_row(rows: Any, what: str) -> dict[str, Any]:
    if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
        raise ApiResponseError(f"No {what} returned by the server")
    return rows[0]


class BookmarkApiClient:
    """
    Async client for bookmark and collection rows.

    Wraps an `httpx.AsyncClient` whose base URL is the REST endpoint, e.g.
    `https://<project>.supabase.co/rest/v1`. Every failure propagates as an httpx
    error (or ApiResponseError); callers decide how to recover.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        access_token: str | None = None,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._access_token = access_token

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, access_token: str | None = None,
    ) -> "BookmarkApiClient":
        """Create a client with its own HTTP connection pool."""
        settings = settings or get_settings()
        http_client = httpx.AsyncClient(
            base_url=settings.rest_url,
            timeout=settings.api_timeout,
        )
        return cls(http_client, settings.api_key, access_token)

    def set_access_token(self, access_token: str | None) -> None:
        """Use a new session token (or the anon key when None) for later requests."""
        self._access_token = access_token

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "BookmarkApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------ transport

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        response = await self._http.request(
            method,
            path,
            params=params,
            json=json,
            headers=_get_headers(self._api_key, self._access_token, prefer),
        )
        logger.debug("%s %s -> %d", method, path, response.status_code)
        response.raise_for_status()
        return _json_or_none(response)

    # ------------------------------------------------------------ bookmarks

    async def list_bookmarks(self) -> list[Bookmark]:
        """Fetch all bookmarks, newest first, with their collection names."""
        rows = await self._request(
            "GET",
            "/bookmarks",
            params={"select": BOOKMARK_SELECT, "order": "created_at.desc"},
        )
        return [Bookmark.model_validate(row) for row in rows or []]

    async def get_bookmark(self, bookmark_id: str) -> Bookmark | None:
        """Fetch one bookmark with its collection name, or None if it does not exist."""
        rows = await self._request(
            "GET",
            "/bookmarks",
            params={"select": BOOKMARK_SELECT, "id": _eq(bookmark_id)},
        )
        if not rows:
            return None
        return Bookmark.model_validate(rows[0])

    async def create_bookmark(
        self, url: str, title: str, collection_id: str | None = None,
    ) -> Bookmark:
        """Create a bookmark. Empty titles are stored as NULL."""
        rows = await self._request(
            "POST",
            "/bookmarks",
            params={"select": BOOKMARK_SELECT},
            json={"url": url, "title": title or None, "collection_id": collection_id},
            prefer=RETURN_REPRESENTATION,
        )
        return Bookmark.model_validate(_first_row(rows, "bookmark"))

    async def update_bookmark(self, bookmark_id: str, url: str, title: str) -> Bookmark:
        """Update a bookmark's URL and title."""
        rows = await self._request(
            "PATCH",
            "/bookmarks",
            params={"select": BOOKMARK_SELECT, "id": _eq(bookmark_id)},
            json={"url": url, "title": title or None},
            prefer=RETURN_REPRESENTATION,
        )
        return Bookmark.model_validate(_first_row(rows, "bookmark"))

    async def set_bookmark_collection(
        self, bookmark_id: str, collection_id: str | None,
    ) -> None:
        """Move a bookmark into a collection, or out of any with None."""
        await self._request(
            "PATCH",
            "/bookmarks",
            params={"id": _eq(bookmark_id)},
            json={"collection_id": collection_id},
            prefer=RETURN_MINIMAL,
        )

    async def archive_bookmark(self, bookmark_id: str, archived: bool) -> None:
        """Set a bookmark's archived flag."""
        await self._request(
            "PATCH",
            "/bookmarks",
            params={"id": _eq(bookmark_id)},
            json={"is_archived": archived},
            prefer=RETURN_MINIMAL,
        )

    async def delete_bookmark(self, bookmark_id: str) -> None:
        """Delete a bookmark."""
        await self._request("DELETE", "/bookmarks", params={"id": _eq(bookmark_id)})

    # ----------------------------------------------------------- collections

    async def list_collections(self) -> list[Collection]:
        """Fetch all collections in creation order."""
        rows = await self._request(
            "GET",
            "/collections",
            params={"select": COLLECTION_SELECT, "order": "created_at.asc"},
        )
        return [Collection.model_validate(row) for row in rows or []]

    async def create_collection(self, name: str) -> Collection:
        """Create a collection."""
        rows = await self._request(
            "POST",
            "/collections",
            json={"name": name},
            prefer=RETURN_REPRESENTATION,
        )
        return Collection.model_validate(_first_row(rows, "collection"))

    async def delete_collection(self, collection_id: str) -> None:
        """Delete a collection. The backend nulls bookmark references to it."""
        await self._request("DELETE", "/collections", params={"id": _eq(collection_id)})
