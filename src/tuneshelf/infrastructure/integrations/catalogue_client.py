"""Remote catalogue client (Deezer public API).

Hey future me - Deezer's public API needs no auth for artist/album lookups, which is
all the background refresh uses. Two quirks matter here:

1. Deezer answers 200 OK with {"error": {...}} for most failures. Error code 800
   ("no data") means the item does not exist.
2. The refresh worker only looks at RemoteFetchError.is_not_found, which checks for
   NOT_FOUND in the message. So every "item does not exist" path (code 800, HTTP 404)
   MUST put NOT_FOUND into the message. Everything else is a plain failure.

There is no retry here on purpose - the refresh protocol is one attempt per change.
"""

import logging
from typing import Any

import httpx

from tuneshelf.config import CatalogueSettings
from tuneshelf.domain.entities import (
    AlbumPage,
    ArtistPage,
    CatalogueArtistRef,
    CatalogueTrack,
)
from tuneshelf.domain.exceptions import NOT_FOUND_MARKER, RemoteFetchError
from tuneshelf.domain.ports import ICatalogueClient

logger = logging.getLogger(__name__)

DEEZER_NO_DATA = 800


def _artist_ref(data: dict[str, Any]) -> CatalogueArtistRef:
    return CatalogueArtistRef(id=str(data["id"]), name=data.get("name", ""))


def _release_year(release_date: str | None) -> int | None:
    if not release_date or len(release_date) < 4 or not release_date[:4].isdigit():
        return None
    return int(release_date[:4]) or None


def parse_artist(data: dict[str, Any]) -> ArtistPage:
    return ArtistPage(
        id=str(data["id"]),
        name=data.get("name", ""),
        thumbnail_url=data.get("picture_medium") or data.get("picture"),
        album_count=int(data.get("nb_album") or 0),
    )


def parse_album(data: dict[str, Any]) -> AlbumPage:
    contributors = data.get("contributors") or []
    if not contributors and data.get("artist"):
        contributors = [data["artist"]]

    tracks = []
    for item in (data.get("tracks") or {}).get("data", []):
        track_artists = (_artist_ref(item["artist"]),) if item.get("artist") else ()
        tracks.append(
            CatalogueTrack(
                id=str(item["id"]),
                title=item.get("title", ""),
                duration=int(item.get("duration") or 0),
                artists=track_artists,
            )
        )

    return AlbumPage(
        id=str(data["id"]),
        title=data.get("title", ""),
        year=_release_year(data.get("release_date")),
        thumbnail_url=data.get("cover_medium") or data.get("cover"),
        artists=tuple(_artist_ref(c) for c in contributors),
        tracks=tuple(tracks),
    )


class CatalogueClient(ICatalogueClient):
    """HTTP client for artist/album lookups.

    Usage:
        client = CatalogueClient(settings.catalogue)
        page = await client.fetch_album("302127")
        await client.close()
    """

    def __init__(self, settings: CatalogueSettings) -> None:
        """Initialize catalogue client.

        Args:
            settings: Base URL, timeout and user agent
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "application/json",
                },
                timeout=self.settings.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, kind: str, item_id: str) -> dict[str, Any]:
        client = await self._get_client()
        endpoint = f"/{kind}/{item_id}"
        try:
            response = await client.get(endpoint)
        except httpx.HTTPError as e:
            raise RemoteFetchError(f"Catalogue request {endpoint} failed: {e}") from e

        if response.status_code == 404:
            raise RemoteFetchError(
                f"{NOT_FOUND_MARKER}: {kind} {item_id} does not exist", status_code=404
            )
        if response.is_error:
            raise RemoteFetchError(
                f"Catalogue request {endpoint} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteFetchError(f"Catalogue returned invalid JSON for {endpoint}") from e

        if not isinstance(data, dict):
            raise RemoteFetchError(f"Unexpected catalogue payload for {endpoint}")

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            detail = error.get("message", "") if isinstance(error, dict) else str(error)
            if code == DEEZER_NO_DATA:
                raise RemoteFetchError(f"{NOT_FOUND_MARKER}: {kind} {item_id} ({detail})")
            raise RemoteFetchError(f"Catalogue error for {endpoint}: {detail} (code {code})")

        return data

    async def fetch_artist(self, artist_id: str) -> ArtistPage:
        data = await self._get_json("artist", artist_id)
        try:
            return parse_artist(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteFetchError(f"Malformed artist payload for {artist_id}: {e}") from e

    async def fetch_album(self, album_id: str) -> AlbumPage:
        data = await self._get_json("album", album_id)
        try:
            return parse_album(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteFetchError(f"Malformed album payload for {album_id}: {e}") from e
