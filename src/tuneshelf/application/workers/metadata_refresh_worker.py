"""Metadata Refresh Worker - best-effort remote refresh of library artists and albums.

Hey future me - this worker rides along with the library views. It watches the lists
the views emit and, for every change, fetches remote metadata for the items that need
it:

1. Artists with no thumbnail, or whose metadata is older than the staleness threshold
2. Albums with a song count of exactly zero (never fetched, or emptied)

On success the page is merged into the store via update_artist/update_album (idempotent
per id). On an album failure whose message contains NOT_FOUND, the album is deleted
locally - it no longer exists remotely. Every other failure is logged and dropped.

No retries, no backoff. The store write triggers a new emission, which is how a fixed
item drops out of the "needs refresh" set. An item the catalogue cannot fix (no
thumbnail, no tracks) would still need a refresh after its own write, so every id is
attempted at most once per staleness window. Without that memory the worker would
refetch it on every emission its own write caused.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import TypeVar

from tuneshelf.domain.entities import Album, Artist, ensure_utc_aware, utc_now
from tuneshelf.domain.exceptions import RemoteFetchError, StoreError
from tuneshelf.domain.ports import ICatalogueClient, ILibraryStore
from tuneshelf.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ARTIST_STALENESS = timedelta(days=10)


class MetadataRefreshWorker:
    """Refreshes stale artist and empty album metadata from the remote catalogue."""

    def __init__(
        self,
        store: ILibraryStore,
        catalogue: ICatalogueClient,
        artist_staleness: timedelta = DEFAULT_ARTIST_STALENESS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Library store receiving merged pages and deletions
            catalogue: Remote catalogue client
            artist_staleness: Age after which artist metadata is refetched
            clock: Returns the current UTC time (injectable for tests)
        """
        self._store = store
        self._catalogue = catalogue
        self._artist_staleness = artist_staleness
        self._clock = clock
        self._attempted: dict[tuple[str, str], datetime] = {}
        self._stats = {"artists_updated": 0, "albums_updated": 0, "albums_deleted": 0, "failed": 0}

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def is_artist_stale(self, artist: Artist) -> bool:
        if artist.thumbnail_url is None:
            return True
        age = self._clock() - ensure_utc_aware(artist.last_update_time)
        return age > self._artist_staleness

    @staticmethod
    def is_album_incomplete(album: Album) -> bool:
        return album.song_count == 0

    # =========================================================================
    # Watch loops (run inside the aggregator's TaskScope)
    # =========================================================================

    async def watch_artists(self, artists: AsyncIterable[list[Artist]]) -> None:
        async for batch in artists:
            await self.refresh_artists(batch)

    async def watch_albums(self, albums: AsyncIterable[list[Album]]) -> None:
        async for batch in albums:
            await self.refresh_albums(batch)

    # =========================================================================
    # One refresh pass per observed list
    # =========================================================================

    async def refresh_artists(self, artists: Iterable[Artist]) -> int:
        """Fetch every stale artist concurrently. Returns the number updated."""
        stale = [
            artist
            for artist in artists
            if self.is_artist_stale(artist) and self._claim("artist", artist.id)
        ]
        return await self._run_batch("artists", stale, self._refresh_artist)

    async def refresh_albums(self, albums: Iterable[Album]) -> int:
        """Fetch every album with zero songs concurrently. Returns the number updated."""
        incomplete = [
            album
            for album in albums
            if self.is_album_incomplete(album) and self._claim("album", album.id)
        ]
        return await self._run_batch("albums", incomplete, self._refresh_album)

    def _claim(self, kind: str, item_id: str) -> bool:
        """Record an attempt for (kind, id) unless one happened within the staleness window."""
        now = self._clock()
        last = self._attempted.get((kind, item_id))
        if last is not None and now - last <= self._artist_staleness:
            return False
        self._attempted[(kind, item_id)] = now
        return True

    async def _run_batch(
        self, label: str, items: list[T], refresh: Callable[[T], Awaitable[bool]]
    ) -> int:
        if not items:
            return 0
        set_correlation_id()
        logger.info("Refreshing %d %s from catalogue", len(items), label)
        results = await asyncio.gather(*(refresh(item) for item in items))
        return sum(1 for updated in results if updated)

    async def _refresh_artist(self, artist: Artist) -> bool:
        try:
            page = await self._catalogue.fetch_artist(artist.id)
        except RemoteFetchError as e:
            self._stats["failed"] += 1
            logger.warning("Artist refresh failed for %s: %s", artist.id, e.message)
            return False

        try:
            await self._store.update_artist(artist.id, page)
        except StoreError as e:
            self._stats["failed"] += 1
            logger.error("Storing refreshed artist %s failed: %s", artist.id, e.message)
            return False

        self._stats["artists_updated"] += 1
        return True

    async def _refresh_album(self, album: Album) -> bool:
        try:
            page = await self._catalogue.fetch_album(album.id)
        except RemoteFetchError as e:
            self._stats["failed"] += 1
            logger.warning("Album refresh failed for %s: %s", album.id, e.message)
            if e.is_not_found:
                await self._delete_missing_album(album)
            return False

        try:
            await self._store.update_album(album.id, page)
        except StoreError as e:
            self._stats["failed"] += 1
            logger.error("Storing refreshed album %s failed: %s", album.id, e.message)
            return False

        self._stats["albums_updated"] += 1
        return True

    async def _delete_missing_album(self, album: Album) -> None:
        try:
            await self._store.delete_album(album.id)
        except StoreError as e:
            logger.error("Deleting missing album %s failed: %s", album.id, e.message)
            return
        self._stats["albums_deleted"] += 1
        logger.info("Album %s (%s) no longer exists remotely, removed", album.id, album.title)
