"""Library aggregator - reactive, filtered and sorted library views.

Hey future me - every view here is the same recipe:

    preferences.data
      -> pick (filter, sort type, descending) with defaults
      -> distinct_until_changed          (equal tuples never re-query)
      -> switch_map to the matching store query (old query is cancelled)
      -> SharedState in the aggregator's scope (started on first subscriber)

all_items additionally combines bookmarked artists + liked albums + playlists and sorts
the mixed list with one polymorphic key. The DOWNLOADED song filter switches over the
download-state map and filters/sorts all songs in Python.

Items are never dropped because remote metadata is missing - the refresh worker only
ever updates rows (or deletes albums the catalogue reports as NOT_FOUND).
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from datetime import timedelta
from typing import Any

from tuneshelf.application.reactive import (
    SharedState,
    TaskScope,
    combine,
    distinct_until_changed,
    map_values,
    switch_map,
)
from tuneshelf.application.workers.metadata_refresh_worker import (
    DEFAULT_ARTIST_STALENESS,
    MetadataRefreshWorker,
)
from tuneshelf.domain.entities import (
    Album,
    Artist,
    DownloadState,
    LibraryItem,
    Playlist,
    Song,
)
from tuneshelf.domain.ports import (
    ICatalogueClient,
    IDownloadTracker,
    ILibraryStore,
    IPreferenceStore,
)
from tuneshelf.domain.value_objects import (
    AlbumFilter,
    AlbumSortType,
    ArtistFilter,
    ArtistSongSortType,
    ArtistSortType,
    LibrarySortType,
    PlaylistSortType,
    SongFilter,
    SongSortType,
    is_downloaded,
    sort_downloaded_songs,
    sort_library_items,
    to_enum,
)
from tuneshelf.domain.value_objects import preference_keys as keys

logger = logging.getLogger(__name__)

SongQuery = tuple[SongFilter, SongSortType, bool]
ArtistQuery = tuple[ArtistFilter, ArtistSortType, bool]
AlbumQuery = tuple[AlbumFilter, AlbumSortType, bool]


def _descending(prefs: Mapping[str, Any], key: str) -> bool:
    value = prefs.get(key)
    return value if isinstance(value, bool) else True


def song_query(prefs: Mapping[str, Any]) -> SongQuery:
    return (
        to_enum(prefs.get(keys.SONG_FILTER), SongFilter.LIKED),
        to_enum(prefs.get(keys.SONG_SORT_TYPE), SongSortType.CREATE_DATE),
        _descending(prefs, keys.SONG_SORT_DESCENDING),
    )


def artist_query(prefs: Mapping[str, Any]) -> ArtistQuery:
    return (
        to_enum(prefs.get(keys.ARTIST_FILTER), ArtistFilter.LIKED),
        to_enum(prefs.get(keys.ARTIST_SORT_TYPE), ArtistSortType.CREATE_DATE),
        _descending(prefs, keys.ARTIST_SORT_DESCENDING),
    )


def album_query(prefs: Mapping[str, Any]) -> AlbumQuery:
    return (
        to_enum(prefs.get(keys.ALBUM_FILTER), AlbumFilter.LIKED),
        to_enum(prefs.get(keys.ALBUM_SORT_TYPE), AlbumSortType.CREATE_DATE),
        _descending(prefs, keys.ALBUM_SORT_DESCENDING),
    )


def playlist_query(prefs: Mapping[str, Any]) -> tuple[PlaylistSortType, bool]:
    return (
        to_enum(prefs.get(keys.PLAYLIST_SORT_TYPE), PlaylistSortType.CREATE_DATE),
        _descending(prefs, keys.PLAYLIST_SORT_DESCENDING),
    )


def library_query(prefs: Mapping[str, Any]) -> tuple[LibrarySortType, bool]:
    return (
        to_enum(prefs.get(keys.LIBRARY_SORT_TYPE), LibrarySortType.CREATE_DATE),
        _descending(prefs, keys.LIBRARY_SORT_DESCENDING),
    )


def artist_song_query(prefs: Mapping[str, Any]) -> tuple[ArtistSongSortType, bool]:
    return (
        to_enum(prefs.get(keys.ARTIST_SONG_SORT_TYPE), ArtistSongSortType.CREATE_DATE),
        _descending(prefs, keys.ARTIST_SONG_SORT_DESCENDING),
    )


class LibraryAggregator:
    """Reactive library views over the store, preferences and download states.

    Views are SharedState objects: iterate them to observe, read ``.value`` for the
    latest snapshot. Nothing is queried until the first subscription. The per-artist
    views are plain streams owned by their observer.
    """

    def __init__(
        self,
        store: ILibraryStore,
        preferences: IPreferenceStore,
        downloads: IDownloadTracker,
        catalogue: ICatalogueClient,
        artist_staleness: timedelta = DEFAULT_ARTIST_STALENESS,
        scope: TaskScope | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            store: Library store with live queries
            preferences: Observable filter/sort preferences
            downloads: Observable download states
            catalogue: Remote catalogue used by the background refresh
            artist_staleness: Age after which artist metadata is refreshed
            scope: Task scope owning the shared views (a new one by default)
        """
        self._store = store
        self._preferences = preferences
        self._downloads = downloads
        self._scope = scope or TaskScope("library")
        self.refresh_worker = MetadataRefreshWorker(
            store, catalogue, artist_staleness=artist_staleness
        )
        self._refresh_started = False

        self.all_songs: SharedState[list[Song]] = SharedState(
            self._songs_stream(), self._scope, [], name="library.songs"
        )
        self.all_artists: SharedState[list[Artist]] = SharedState(
            self._artists_stream(), self._scope, [], name="library.artists"
        )
        self.all_albums: SharedState[list[Album]] = SharedState(
            self._albums_stream(), self._scope, [], name="library.albums"
        )
        self.all_playlists: SharedState[list[Playlist]] = SharedState(
            self._playlists_stream(), self._scope, [], name="library.playlists"
        )

        # Inputs of all_items use fixed CREATE_DATE/descending queries, independent of
        # the per-tab preferences above.
        self.bookmarked_artists: SharedState[list[Artist]] = SharedState(
            store.artists_bookmarked(ArtistSortType.CREATE_DATE, True),
            self._scope,
            [],
            name="library.bookmarked_artists",
        )
        self.liked_albums: SharedState[list[Album]] = SharedState(
            store.albums_liked(AlbumSortType.CREATE_DATE, True),
            self._scope,
            [],
            name="library.liked_albums",
        )
        self.saved_playlists: SharedState[list[Playlist]] = SharedState(
            store.playlists(PlaylistSortType.CREATE_DATE, True),
            self._scope,
            [],
            name="library.saved_playlists",
        )
        self.all_items: SharedState[list[LibraryItem]] = SharedState(
            self._items_stream(), self._scope, [], name="library.items"
        )

    @property
    def scope(self) -> TaskScope:
        return self._scope

    # =========================================================================
    # Stream recipes
    # =========================================================================

    def _songs_stream(self) -> AsyncIterable[list[Song]]:
        queries = distinct_until_changed(map_values(self._preferences.data, song_query))
        return switch_map(queries, self._songs_for)

    def _songs_for(self, query: SongQuery) -> AsyncIterable[list[Song]]:
        song_filter, sort_type, descending = query
        logger.debug("Songs view: filter=%s sort=%s desc=%s", *query)
        if song_filter == SongFilter.LIBRARY:
            return self._store.songs(sort_type, descending)
        if song_filter == SongFilter.LIKED:
            return self._store.liked_songs(sort_type, descending)
        return switch_map(
            self._downloads.downloads,
            lambda downloads: self._downloaded_songs(downloads, sort_type, descending),
        )

    def _downloaded_songs(
        self,
        downloads: Mapping[str, DownloadState],
        sort_type: SongSortType,
        descending: bool,
    ) -> AsyncIterable[list[Song]]:
        def select(songs: list[Song]) -> list[Song]:
            present = [song for song in songs if is_downloaded(song, downloads)]
            return sort_downloaded_songs(present, downloads, sort_type, descending)

        return map_values(self._store.all_songs(), select)

    def _artists_stream(self) -> AsyncIterable[list[Artist]]:
        queries = distinct_until_changed(map_values(self._preferences.data, artist_query))

        def select(query: ArtistQuery) -> AsyncIterable[list[Artist]]:
            artist_filter, sort_type, descending = query
            if artist_filter == ArtistFilter.LIBRARY:
                return self._store.artists(sort_type, descending)
            return self._store.artists_bookmarked(sort_type, descending)

        return switch_map(queries, select)

    def _albums_stream(self) -> AsyncIterable[list[Album]]:
        queries = distinct_until_changed(map_values(self._preferences.data, album_query))

        def select(query: AlbumQuery) -> AsyncIterable[list[Album]]:
            album_filter, sort_type, descending = query
            if album_filter == AlbumFilter.LIBRARY:
                return self._store.albums(sort_type, descending)
            return self._store.albums_liked(sort_type, descending)

        return switch_map(queries, select)

    def _playlists_stream(self) -> AsyncIterable[list[Playlist]]:
        queries = distinct_until_changed(map_values(self._preferences.data, playlist_query))
        return switch_map(queries, lambda query: self._store.playlists(*query))

    def _items_stream(self) -> AsyncIterable[list[LibraryItem]]:
        queries = distinct_until_changed(map_values(self._preferences.data, library_query))

        def select(query: tuple[LibrarySortType, bool]) -> AsyncIterable[list[LibraryItem]]:
            sort_type, descending = query

            def merge(
                artists: list[Artist], albums: list[Album], playlists: list[Playlist]
            ) -> list[LibraryItem]:
                items: list[LibraryItem] = [*artists, *albums, *playlists]
                return sort_library_items(items, sort_type, descending)

            return combine(
                self.bookmarked_artists,
                self.liked_albums,
                self.saved_playlists,
                transform=merge,
            )

        return switch_map(queries, select)

    # =========================================================================
    # Per-artist views
    # =========================================================================

    # Hey future me - these belong to whoever opens the artist page, NOT to the
    # aggregator scope. They run only while iterated and aclose() cancels the query.

    def artist(self, artist_id: str) -> AsyncIterable[Artist | None]:
        return self._store.artist(artist_id)

    def artist_songs(self, artist_id: str) -> AsyncIterator[list[Song]]:
        queries = distinct_until_changed(
            map_values(self._preferences.data, artist_song_query)
        )
        return switch_map(
            queries,
            lambda query: self._store.artist_songs(artist_id, *query),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_background_refresh(self) -> None:
        """Start watching emitted artists/albums for stale remote metadata.

        Runs in the aggregator's own scope, independent of any single observer.
        """
        if self._refresh_started:
            return
        self._refresh_started = True
        self._scope.launch(
            self.refresh_worker.watch_artists(self.all_artists), name="refresh.artists"
        )
        self._scope.launch(
            self.refresh_worker.watch_albums(self.all_albums), name="refresh.albums"
        )
        logger.info("Background metadata refresh started")

    async def close(self) -> None:
        """Cancel every view and refresh task."""
        await self._scope.close()
