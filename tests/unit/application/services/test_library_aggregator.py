"""Tests for LibraryAggregator views.

Hey future me - the store here is a small fake built on StateStreams so every query
is "live" the same way LibraryStore is: first emission is the current state, then one
emission per change. The preference store and download tracker are the real
in-memory implementations.
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from tuneshelf.application.reactive import StateStream, map_values
from tuneshelf.application.services.library_aggregator import (
    LibraryAggregator,
    album_query,
    artist_query,
    song_query,
)
from tuneshelf.application.workers.metadata_refresh_worker import DEFAULT_ARTIST_STALENESS
from tuneshelf.domain.entities import (
    Album,
    AlbumPage,
    Artist,
    ArtistPage,
    DownloadState,
    DownloadStatus,
    ExtraMetadata,
    LibraryItemKind,
    Playlist,
    Song,
    utc_now,
)
from tuneshelf.domain.exceptions import RemoteFetchError
from tuneshelf.domain.ports import ICatalogueClient, ILibraryStore
from tuneshelf.domain.value_objects import (
    AlbumFilter,
    AlbumSortType,
    ArtistFilter,
    ArtistSongSortType,
    ArtistSortType,
    PlaylistSortType,
    SongFilter,
    SongSortType,
    sort_albums,
    sort_artist_songs,
    sort_artists,
    sort_playlists,
    sort_songs,
)
from tuneshelf.domain.value_objects import preference_keys as keys
from tuneshelf.infrastructure.downloads import DownloadTracker
from tuneshelf.infrastructure.preferences import PreferenceStore


def _at(day: int) -> datetime:
    return datetime(2024, 3, day, tzinfo=UTC)


class FakeLibraryStore(ILibraryStore):
    """In-memory store; every query re-evaluates when its backing list changes."""

    def __init__(self) -> None:
        self.song_rows: StateStream[list[Song]] = StateStream([])
        self.artist_rows: StateStream[list[Artist]] = StateStream([])
        self.album_rows: StateStream[list[Album]] = StateStream([])
        self.playlist_rows: StateStream[list[Playlist]] = StateStream([])
        self.song_artists: dict[str, list[str]] = {}
        self.calls: list[str] = []
        self.deleted_albums: list[str] = []

    def songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterator[list[Song]]:
        self.calls.append("songs")
        return map_values(
            self.song_rows,
            lambda rows: sort_songs([s for s in rows if s.in_library], sort_type, descending),
        )

    def liked_songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterator[list[Song]]:
        self.calls.append("liked_songs")
        return map_values(
            self.song_rows,
            lambda rows: sort_songs([s for s in rows if s.liked], sort_type, descending),
        )

    def all_songs(self) -> AsyncIterator[list[Song]]:
        self.calls.append("all_songs")
        return map_values(self.song_rows, list)

    def artist_songs(
        self, artist_id: str, sort_type: ArtistSongSortType, descending: bool
    ) -> AsyncIterator[list[Song]]:
        self.calls.append("artist_songs")
        return map_values(
            self.song_rows,
            lambda rows: sort_artist_songs(
                [s for s in rows if artist_id in self.song_artists.get(s.id, [])],
                sort_type,
                descending,
            ),
        )

    def artist(self, artist_id: str) -> AsyncIterator[Artist | None]:
        return map_values(
            self.artist_rows,
            lambda rows: next((a for a in rows if a.id == artist_id), None),
        )

    def artists(self, sort_type: ArtistSortType, descending: bool) -> AsyncIterator[list[Artist]]:
        self.calls.append("artists")
        return map_values(
            self.artist_rows,
            lambda rows: sort_artists([a for a in rows if a.song_count > 0], sort_type, descending),
        )

    def artists_bookmarked(
        self, sort_type: ArtistSortType, descending: bool
    ) -> AsyncIterator[list[Artist]]:
        self.calls.append("artists_bookmarked")
        return map_values(
            self.artist_rows,
            lambda rows: sort_artists(
                [a for a in rows if a.bookmarked_at is not None], sort_type, descending
            ),
        )

    def albums(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterator[list[Album]]:
        self.calls.append("albums")
        return map_values(self.album_rows, lambda rows: sort_albums(rows, sort_type, descending))

    def albums_liked(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterator[list[Album]]:
        self.calls.append("albums_liked")
        return map_values(
            self.album_rows,
            lambda rows: sort_albums(
                [a for a in rows if a.bookmarked_at is not None], sort_type, descending
            ),
        )

    def playlists(
        self, sort_type: PlaylistSortType, descending: bool
    ) -> AsyncIterator[list[Playlist]]:
        self.calls.append("playlists")
        return map_values(
            self.playlist_rows, lambda rows: sort_playlists(rows, sort_type, descending)
        )

    async def update_artist(self, artist_id: str, page: ArtistPage) -> None:
        pass

    async def update_album(self, album_id: str, page: AlbumPage) -> None:
        pass

    async def delete_album(self, album_id: str) -> None:
        self.deleted_albums.append(album_id)
        self.album_rows.update(lambda rows: [a for a in rows if a.id != album_id])

    async def merge_metadata(self, song_id: str, metadata: ExtraMetadata) -> None:
        pass

    async def upsert_artist(self, artist: Artist) -> None:
        self.artist_rows.update(lambda rows: [*(a for a in rows if a.id != artist.id), artist])

    async def upsert_album(self, album: Album) -> None:
        self.album_rows.update(lambda rows: [*(a for a in rows if a.id != album.id), album])

    async def upsert_playlist(self, playlist: Playlist) -> None:
        self.playlist_rows.update(
            lambda rows: [*(p for p in rows if p.id != playlist.id), playlist]
        )

    async def upsert_song(self, song: Song, artist_ids: list[str] | None = None) -> None:
        if artist_ids is not None:
            self.song_artists[song.id] = list(artist_ids)
        self.song_rows.update(lambda rows: [*(s for s in rows if s.id != song.id), song])


@pytest.fixture
def store() -> FakeLibraryStore:
    return FakeLibraryStore()


@pytest.fixture
def preferences() -> PreferenceStore:
    return PreferenceStore()


@pytest.fixture
def downloads() -> DownloadTracker:
    return DownloadTracker()


@pytest.fixture
def catalogue() -> AsyncMock:
    mock = AsyncMock(spec=ICatalogueClient)
    mock.fetch_artist.side_effect = RemoteFetchError("HTTP 503", status_code=503)
    mock.fetch_album.side_effect = RemoteFetchError("HTTP 503", status_code=503)
    return mock


@pytest.fixture
async def aggregator(
    store: FakeLibraryStore,
    preferences: PreferenceStore,
    downloads: DownloadTracker,
    catalogue: AsyncMock,
) -> Any:
    agg = LibraryAggregator(store, preferences, downloads, catalogue)
    yield agg
    await agg.close()


class TestQueryDefaults:
    """Preference tuples with their defaults."""

    def test_song_defaults(self) -> None:
        assert song_query({}) == (SongFilter.LIKED, SongSortType.CREATE_DATE, True)

    def test_artist_defaults(self) -> None:
        assert artist_query({}) == (ArtistFilter.LIKED, ArtistSortType.CREATE_DATE, True)

    def test_unknown_names_fall_back(self) -> None:
        prefs = {keys.ALBUM_FILTER: "EVERYTHING", keys.ALBUM_SORT_TYPE: "LOUDNESS"}
        assert album_query(prefs) == (AlbumFilter.LIKED, AlbumSortType.CREATE_DATE, True)

    def test_non_bool_descending_means_descending(self) -> None:
        assert song_query({keys.SONG_SORT_DESCENDING: "no"})[2] is True

    def test_explicit_ascending(self) -> None:
        assert song_query({keys.SONG_SORT_DESCENDING: False})[2] is False


class TestArtistView:
    async def test_default_is_bookmarked_newest_first(
        self, aggregator: LibraryAggregator, store: FakeLibraryStore, until: Any
    ) -> None:
        """Default filter LIKED, sort CREATE_DATE, descending."""
        a = Artist(id="a", name="A", bookmarked_at=_at(1))
        b = Artist(id="b", name="B", bookmarked_at=_at(2))
        not_followed = Artist(id="c", name="C")
        store.artist_rows.set([a, b, not_followed])

        result = await until(aiter(aggregator.all_artists), lambda v: len(v) == 2)

        assert [artist.id for artist in result] == ["b", "a"]

    async def test_name_ascending_preference(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        store.artist_rows.set(
            [
                Artist(id="z", name="Zeta", bookmarked_at=_at(2)),
                Artist(id="a", name="Alpha", bookmarked_at=_at(1)),
            ]
        )
        await preferences.set(keys.ARTIST_SORT_TYPE, ArtistSortType.NAME.name)
        await preferences.set(keys.ARTIST_SORT_DESCENDING, False)

        result = await until(
            aiter(aggregator.all_artists),
            lambda v: [a.name for a in v] == ["Alpha", "Zeta"],
        )
        assert len(result) == 2

    async def test_library_filter_switches_query(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        store.artist_rows.set(
            [
                Artist(id="f", name="Followed", bookmarked_at=_at(1)),
                Artist(id="l", name="InLibrary", song_count=3),
            ]
        )
        await until(aiter(aggregator.all_artists), lambda v: [a.id for a in v] == ["f"])

        await preferences.set(keys.ARTIST_FILTER, ArtistFilter.LIBRARY.name)

        result = await until(aiter(aggregator.all_artists), lambda v: [a.id for a in v] == ["l"])
        assert result[0].song_count == 3
        assert store.calls.count("artists") == 1


class TestSongView:
    async def test_unrelated_preference_does_not_requery(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        """Equal (filter, sort, descending) tuples never restart the store query."""
        store.song_rows.set([Song(id="1", title="x", liked=True, in_library=_at(1))])
        await until(aiter(aggregator.all_songs), lambda v: len(v) == 1)
        assert store.calls.count("liked_songs") == 1

        await preferences.set("theme", "dark")
        await preferences.set(keys.ALBUM_SORT_TYPE, AlbumSortType.YEAR.name)
        await asyncio.sleep(0.05)

        assert store.calls.count("liked_songs") == 1

    async def test_store_change_is_reemitted(
        self, aggregator: LibraryAggregator, store: FakeLibraryStore, until: Any
    ) -> None:
        await until(aiter(aggregator.all_songs), lambda v: v == [])

        await store.upsert_song(Song(id="n", title="New", liked=True, in_library=_at(4)))

        result = await until(aiter(aggregator.all_songs), lambda v: len(v) == 1)
        assert result[0].id == "n"

    async def test_library_filter(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        store.song_rows.set(
            [
                Song(id="liked-only", title="a", liked=True),
                Song(id="in-lib", title="b", in_library=_at(2)),
            ]
        )
        await preferences.set(keys.SONG_FILTER, SongFilter.LIBRARY.name)

        result = await until(aiter(aggregator.all_songs), lambda v: len(v) == 1)
        assert result[0].id == "in-lib"

    async def test_downloaded_filter(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        downloads: DownloadTracker,
        until: Any,
    ) -> None:
        """Local songs and COMPLETED downloads are shown; PENDING ones are not."""
        store.song_rows.set(
            [
                Song(id="local", title="Local", is_local=True),
                Song(id="done", title="Done"),
                Song(id="pending", title="Pending"),
            ]
        )
        downloads.set_state("done", DownloadState(DownloadStatus.COMPLETED, updated_at_ms=500))
        downloads.set_state("pending", DownloadState(DownloadStatus.PENDING, updated_at_ms=900))
        await preferences.set(keys.SONG_FILTER, SongFilter.DOWNLOADED.name)

        result = await until(aiter(aggregator.all_songs), lambda v: len(v) == 2)

        # CREATE_DATE here means download update time, newest first; local has none.
        assert [s.id for s in result] == ["done", "local"]

    async def test_download_completion_updates_view(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        downloads: DownloadTracker,
        until: Any,
    ) -> None:
        store.song_rows.set([Song(id="s", title="Song")])
        downloads.set_state("s", DownloadState(DownloadStatus.DOWNLOADING, updated_at_ms=1))
        await preferences.set(keys.SONG_FILTER, SongFilter.DOWNLOADED.name)
        await until(aiter(aggregator.all_songs), lambda v: v == [])

        downloads.set_state("s", DownloadState(DownloadStatus.COMPLETED, updated_at_ms=2))

        result = await until(aiter(aggregator.all_songs), lambda v: len(v) == 1)
        assert result[0].id == "s"


class TestAllItems:
    async def test_mixed_kinds_sorted_by_bookmark(
        self, aggregator: LibraryAggregator, store: FakeLibraryStore, until: Any
    ) -> None:
        """Items sharing an id across kinds stay distinct by key."""
        store.artist_rows.set([Artist(id="1", name="Artist", bookmarked_at=_at(1))])
        store.album_rows.set([Album(id="1", title="Album", bookmarked_at=_at(3), song_count=1)])
        store.playlist_rows.set([Playlist(id="1", name="Playlist", bookmarked_at=_at(2))])

        result = await until(aiter(aggregator.all_items), lambda v: len(v) == 3)

        assert [item.kind for item in result] == [
            LibraryItemKind.ALBUM,
            LibraryItemKind.PLAYLIST,
            LibraryItemKind.ARTIST,
        ]
        assert len({item.key for item in result}) == 3

    async def test_name_sort_preference(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        store.artist_rows.set([Artist(id="r", name="Caribou", bookmarked_at=_at(1))])
        store.album_rows.set([Album(id="a", title="Andorra", bookmarked_at=_at(2), song_count=9)])
        store.playlist_rows.set([Playlist(id="p", name="Bedtime")])
        await preferences.set(keys.LIBRARY_SORT_TYPE, "NAME")
        await preferences.set(keys.LIBRARY_SORT_DESCENDING, False)

        result = await until(
            aiter(aggregator.all_items),
            lambda v: [i.display_name for i in v] == ["Andorra", "Bedtime", "Caribou"],
        )
        assert len(result) == 3

    async def test_ignores_per_tab_filters(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        """all_items always uses bookmarked artists and liked albums."""
        await preferences.set(keys.ARTIST_FILTER, ArtistFilter.LIBRARY.name)
        store.artist_rows.set([Artist(id="f", name="Followed", bookmarked_at=_at(1))])

        result = await until(aiter(aggregator.all_items), lambda v: len(v) == 1)
        assert result[0].id == "f"


class TestPerArtistViews:
    async def test_artist_lookup(
        self, aggregator: LibraryAggregator, store: FakeLibraryStore, until: Any
    ) -> None:
        store.artist_rows.set([Artist(id="x", name="Four Tet")])
        result = await until(aiter(aggregator.artist("x")), lambda v: v is not None)
        assert result.name == "Four Tet"

    async def test_artist_songs_sorted_by_preference(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        preferences: PreferenceStore,
        until: Any,
    ) -> None:
        await store.upsert_song(Song(id="1", title="B", in_library=_at(1)), ["x"])
        await store.upsert_song(Song(id="2", title="A", in_library=_at(2)), ["x"])
        await store.upsert_song(Song(id="3", title="Other", in_library=_at(3)), ["y"])
        await preferences.set(keys.ARTIST_SONG_SORT_TYPE, "NAME")
        await preferences.set(keys.ARTIST_SONG_SORT_DESCENDING, False)

        result = await until(
            aiter(aggregator.artist_songs("x")), lambda v: [s.title for s in v] == ["A", "B"]
        )
        assert len(result) == 2

    async def test_closed_artist_pages_leave_no_tasks(
        self, aggregator: LibraryAggregator, store: FakeLibraryStore
    ) -> None:
        """Per-artist queries stop when their observer closes the stream."""
        await store.upsert_song(Song(id="1", title="B", in_library=_at(1)), ["x"])
        baseline = len(asyncio.all_tasks())

        for i in range(20):
            stream = aiter(aggregator.artist_songs(f"x{i}"))
            await anext(stream)
            await stream.aclose()
            artist = aiter(aggregator.artist(f"x{i}"))
            await anext(artist)
            await artist.aclose()

        for _ in range(50):
            if len(asyncio.all_tasks()) <= baseline:
                break
            await asyncio.sleep(0.01)

        assert len(asyncio.all_tasks()) == baseline
        assert aggregator.scope.active_tasks == 0


class TestBackgroundRefresh:
    async def test_not_found_album_is_removed(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        catalogue: AsyncMock,
        until: Any,
    ) -> None:
        """An empty album the catalogue no longer knows disappears from the view."""
        catalogue.fetch_album.side_effect = RemoteFetchError("NOT_FOUND: album gone")
        gone = Album(id="gone", title="Gone", bookmarked_at=_at(1), song_count=0)
        kept = Album(id="kept", title="Kept", bookmarked_at=_at(2), song_count=5)
        store.album_rows.set([gone, kept])

        aggregator.start_background_refresh()

        result = await until(
            aiter(aggregator.all_albums), lambda v: [a.id for a in v] == ["kept"]
        )
        assert result == [kept]
        assert store.deleted_albums == ["gone"]
        catalogue.fetch_album.assert_awaited_with("gone")

    async def test_other_failures_keep_album(
        self,
        aggregator: LibraryAggregator,
        store: FakeLibraryStore,
        catalogue: AsyncMock,
        until: Any,
    ) -> None:
        empty = Album(id="e", title="Empty", bookmarked_at=_at(1), song_count=0)
        store.album_rows.set([empty])

        aggregator.start_background_refresh()
        await until(aiter(aggregator.all_albums), lambda v: v == [empty])
        for _ in range(20):
            if catalogue.fetch_album.await_count:
                break
            await asyncio.sleep(0.01)

        catalogue.fetch_album.assert_awaited_with("e")
        assert store.deleted_albums == []
        assert aggregator.refresh_worker.stats["failed"] >= 1

    async def test_start_is_idempotent(self, aggregator: LibraryAggregator) -> None:
        aggregator.start_background_refresh()
        tasks = aggregator.scope.active_tasks
        aggregator.start_background_refresh()
        assert aggregator.scope.active_tasks == tasks

    async def test_close_cancels_everything(self, aggregator: LibraryAggregator) -> None:
        aggregator.start_background_refresh()
        await asyncio.sleep(0)
        await aggregator.close()
        assert aggregator.scope.active_tasks == 0
        assert aggregator.scope.is_closed

    async def test_default_staleness_matches_worker_default(
        self, aggregator: LibraryAggregator
    ) -> None:
        worker = aggregator.refresh_worker
        recent = utc_now() - DEFAULT_ARTIST_STALENESS + timedelta(hours=1)
        old = utc_now() - DEFAULT_ARTIST_STALENESS - timedelta(hours=1)

        assert not worker.is_artist_stale(
            Artist(id="r", name="R", thumbnail_url="t", last_update_time=recent)
        )
        assert worker.is_artist_stale(
            Artist(id="o", name="O", thumbnail_url="t", last_update_time=old)
        )
