"""SQLAlchemy-backed library store with live queries.

Hey future me - the "live" part works like this: every write bumps a version counter
for the tables it touched (InvalidationTracker). A live query subscribes to the
versions of the tables it reads and re-runs the whole SELECT on every change. So an
observer only ever sees complete query results, and the first emission is the current
state. Version bumps are conflated, so a burst of writes causes at most one re-query
per burst that the observer did not keep up with.

Sorting happens in Python via the domain sort functions, not in ORDER BY. The views
depend on "stable ascending sort, then reverse", which ORDER BY ... DESC cannot express.
"""

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any, TypeVar

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tuneshelf.application.reactive import StateStream, distinct_until_changed, map_values
from tuneshelf.domain.entities import (
    Album,
    AlbumPage,
    Artist,
    ArtistPage,
    ExtraMetadata,
    MediaFormat,
    Playlist,
    Song,
    ensure_utc_aware,
    utc_now,
)
from tuneshelf.domain.exceptions import EntityNotFoundException, StoreError
from tuneshelf.domain.ports import ILibraryStore
from tuneshelf.domain.value_objects import (
    AlbumSortType,
    ArtistSongSortType,
    ArtistSortType,
    PlaylistSortType,
    SongSortType,
    sort_albums,
    sort_artist_songs,
    sort_artists,
    sort_playlists,
    sort_songs,
)
from tuneshelf.infrastructure.persistence.database import Database
from tuneshelf.infrastructure.persistence.models import (
    AlbumModel,
    ArtistModel,
    FormatModel,
    PlaylistModel,
    SongArtistMap,
    SongModel,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARTISTS = "artists"
ALBUMS = "albums"
PLAYLISTS = "playlists"
SONGS = "songs"
SONG_ARTIST_MAP = "song_artist_map"
FORMATS = "formats"

ALL_TABLES = (ARTISTS, ALBUMS, PLAYLISTS, SONGS, SONG_ARTIST_MAP, FORMATS)


class InvalidationTracker:
    """Per-table change counters that live queries subscribe to."""

    def __init__(self, tables: Sequence[str] = ALL_TABLES) -> None:
        self._versions: StateStream[dict[str, int]] = StateStream({t: 0 for t in tables})

    def version(self, table: str) -> int:
        return self._versions.value[table]

    def notify(self, *tables: str) -> None:
        """Mark ``tables`` as changed."""
        self._versions.update(
            lambda versions: {
                name: count + 1 if name in tables else count for name, count in versions.items()
            }
        )

    def watch(self, tables: Sequence[str]) -> AsyncIterator[tuple[int, ...]]:
        """Yield the versions of ``tables`` now and after each change to any of them."""
        return distinct_until_changed(
            map_values(self._versions, lambda versions: tuple(versions[t] for t in tables))
        )


# =============================================================================
# Model <-> entity conversion
# =============================================================================


def _optional_utc(value: Any) -> Any:
    # SQLite hands DateTime(timezone=True) back as naive datetimes.
    return ensure_utc_aware(value) if value is not None else None


def _album_artist_names(model: AlbumModel) -> tuple[str, ...]:
    if not model.artist_names:
        return ()
    return tuple(json.loads(model.artist_names))


def _artist_to_entity(model: ArtistModel, song_count: int = 0) -> Artist:
    return Artist(
        id=model.id,
        name=model.name,
        thumbnail_url=model.thumbnail_url,
        bookmarked_at=_optional_utc(model.bookmarked_at),
        last_update_time=ensure_utc_aware(model.last_update_time),
        song_count=song_count,
    )


def _album_to_entity(model: AlbumModel) -> Album:
    return Album(
        id=model.id,
        title=model.title,
        year=model.year,
        thumbnail_url=model.thumbnail_url,
        song_count=model.song_count,
        duration=model.duration,
        bookmarked_at=_optional_utc(model.bookmarked_at),
        last_update_time=ensure_utc_aware(model.last_update_time),
        artist_names=_album_artist_names(model),
    )


def _playlist_to_entity(model: PlaylistModel) -> Playlist:
    return Playlist(
        id=model.id,
        name=model.name,
        browse_id=model.browse_id,
        bookmarked_at=_optional_utc(model.bookmarked_at),
        song_count=model.song_count,
    )


def _song_to_entity(model: SongModel) -> Song:
    return Song(
        id=model.id,
        title=model.title,
        artist_names=tuple(m.artist.name for m in model.artist_maps),
        album_id=model.album_id,
        duration=model.duration,
        liked=model.liked,
        is_local=model.is_local,
        total_play_time=model.total_play_time,
        in_library=_optional_utc(model.in_library),
        genre=model.genre,
        date=model.date,
        tag_artists=model.tag_artists,
    )


def _format_to_entity(model: FormatModel) -> MediaFormat:
    return MediaFormat(
        id=model.id,
        itag=model.itag,
        mime_type=model.mime_type,
        codecs=model.codecs,
        bitrate=model.bitrate,
        sample_rate=model.sample_rate,
        content_length=model.content_length,
        loudness_db=model.loudness_db,
        playback_url=model.playback_url,
    )


def _library_song_count() -> Any:
    """Correlated count of library songs credited to the outer ArtistModel row."""
    return (
        select(func.count(SongArtistMap.song_id))
        .join(SongModel, SongModel.id == SongArtistMap.song_id)
        .where(SongArtistMap.artist_id == ArtistModel.id, SongModel.in_library.is_not(None))
        .correlate(ArtistModel)
        .scalar_subquery()
    )


def _song_select() -> Any:
    return select(SongModel).options(
        selectinload(SongModel.artist_maps).selectinload(SongArtistMap.artist)
    )


class LibraryStore(ILibraryStore):
    """Library storage on SQLAlchemy async sessions.

    Each write runs in its own transaction (Database.session_scope) and notifies the
    invalidation tracker only after the commit succeeded.
    """

    def __init__(self, database: Database, tracker: InvalidationTracker | None = None) -> None:
        self._db = database
        self.tracker = tracker or InvalidationTracker()

    # =========================================================================
    # Live query plumbing
    # =========================================================================

    async def _live(
        self, tables: Sequence[str], fetch: Callable[[AsyncSession], Awaitable[T]]
    ) -> AsyncIterator[T]:
        async for _ in self.tracker.watch(tables):
            try:
                async with self._db.session_scope() as session:
                    result = await fetch(session)
            except SQLAlchemyError as e:
                raise StoreError(f"Live query on {', '.join(tables)} failed: {e}") from e
            yield result

    async def _write(
        self,
        tables: Sequence[str],
        operation: Callable[[AsyncSession], Awaitable[None]],
        description: str,
    ) -> None:
        try:
            async with self._db.session_scope() as session:
                await operation(session)
        except SQLAlchemyError as e:
            raise StoreError(f"{description} failed: {e}") from e
        self.tracker.notify(*tables)

    # =========================================================================
    # Songs
    # =========================================================================

    async def _fetch_songs(self, session: AsyncSession, *criteria: Any) -> list[Song]:
        result = await session.execute(_song_select().where(*criteria))
        return [_song_to_entity(m) for m in result.scalars().all()]

    def songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterator[list[Song]]:
        async def fetch(session: AsyncSession) -> list[Song]:
            songs = await self._fetch_songs(session, SongModel.in_library.is_not(None))
            return sort_songs(songs, sort_type, descending)

        return self._live((SONGS, SONG_ARTIST_MAP, ARTISTS), fetch)

    def liked_songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterator[list[Song]]:
        async def fetch(session: AsyncSession) -> list[Song]:
            songs = await self._fetch_songs(session, SongModel.liked.is_(True))
            return sort_songs(songs, sort_type, descending)

        return self._live((SONGS, SONG_ARTIST_MAP, ARTISTS), fetch)

    def all_songs(self) -> AsyncIterator[list[Song]]:
        async def fetch(session: AsyncSession) -> list[Song]:
            return await self._fetch_songs(session)

        return self._live((SONGS, SONG_ARTIST_MAP, ARTISTS), fetch)

    def artist_songs(
        self, artist_id: str, sort_type: ArtistSongSortType, descending: bool
    ) -> AsyncIterator[list[Song]]:
        async def fetch(session: AsyncSession) -> list[Song]:
            credited = select(SongArtistMap.song_id).where(SongArtistMap.artist_id == artist_id)
            songs = await self._fetch_songs(
                session, SongModel.id.in_(credited), SongModel.in_library.is_not(None)
            )
            return sort_artist_songs(songs, sort_type, descending)

        return self._live((SONGS, SONG_ARTIST_MAP, ARTISTS), fetch)

    async def get_format(self, song_id: str) -> MediaFormat | None:
        """Stored technical format of a song, if one was scanned."""
        async with self._db.session_scope() as session:
            model = await session.get(FormatModel, song_id)
            return _format_to_entity(model) if model else None

    # =========================================================================
    # Artists
    # =========================================================================

    async def _fetch_artists(self, session: AsyncSession, *criteria: Any) -> list[Artist]:
        song_count = _library_song_count()
        stmt = select(ArtistModel, song_count.label("song_count"))
        for criterion in criteria:
            stmt = stmt.where(criterion(song_count))
        result = await session.execute(stmt)
        return [_artist_to_entity(model, count) for model, count in result.all()]

    def artist(self, artist_id: str) -> AsyncIterator[Artist | None]:
        async def fetch(session: AsyncSession) -> Artist | None:
            artists = await self._fetch_artists(session, lambda _: ArtistModel.id == artist_id)
            return artists[0] if artists else None

        return self._live((ARTISTS, SONG_ARTIST_MAP, SONGS), fetch)

    def artists(self, sort_type: ArtistSortType, descending: bool) -> AsyncIterator[list[Artist]]:
        async def fetch(session: AsyncSession) -> list[Artist]:
            artists = await self._fetch_artists(session, lambda count: count > 0)
            return sort_artists(artists, sort_type, descending)

        return self._live((ARTISTS, SONG_ARTIST_MAP, SONGS), fetch)

    def artists_bookmarked(
        self, sort_type: ArtistSortType, descending: bool
    ) -> AsyncIterator[list[Artist]]:
        async def fetch(session: AsyncSession) -> list[Artist]:
            artists = await self._fetch_artists(
                session, lambda _: ArtistModel.bookmarked_at.is_not(None)
            )
            return sort_artists(artists, sort_type, descending)

        return self._live((ARTISTS, SONG_ARTIST_MAP, SONGS), fetch)

    # =========================================================================
    # Albums / playlists
    # =========================================================================

    def albums(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterator[list[Album]]:
        async def fetch(session: AsyncSession) -> list[Album]:
            has_library_song = exists().where(
                SongModel.album_id == AlbumModel.id, SongModel.in_library.is_not(None)
            )
            result = await session.execute(select(AlbumModel).where(has_library_song))
            albums = [_album_to_entity(m) for m in result.scalars().all()]
            return sort_albums(albums, sort_type, descending)

        return self._live((ALBUMS, SONGS), fetch)

    def albums_liked(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterator[list[Album]]:
        async def fetch(session: AsyncSession) -> list[Album]:
            result = await session.execute(
                select(AlbumModel).where(AlbumModel.bookmarked_at.is_not(None))
            )
            albums = [_album_to_entity(m) for m in result.scalars().all()]
            return sort_albums(albums, sort_type, descending)

        return self._live((ALBUMS,), fetch)

    def playlists(
        self, sort_type: PlaylistSortType, descending: bool
    ) -> AsyncIterator[list[Playlist]]:
        async def fetch(session: AsyncSession) -> list[Playlist]:
            result = await session.execute(select(PlaylistModel))
            playlists = [_playlist_to_entity(m) for m in result.scalars().all()]
            return sort_playlists(playlists, sort_type, descending)

        return self._live((PLAYLISTS,), fetch)

    # =========================================================================
    # Remote refresh writes
    # =========================================================================

    async def update_artist(self, artist_id: str, page: ArtistPage) -> None:
        async def operation(session: AsyncSession) -> None:
            model = await session.get(ArtistModel, artist_id)
            if model is None:
                # Removed while the fetch was in flight - nothing left to update.
                logger.debug("Artist %s vanished before refresh was stored", artist_id)
                return
            model.name = page.name or model.name
            model.thumbnail_url = page.thumbnail_url
            model.last_update_time = utc_now()

        await self._write((ARTISTS,), operation, f"Updating artist {artist_id}")

    async def update_album(self, album_id: str, page: AlbumPage) -> None:
        async def operation(session: AsyncSession) -> None:
            model = await session.get(AlbumModel, album_id)
            if model is None:
                logger.debug("Album %s vanished before refresh was stored", album_id)
                return
            model.title = page.title or model.title
            model.year = page.year
            model.thumbnail_url = page.thumbnail_url
            model.song_count = len(page.tracks)
            model.duration = page.duration
            model.artist_names = json.dumps([a.name for a in page.artists])
            model.last_update_time = utc_now()

            for track in page.tracks:
                for ref in track.artists:
                    await self._ensure_artist(session, ref.id, ref.name)
                song = await session.get(SongModel, track.id)
                if song is None:
                    song = SongModel(id=track.id, title=track.title)
                    session.add(song)
                song.title = track.title
                song.duration = track.duration
                song.album_id = album_id
                await session.flush()
                await self._replace_song_artists(session, track.id, [a.id for a in track.artists])

        await self._write(
            (ALBUMS, SONGS, ARTISTS, SONG_ARTIST_MAP), operation, f"Updating album {album_id}"
        )

    async def delete_album(self, album_id: str) -> None:
        async def operation(session: AsyncSession) -> None:
            await session.execute(delete(AlbumModel).where(AlbumModel.id == album_id))

        await self._write((ALBUMS, SONGS), operation, f"Deleting album {album_id}")

    async def merge_metadata(self, song_id: str, metadata: ExtraMetadata) -> None:
        async def operation(session: AsyncSession) -> None:
            song = await session.get(SongModel, song_id)
            if song is None:
                raise EntityNotFoundException("Song", song_id)
            if metadata.genres is not None:
                song.genre = metadata.genres
            if metadata.date is not None:
                song.date = metadata.date
            if metadata.artists is not None:
                song.tag_artists = metadata.artists

            fmt = metadata.format
            if fmt is None:
                return
            row = await session.get(FormatModel, song_id)
            if row is None:
                row = FormatModel(id=song_id)
                session.add(row)
            row.itag = fmt.itag
            row.mime_type = fmt.mime_type
            row.codecs = fmt.codecs
            row.bitrate = fmt.bitrate
            row.sample_rate = fmt.sample_rate
            row.content_length = fmt.content_length
            row.loudness_db = fmt.loudness_db
            row.playback_url = fmt.playback_url

        await self._write((SONGS, FORMATS), operation, f"Merging metadata for song {song_id}")

    # =========================================================================
    # Upserts
    # =========================================================================

    async def _ensure_artist(self, session: AsyncSession, artist_id: str, name: str) -> None:
        if await session.get(ArtistModel, artist_id) is None:
            session.add(ArtistModel(id=artist_id, name=name, last_update_time=utc_now()))
            await session.flush()

    async def _replace_song_artists(
        self, session: AsyncSession, song_id: str, artist_ids: Sequence[str]
    ) -> None:
        await session.execute(delete(SongArtistMap).where(SongArtistMap.song_id == song_id))
        # dict.fromkeys keeps credit order and drops duplicate ids
        for position, artist_id in enumerate(dict.fromkeys(artist_ids)):
            session.add(SongArtistMap(song_id=song_id, artist_id=artist_id, position=position))

    async def upsert_artist(self, artist: Artist) -> None:
        async def operation(session: AsyncSession) -> None:
            model = await session.get(ArtistModel, artist.id)
            if model is None:
                model = ArtistModel(id=artist.id)
                session.add(model)
            model.name = artist.name
            model.thumbnail_url = artist.thumbnail_url
            model.bookmarked_at = artist.bookmarked_at
            model.last_update_time = artist.last_update_time

        await self._write((ARTISTS,), operation, f"Saving artist {artist.id}")

    async def upsert_album(self, album: Album) -> None:
        async def operation(session: AsyncSession) -> None:
            model = await session.get(AlbumModel, album.id)
            if model is None:
                model = AlbumModel(id=album.id)
                session.add(model)
            model.title = album.title
            model.year = album.year
            model.thumbnail_url = album.thumbnail_url
            model.song_count = album.song_count
            model.duration = album.duration
            model.artist_names = json.dumps(list(album.artist_names))
            model.bookmarked_at = album.bookmarked_at
            model.last_update_time = album.last_update_time

        await self._write((ALBUMS,), operation, f"Saving album {album.id}")

    async def upsert_playlist(self, playlist: Playlist) -> None:
        async def operation(session: AsyncSession) -> None:
            model = await session.get(PlaylistModel, playlist.id)
            if model is None:
                model = PlaylistModel(id=playlist.id)
                session.add(model)
            model.name = playlist.name
            model.browse_id = playlist.browse_id
            model.bookmarked_at = playlist.bookmarked_at
            model.song_count = playlist.song_count

        await self._write((PLAYLISTS,), operation, f"Saving playlist {playlist.id}")

    async def upsert_song(self, song: Song, artist_ids: list[str] | None = None) -> None:
        """Insert or update a song.

        ``artist_ids`` replaces the song's artist credits when given; the artists must
        already exist. ``song.artist_names`` is derived from those credits on read and
        is ignored here.
        """

        async def operation(session: AsyncSession) -> None:
            model = await session.get(SongModel, song.id)
            if model is None:
                model = SongModel(id=song.id)
                session.add(model)
            model.title = song.title
            model.album_id = song.album_id
            model.duration = song.duration
            model.liked = song.liked
            model.is_local = song.is_local
            model.total_play_time = song.total_play_time
            model.in_library = song.in_library
            model.genre = song.genre
            model.date = song.date
            model.tag_artists = song.tag_artists
            await session.flush()
            if artist_ids is not None:
                await self._replace_song_artists(session, song.id, artist_ids)

        await self._write((SONGS, SONG_ARTIST_MAP), operation, f"Saving song {song.id}")
