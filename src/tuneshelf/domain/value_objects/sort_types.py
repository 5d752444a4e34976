"""Library filters, sort types and sort projections.

Every sort here follows the same rule: project each item to ONE comparable key,
run a stable ascending sort, then reverse the whole list when descending.
Reversing a stable ascending sort is not the same as sorting by a negated key when
ties exist (tied items come out in reversed original order), and the list views
depend on the former.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from tuneshelf.domain.entities import (
    Album,
    Artist,
    DownloadState,
    LibraryItem,
    Playlist,
    Song,
    ensure_utc_aware,
)
from tuneshelf.domain.exceptions import ConfigurationError

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

# Items without a bookmark time sort before everything else in ascending order.
EPOCH_FLOOR = datetime.min.replace(tzinfo=UTC)


class SongFilter(str, Enum):
    LIBRARY = "LIBRARY"
    LIKED = "LIKED"
    DOWNLOADED = "DOWNLOADED"


class ArtistFilter(str, Enum):
    LIBRARY = "LIBRARY"
    LIKED = "LIKED"


class AlbumFilter(str, Enum):
    LIBRARY = "LIBRARY"
    LIKED = "LIKED"


class SongSortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"
    ARTIST = "ARTIST"
    PLAY_TIME = "PLAY_TIME"


class ArtistSortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"
    SONG_COUNT = "SONG_COUNT"


class AlbumSortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"
    ARTIST = "ARTIST"
    YEAR = "YEAR"
    SONG_COUNT = "SONG_COUNT"
    LENGTH = "LENGTH"


class PlaylistSortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"
    SONG_COUNT = "SONG_COUNT"


class LibrarySortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"


class ArtistSongSortType(str, Enum):
    CREATE_DATE = "CREATE_DATE"
    NAME = "NAME"
    PLAY_TIME = "PLAY_TIME"


def to_enum(value: Any, default: E) -> E:
    """Parse a stored preference value into an enum, falling back to ``default``.

    Preferences are persisted by enum name. Missing or unknown names (e.g. a sort type
    removed in a newer release) silently resolve to the default.
    """
    if isinstance(value, type(default)):
        return value
    if not isinstance(value, str):
        return default
    try:
        return type(default)[value]
    except KeyError:
        return default


def reversed_if(items: Sequence[T], descending: bool) -> list[T]:
    """Return a new list, reversed when ``descending`` is set."""
    return list(reversed(items)) if descending else list(items)


def sort_by_projection(
    items: Iterable[T], projection: Callable[[T], Any], descending: bool
) -> list[T]:
    """Stable ascending sort on ``projection`` then conditional reversal."""
    return reversed_if(sorted(items, key=projection), descending)


def bookmark_projection(item: LibraryItem) -> datetime:
    bookmark = item.bookmark_time
    return ensure_utc_aware(bookmark) if bookmark is not None else EPOCH_FLOOR


def _joined_artists(names: Sequence[str]) -> str:
    return "".join(names)


_SONG_PROJECTIONS: dict[SongSortType, Callable[[Song], Any]] = {
    SongSortType.CREATE_DATE: bookmark_projection,
    SongSortType.NAME: lambda song: song.title,
    SongSortType.ARTIST: lambda song: _joined_artists(song.artist_names),
    SongSortType.PLAY_TIME: lambda song: song.total_play_time,
}

_ARTIST_PROJECTIONS: dict[ArtistSortType, Callable[[Artist], Any]] = {
    ArtistSortType.CREATE_DATE: bookmark_projection,
    ArtistSortType.NAME: lambda artist: artist.name,
    ArtistSortType.SONG_COUNT: lambda artist: artist.song_count,
}

_ALBUM_PROJECTIONS: dict[AlbumSortType, Callable[[Album], Any]] = {
    AlbumSortType.CREATE_DATE: bookmark_projection,
    AlbumSortType.NAME: lambda album: album.title,
    AlbumSortType.ARTIST: lambda album: _joined_artists(album.artist_names),
    AlbumSortType.YEAR: lambda album: album.year or 0,
    AlbumSortType.SONG_COUNT: lambda album: album.song_count,
    AlbumSortType.LENGTH: lambda album: album.duration,
}

_PLAYLIST_PROJECTIONS: dict[PlaylistSortType, Callable[[Playlist], Any]] = {
    PlaylistSortType.CREATE_DATE: bookmark_projection,
    PlaylistSortType.NAME: lambda playlist: playlist.name,
    PlaylistSortType.SONG_COUNT: lambda playlist: playlist.song_count,
}

_ARTIST_SONG_PROJECTIONS: dict[ArtistSongSortType, Callable[[Song], Any]] = {
    ArtistSongSortType.CREATE_DATE: bookmark_projection,
    ArtistSongSortType.NAME: lambda song: song.title,
    ArtistSongSortType.PLAY_TIME: lambda song: song.total_play_time,
}


def _projection(table: Mapping[Any, Callable[[T], Any]], sort_type: Enum) -> Callable[[T], Any]:
    try:
        return table[sort_type]
    except KeyError:
        raise ConfigurationError(f"Unsupported sort type: {sort_type!r}") from None


def sort_songs(songs: Iterable[Song], sort_type: SongSortType, descending: bool) -> list[Song]:
    return sort_by_projection(songs, _projection(_SONG_PROJECTIONS, sort_type), descending)


def sort_artists(
    artists: Iterable[Artist], sort_type: ArtistSortType, descending: bool
) -> list[Artist]:
    return sort_by_projection(artists, _projection(_ARTIST_PROJECTIONS, sort_type), descending)


def sort_albums(albums: Iterable[Album], sort_type: AlbumSortType, descending: bool) -> list[Album]:
    return sort_by_projection(albums, _projection(_ALBUM_PROJECTIONS, sort_type), descending)


def sort_playlists(
    playlists: Iterable[Playlist], sort_type: PlaylistSortType, descending: bool
) -> list[Playlist]:
    return sort_by_projection(
        playlists, _projection(_PLAYLIST_PROJECTIONS, sort_type), descending
    )


def sort_artist_songs(
    songs: Iterable[Song], sort_type: ArtistSongSortType, descending: bool
) -> list[Song]:
    return sort_by_projection(
        songs, _projection(_ARTIST_SONG_PROJECTIONS, sort_type), descending
    )


def sort_downloaded_songs(
    songs: Iterable[Song],
    downloads: Mapping[str, DownloadState],
    sort_type: SongSortType,
    descending: bool,
) -> list[Song]:
    """Sort the DOWNLOADED view. CREATE_DATE here means "download last updated"."""
    if sort_type == SongSortType.CREATE_DATE:
        projection: Callable[[Song], Any] = lambda song: (  # noqa: E731
            downloads[song.id].updated_at_ms if song.id in downloads else 0
        )
    else:
        projection = _projection(_SONG_PROJECTIONS, sort_type)
    return sort_by_projection(songs, projection, descending)


def is_downloaded(song: Song, downloads: Mapping[str, DownloadState]) -> bool:
    """Local files count as downloaded, otherwise only a COMPLETED download does."""
    state = downloads.get(song.id)
    return (state is not None and state.is_completed) or song.is_local


def sort_library_items(
    items: Iterable[LibraryItem], sort_type: LibrarySortType, descending: bool
) -> list[LibraryItem]:
    """Sort a mixed artist/album/playlist list by one polymorphic key."""
    if sort_type == LibrarySortType.CREATE_DATE:
        return sort_by_projection(items, bookmark_projection, descending)
    if sort_type == LibrarySortType.NAME:
        return sort_by_projection(items, lambda item: item.display_name, descending)
    raise ConfigurationError(f"Unsupported sort type: {sort_type!r}")
