"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar, Union

from tuneshelf.domain.exceptions import ValidationException


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back naive.
# Attach UTC before comparing with utc_now() or you get "can't compare offset-naive
# and offset-aware datetimes".
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# =============================================================================
# Media metadata (transient, produced per scan)
# =============================================================================


@dataclass(frozen=True)
class MediaFormat:
    """Technical encoding facts of one audio file.

    ``id`` is stable across re-scans of the same item. ``content_length`` is bytes for
    remote streams and milliseconds of duration for probed local files.
    """

    id: str
    itag: int
    mime_type: str
    codecs: str
    bitrate: int
    sample_rate: int | None = None
    content_length: int = 0
    loudness_db: float | None = None
    playback_url: str | None = None

    def __post_init__(self) -> None:
        for name in ("itag", "bitrate", "sample_rate", "content_length"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationException(f"MediaFormat.{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class ExtraMetadata:
    """Reconciliation output. ``None`` on any field means "keep the prior value"."""

    artists: str | None = None
    genres: str | None = None
    date: str | None = None
    format: MediaFormat | None = None


# =============================================================================
# Library items (read-only projections of storage rows)
# =============================================================================


class LibraryItemKind(str, Enum):
    """Variant tag of a library item."""

    ARTIST = "artist"
    ALBUM = "album"
    PLAYLIST = "playlist"
    SONG = "song"


# Hey future me - ids are only unique WITHIN a kind. An artist and an album can share
# an id in the remote catalogue, so anything that diffs a mixed list must key on
# item.key, which is (kind, id). item.id is for display and logging only.
class _LibraryItemMixin:
    kind: ClassVar[LibraryItemKind]
    id: str

    @property
    def key(self) -> tuple[LibraryItemKind, str]:
        """Unique key across all library item kinds."""
        return (self.kind, self.id)


@dataclass(frozen=True)
class Artist(_LibraryItemMixin):
    """Artist in the local library."""

    kind: ClassVar[LibraryItemKind] = LibraryItemKind.ARTIST

    id: str
    name: str
    thumbnail_url: str | None = None
    bookmarked_at: datetime | None = None
    last_update_time: datetime = field(default_factory=utc_now)
    song_count: int = 0

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def bookmark_time(self) -> datetime | None:
        return self.bookmarked_at


@dataclass(frozen=True)
class Album(_LibraryItemMixin):
    """Album in the local library."""

    kind: ClassVar[LibraryItemKind] = LibraryItemKind.ALBUM

    id: str
    title: str
    year: int | None = None
    thumbnail_url: str | None = None
    song_count: int = 0
    duration: int = 0
    bookmarked_at: datetime | None = None
    last_update_time: datetime = field(default_factory=utc_now)
    artist_names: tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def bookmark_time(self) -> datetime | None:
        return self.bookmarked_at


@dataclass(frozen=True)
class Playlist(_LibraryItemMixin):
    """Saved playlist."""

    kind: ClassVar[LibraryItemKind] = LibraryItemKind.PLAYLIST

    id: str
    name: str
    browse_id: str | None = None
    bookmarked_at: datetime | None = None
    song_count: int = 0

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def bookmark_time(self) -> datetime | None:
        return self.bookmarked_at


@dataclass(frozen=True)
class Song(_LibraryItemMixin):
    """Song row with its credited artist names.

    ``in_library`` is the song's bookmark timestamp (None = not in library).
    ``tag_artists`` is the raw artist string from the last metadata scan.
    """

    kind: ClassVar[LibraryItemKind] = LibraryItemKind.SONG

    id: str
    title: str
    artist_names: tuple[str, ...] = ()
    album_id: str | None = None
    duration: int = 0
    liked: bool = False
    is_local: bool = False
    total_play_time: int = 0
    in_library: datetime | None = None
    genre: str | None = None
    date: str | None = None
    tag_artists: str | None = None

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def bookmark_time(self) -> datetime | None:
        return self.in_library


LibraryItem = Union[Album, Artist, Playlist, Song]


# =============================================================================
# Remote catalogue pages
# =============================================================================


@dataclass(frozen=True)
class CatalogueArtistRef:
    """Artist credit inside a catalogue page."""

    id: str
    name: str


@dataclass(frozen=True)
class CatalogueTrack:
    """Track listed on a catalogue album page (duration in seconds)."""

    id: str
    title: str
    duration: int = 0
    artists: tuple[CatalogueArtistRef, ...] = ()


@dataclass(frozen=True)
class ArtistPage:
    """Remote artist metadata."""

    id: str
    name: str
    thumbnail_url: str | None = None
    album_count: int = 0


@dataclass(frozen=True)
class AlbumPage:
    """Remote album metadata including its track list."""

    id: str
    title: str
    year: int | None = None
    thumbnail_url: str | None = None
    artists: tuple[CatalogueArtistRef, ...] = ()
    tracks: tuple[CatalogueTrack, ...] = ()

    @property
    def duration(self) -> int:
        return sum(track.duration for track in self.tracks)


# =============================================================================
# Downloads
# =============================================================================


# Hey future me - only COMPLETED counts as "downloaded" for the DOWNLOADED song filter.
# Local files are shown there too via Song.is_local, regardless of download state.
class DownloadStatus(str, Enum):
    """Status of a song download."""

    WAITING = "waiting"
    PENDING = "pending"
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DownloadState:
    """Latest known download state for one song."""

    status: DownloadStatus
    updated_at_ms: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == DownloadStatus.COMPLETED


__all__ = [
    "Album",
    "AlbumPage",
    "Artist",
    "ArtistPage",
    "CatalogueArtistRef",
    "CatalogueTrack",
    "DownloadState",
    "DownloadStatus",
    "ExtraMetadata",
    "LibraryItem",
    "LibraryItemKind",
    "MediaFormat",
    "Playlist",
    "Song",
    "ensure_utc_aware",
    "utc_now",
]
