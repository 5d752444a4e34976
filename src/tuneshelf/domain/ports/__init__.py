"""Port interfaces for the library core.

Hey future me - ports are the contracts the application layer talks to. Infrastructure
implements them (ffprobe, httpx catalogue client, SQLAlchemy store, ...) and tests
replace them with AsyncMock(spec=...) or small fakes.

Observable queries return an AsyncIterable that yields the current value first and a
fresh, complete value after every relevant change. They never yield partial updates.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, Mapping
from typing import Any

from tuneshelf.domain.entities import (
    Album,
    AlbumPage,
    Artist,
    ArtistPage,
    DownloadState,
    ExtraMetadata,
    MediaFormat,
    Playlist,
    Song,
)
from tuneshelf.domain.value_objects import (
    AlbumSortType,
    ArtistSongSortType,
    ArtistSortType,
    PlaylistSortType,
    SongSortType,
)


class IAudioProber(ABC):
    """External audio inspection tool."""

    @abstractmethod
    async def probe(self, path: str) -> str:
        """Return the line-oriented ``KEY:VALUE`` report for ``path``.

        Raises:
            ProbeUnavailableError: tool missing or cannot be started
            ProbeFailedError: the tool ran but failed for this file
        """
        pass


class IMetadataScanner(ABC):
    """Extracts metadata for one local file."""

    @abstractmethod
    async def get_media_store_supplement(self, path: str) -> ExtraMetadata:
        """Extract artist/genre/date tags only."""
        pass

    @abstractmethod
    async def get_all_metadata(self, path: str, prior: MediaFormat) -> ExtraMetadata:
        """Extract tags and technical format, reconciled onto ``prior``."""
        pass


class ICatalogueClient(ABC):
    """Remote catalogue lookups."""

    @abstractmethod
    async def fetch_artist(self, artist_id: str) -> ArtistPage:
        """Fetch artist metadata.

        Raises:
            RemoteFetchError: on network errors or error payloads
        """
        pass

    @abstractmethod
    async def fetch_album(self, album_id: str) -> AlbumPage:
        """Fetch album metadata including tracks.

        Raises:
            RemoteFetchError: on network errors or error payloads
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class ILibraryStore(ABC):
    """Persistent library storage with live queries."""

    # Live queries

    @abstractmethod
    def songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterable[list[Song]]:
        """Songs in the library."""
        pass

    @abstractmethod
    def liked_songs(self, sort_type: SongSortType, descending: bool) -> AsyncIterable[list[Song]]:
        """Liked songs."""
        pass

    @abstractmethod
    def all_songs(self) -> AsyncIterable[list[Song]]:
        """Every stored song, unsorted."""
        pass

    @abstractmethod
    def artist_songs(
        self, artist_id: str, sort_type: ArtistSongSortType, descending: bool
    ) -> AsyncIterable[list[Song]]:
        """Library songs credited to one artist."""
        pass

    @abstractmethod
    def artist(self, artist_id: str) -> AsyncIterable[Artist | None]:
        """A single artist (None while missing)."""
        pass

    @abstractmethod
    def artists(self, sort_type: ArtistSortType, descending: bool) -> AsyncIterable[list[Artist]]:
        """Artists with at least one library song."""
        pass

    @abstractmethod
    def artists_bookmarked(
        self, sort_type: ArtistSortType, descending: bool
    ) -> AsyncIterable[list[Artist]]:
        """Bookmarked (followed) artists."""
        pass

    @abstractmethod
    def albums(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterable[list[Album]]:
        """Albums with at least one library song."""
        pass

    @abstractmethod
    def albums_liked(self, sort_type: AlbumSortType, descending: bool) -> AsyncIterable[list[Album]]:
        """Bookmarked (liked) albums."""
        pass

    @abstractmethod
    def playlists(
        self, sort_type: PlaylistSortType, descending: bool
    ) -> AsyncIterable[list[Playlist]]:
        """Saved playlists."""
        pass

    # Writes - each one is self-contained and idempotent per item id

    @abstractmethod
    async def update_artist(self, artist_id: str, page: ArtistPage) -> None:
        """Merge remote artist metadata into the stored artist."""
        pass

    @abstractmethod
    async def update_album(self, album_id: str, page: AlbumPage) -> None:
        """Merge remote album metadata (and its tracks) into storage."""
        pass

    @abstractmethod
    async def delete_album(self, album_id: str) -> None:
        """Delete an album. Deleting a missing album is a no-op."""
        pass

    @abstractmethod
    async def merge_metadata(self, song_id: str, metadata: ExtraMetadata) -> None:
        """Fold scanned metadata onto a stored song and its format."""
        pass

    @abstractmethod
    async def upsert_artist(self, artist: Artist) -> None:
        pass

    @abstractmethod
    async def upsert_album(self, album: Album) -> None:
        pass

    @abstractmethod
    async def upsert_playlist(self, playlist: Playlist) -> None:
        pass

    @abstractmethod
    async def upsert_song(self, song: Song, artist_ids: list[str] | None = None) -> None:
        pass


class IPreferenceStore(ABC):
    """Observable key-value preferences."""

    @property
    @abstractmethod
    def data(self) -> AsyncIterable[Mapping[str, Any]]:
        """Snapshot stream of all preferences."""
        pass

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        pass


class IDownloadTracker(ABC):
    """Observable song-id to download-state map."""

    @property
    @abstractmethod
    def downloads(self) -> AsyncIterable[Mapping[str, DownloadState]]:
        pass

    @abstractmethod
    def set_state(self, song_id: str, state: DownloadState) -> None:
        pass

    @abstractmethod
    def remove(self, song_id: str) -> None:
        pass


__all__ = [
    "IAudioProber",
    "ICatalogueClient",
    "IDownloadTracker",
    "ILibraryStore",
    "IMetadataScanner",
    "IPreferenceStore",
]
