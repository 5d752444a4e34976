"""Domain value objects."""

from tuneshelf.domain.value_objects.sort_types import (
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
    sort_albums,
    sort_artist_songs,
    sort_artists,
    sort_downloaded_songs,
    sort_library_items,
    sort_playlists,
    sort_songs,
    to_enum,
)

__all__ = [
    "AlbumFilter",
    "AlbumSortType",
    "ArtistFilter",
    "ArtistSongSortType",
    "ArtistSortType",
    "LibrarySortType",
    "PlaylistSortType",
    "SongFilter",
    "SongSortType",
    "is_downloaded",
    "sort_albums",
    "sort_artist_songs",
    "sort_artists",
    "sort_downloaded_songs",
    "sort_library_items",
    "sort_playlists",
    "sort_songs",
    "to_enum",
]
