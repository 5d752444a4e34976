"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    AlbumModel,
    ArtistModel,
    Base,
    FormatModel,
    PlaylistModel,
    SongArtistMap,
    SongModel,
)
from .repositories import InvalidationTracker, LibraryStore

__all__ = [
    "AlbumModel",
    "ArtistModel",
    "Base",
    "Database",
    "FormatModel",
    "InvalidationTracker",
    "LibraryStore",
    "PlaylistModel",
    "SongArtistMap",
    "SongModel",
]
