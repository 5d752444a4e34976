"""Preference keys read by the library views.

Values are stored as enum names (strings) and booleans.
"""

SONG_FILTER = "songFilter"
SONG_SORT_TYPE = "songSortType"
SONG_SORT_DESCENDING = "songSortDescending"

ARTIST_FILTER = "artistFilter"
ARTIST_SORT_TYPE = "artistSortType"
ARTIST_SORT_DESCENDING = "artistSortDescending"

ALBUM_FILTER = "albumFilter"
ALBUM_SORT_TYPE = "albumSortType"
ALBUM_SORT_DESCENDING = "albumSortDescending"

PLAYLIST_SORT_TYPE = "playlistSortType"
PLAYLIST_SORT_DESCENDING = "playlistSortDescending"

LIBRARY_SORT_TYPE = "librarySortType"
LIBRARY_SORT_DESCENDING = "librarySortDescending"

ARTIST_SONG_SORT_TYPE = "artistSongSortType"
ARTIST_SONG_SORT_DESCENDING = "artistSongSortDescending"
