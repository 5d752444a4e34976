"""SQLAlchemy ORM models for tuneshelf."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tuneshelf.domain.entities import utc_now


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Hey future me - ids are the remote catalogue ids (or a local id for scanned files),
# not generated UUIDs. Every write path looks rows up by id, which is what makes
# update_artist/update_album safe to repeat.
class ArtistModel(Base):
    """Artist row."""

    __tablename__ = "tuneshelf_artists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # NULL = not followed. Set when the user bookmarks the artist.
    bookmarked_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )
    last_update_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )


class AlbumModel(Base):
    """Album row. ``song_count == 0`` marks an album whose tracks were never fetched."""

    __tablename__ = "tuneshelf_albums"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # JSON list of credited artist names (SQLite compatible).
    artist_names: Mapped[str | None] = mapped_column(Text, nullable=True)
    bookmarked_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )
    last_update_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )


class PlaylistModel(Base):
    """Saved playlist row."""

    __tablename__ = "tuneshelf_playlists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    browse_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bookmarked_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SongModel(Base):
    """Song row. ``in_library`` NULL means the song is known but not in the library."""

    __tablename__ = "tuneshelf_songs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    album_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("tuneshelf_albums.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    liked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_local: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_play_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_library: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    genre: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    tag_artists: Mapped[str | None] = mapped_column(String(512), nullable=True)

    artist_maps: Mapped[list["SongArtistMap"]] = relationship(
        back_populates="song",
        order_by="SongArtistMap.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("ix_tuneshelf_songs_liked_library", "liked", "in_library"),)


class SongArtistMap(Base):
    """Ordered song → artist credit."""

    __tablename__ = "tuneshelf_song_artist_map"

    song_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tuneshelf_songs.id", ondelete="CASCADE"), primary_key=True
    )
    artist_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("tuneshelf_artists.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    song: Mapped[SongModel] = relationship(back_populates="artist_maps")
    artist: Mapped[ArtistModel] = relationship()


class FormatModel(Base):
    """Technical format of a song (one row per song, keyed by song id)."""

    __tablename__ = "tuneshelf_formats"

    id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tuneshelf_songs.id", ondelete="CASCADE"), primary_key=True
    )
    itag: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    codecs: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    bitrate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sample_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_length: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    loudness_db: Mapped[float | None] = mapped_column(Float, nullable=True)
    playback_url: Mapped[str | None] = mapped_column(Text, nullable=True)
