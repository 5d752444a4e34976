"""Tag-only metadata scanner built on mutagen.

This is the fallback when ffprobe is unavailable. It reads the same fields as the
probe path (artist, genre, date; bitrate, sample rate, duration for the full scan)
but straight from the container with mutagen, in a worker thread so the event loop
stays responsive.
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError

from tuneshelf.domain.entities import ExtraMetadata, MediaFormat
from tuneshelf.domain.ports import IMetadataScanner

logger = logging.getLogger(__name__)


def _first_tag(audio: Any, keys: list[str]) -> str | None:
    """Return the first non-empty tag, joining multi-value tags with '; '."""
    tags = audio.tags
    if not tags:
        return None
    for key in keys:
        value = tags.get(key)
        if not value:
            continue
        if isinstance(value, list):
            return "; ".join(str(v) for v in value)
        return str(value)
    return None


def _codec_from_mime(audio: Any) -> str | None:
    mimes = getattr(audio, "mime", None) or []
    if not mimes:
        return None
    return str(mimes[0]).split("/")[-1]


class TagReaderScanner(IMetadataScanner):
    """Metadata scanner reading tags and stream info with mutagen."""

    def _open(self, path: str) -> Any | None:
        try:
            return MutagenFile(Path(path), easy=True)
        except (MutagenError, OSError) as e:
            logger.warning("mutagen could not read %s: %s", path, e)
            return None

    def _summary(self, path: str) -> ExtraMetadata:
        audio = self._open(path)
        if audio is None:
            return ExtraMetadata()
        return ExtraMetadata(
            artists=_first_tag(audio, ["artist", "albumartist", "performer"]),
            genres=_first_tag(audio, ["genre"]),
            date=_first_tag(audio, ["date", "originaldate"]),
        )

    def _full(self, path: str, prior: MediaFormat) -> ExtraMetadata:
        audio = self._open(path)
        if audio is None:
            return ExtraMetadata(format=prior)

        info = audio.info
        bitrate = getattr(info, "bitrate", None)
        sample_rate = getattr(info, "sample_rate", None)
        length = getattr(info, "length", None)
        codec = _codec_from_mime(audio)

        merged = replace(
            prior,
            codecs=codec or prior.codecs,
            bitrate=int(bitrate) if bitrate else prior.bitrate,
            sample_rate=int(sample_rate) if sample_rate else prior.sample_rate,
            content_length=int(length * 1000) if length else prior.content_length,
        )
        return ExtraMetadata(
            artists=_first_tag(audio, ["artist", "albumartist", "performer"]),
            genres=_first_tag(audio, ["genre"]),
            date=_first_tag(audio, ["date", "originaldate"]),
            format=merged,
        )

    async def get_media_store_supplement(self, path: str) -> ExtraMetadata:
        return await asyncio.to_thread(self._summary, path)

    async def get_all_metadata(self, path: str, prior: MediaFormat) -> ExtraMetadata:
        return await asyncio.to_thread(self._full, path, prior)
