"""External integrations: ffprobe, mutagen and the remote catalogue."""

from tuneshelf.infrastructure.integrations.catalogue_client import CatalogueClient
from tuneshelf.infrastructure.integrations.ffprobe_prober import (
    FFprobeProber,
    resolve_ffprobe,
)
from tuneshelf.infrastructure.integrations.tag_reader import TagReaderScanner

__all__ = [
    "CatalogueClient",
    "FFprobeProber",
    "TagReaderScanner",
    "resolve_ffprobe",
]
