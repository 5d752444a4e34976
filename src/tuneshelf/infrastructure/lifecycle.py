"""Runtime wiring: build the library stack from Settings and tear it down again."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from tuneshelf.application.services.library_aggregator import LibraryAggregator
from tuneshelf.application.services.metadata_reconciler import MetadataReconciler
from tuneshelf.config import Settings, get_settings
from tuneshelf.domain.entities import MediaFormat
from tuneshelf.domain.exceptions import ProbeUnavailableError
from tuneshelf.domain.ports import IMetadataScanner
from tuneshelf.infrastructure.downloads import DownloadTracker
from tuneshelf.infrastructure.integrations import (
    CatalogueClient,
    FFprobeProber,
    TagReaderScanner,
    resolve_ffprobe,
)
from tuneshelf.infrastructure.observability import configure_logging
from tuneshelf.infrastructure.persistence.database import Database
from tuneshelf.infrastructure.persistence.repositories import LibraryStore
from tuneshelf.infrastructure.preferences import PreferenceStore

logger = logging.getLogger(__name__)


def create_metadata_scanner(settings: Settings) -> IMetadataScanner:
    """Pick the metadata scanner for this process.

    ffprobe when the binary is found, otherwise the mutagen tag reader if the settings
    allow falling back.

    Raises:
        ProbeUnavailableError: ffprobe missing and fallback disabled
    """
    try:
        resolve_ffprobe(settings.probe.binary)
    except ProbeUnavailableError:
        if not settings.probe.fallback_to_tag_reader:
            raise
        logger.warning("ffprobe unavailable, falling back to mutagen tag reader")
        return TagReaderScanner()
    return MetadataReconciler(
        FFprobeProber(settings.probe.binary), timeout=settings.probe.timeout_seconds
    )


@dataclass
class Library:
    """Everything open_library builds, ready to use."""

    settings: Settings
    database: Database
    store: LibraryStore
    preferences: PreferenceStore
    downloads: DownloadTracker
    catalogue: CatalogueClient
    scanner: IMetadataScanner
    aggregator: LibraryAggregator

    async def scan_file(self, song_id: str, path: str) -> None:
        """Extract all metadata of a local file and merge it into the stored song."""
        prior = await self.store.get_format(song_id) or MediaFormat(
            id=song_id, itag=0, mime_type="", codecs="", bitrate=0
        )
        metadata = await self.scanner.get_all_metadata(path, prior)
        await self.store.merge_metadata(song_id, metadata)


@asynccontextmanager
async def open_library(
    settings: Settings | None = None, *, start_refresh: bool = True
) -> AsyncIterator[Library]:
    """Open the library for the lifetime of the ``async with`` block.

    Usage:
        async with open_library() as library:
            async for songs in library.aggregator.all_songs:
                ...
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )

    database = Database(settings.database)
    await database.create_tables()
    catalogue = CatalogueClient(settings.catalogue)
    aggregator: LibraryAggregator | None = None
    try:
        store = LibraryStore(database)
        preferences = PreferenceStore(settings.library.preferences_path)
        downloads = DownloadTracker()
        aggregator = LibraryAggregator(
            store,
            preferences,
            downloads,
            catalogue,
            artist_staleness=timedelta(days=settings.library.artist_staleness_days),
        )
        library = Library(
            settings=settings,
            database=database,
            store=store,
            preferences=preferences,
            downloads=downloads,
            catalogue=catalogue,
            scanner=create_metadata_scanner(settings),
            aggregator=aggregator,
        )
        if start_refresh:
            aggregator.start_background_refresh()
        logger.info("Library opened (%s)", settings.database.url)
        yield library
    finally:
        if aggregator is not None:
            await aggregator.close()
        await catalogue.close()
        await database.close()
        logger.info("Library closed")
