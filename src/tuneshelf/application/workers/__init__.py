"""Worker system - background metadata refresh."""

from tuneshelf.application.workers.metadata_refresh_worker import MetadataRefreshWorker

__all__ = ["MetadataRefreshWorker"]
