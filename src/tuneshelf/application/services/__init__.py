"""Application services - metadata reconciliation and library views."""

from tuneshelf.application.services.library_aggregator import LibraryAggregator
from tuneshelf.application.services.metadata_reconciler import (
    MetadataReconciler,
    extract_full,
    extract_summary,
)

__all__ = [
    "LibraryAggregator",
    "MetadataReconciler",
    "extract_full",
    "extract_summary",
]
