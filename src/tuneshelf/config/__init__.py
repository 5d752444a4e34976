"""Configuration module for tuneshelf."""

from .settings import (
    CatalogueSettings,
    DatabaseSettings,
    LibrarySettings,
    ObservabilitySettings,
    ProbeSettings,
    Settings,
    get_settings,
)

__all__ = [
    "CatalogueSettings",
    "DatabaseSettings",
    "LibrarySettings",
    "ObservabilitySettings",
    "ProbeSettings",
    "Settings",
    "get_settings",
]
