"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from tuneshelf.config import Settings, get_settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.database.url.startswith("sqlite+aiosqlite://")
        assert settings.probe.binary == "ffprobe"
        assert settings.probe.fallback_to_tag_reader is True
        assert settings.catalogue.base_url == "https://api.deezer.com"
        assert settings.library.artist_staleness_days == 10
        assert settings.observability.log_level == "INFO"

    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TUNESHELF_PROBE__TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("TUNESHELF_LIBRARY__ARTIST_STALENESS_DAYS", "3")
        monkeypatch.setenv("TUNESHELF_OBSERVABILITY__LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.probe.timeout_seconds == 5.0
        assert settings.library.artist_staleness_days == 3
        assert settings.observability.log_level == "DEBUG"

    def test_unknown_log_level_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TUNESHELF_OBSERVABILITY__LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(probe={"timeout_seconds": 0})  # type: ignore[arg-type]

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
