"""Tests for runtime wiring (scanner selection and open_library)."""

from unittest.mock import AsyncMock

import pytest
from pytest_mock import MockerFixture

from tuneshelf.application.services.metadata_reconciler import MetadataReconciler
from tuneshelf.config import DatabaseSettings, ProbeSettings, Settings
from tuneshelf.domain.entities import ExtraMetadata, MediaFormat, Song
from tuneshelf.domain.exceptions import ProbeUnavailableError
from tuneshelf.domain.ports import IMetadataScanner
from tuneshelf.infrastructure.integrations import TagReaderScanner
from tuneshelf.infrastructure.lifecycle import create_metadata_scanner, open_library

WHICH = "tuneshelf.infrastructure.integrations.ffprobe_prober.shutil.which"


def _settings(**probe: object) -> Settings:
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        probe=ProbeSettings(**probe),  # type: ignore[arg-type]
    )


class TestCreateMetadataScanner:
    def test_uses_ffprobe_when_found(self, mocker: MockerFixture) -> None:
        mocker.patch(WHICH, return_value="/usr/bin/ffprobe")
        assert isinstance(create_metadata_scanner(_settings()), MetadataReconciler)

    def test_falls_back_to_tag_reader(self, mocker: MockerFixture) -> None:
        mocker.patch(WHICH, return_value=None)
        assert isinstance(create_metadata_scanner(_settings()), TagReaderScanner)

    def test_missing_ffprobe_without_fallback_raises(self, mocker: MockerFixture) -> None:
        mocker.patch(WHICH, return_value=None)
        with pytest.raises(ProbeUnavailableError):
            create_metadata_scanner(_settings(fallback_to_tag_reader=False))


class TestOpenLibrary:
    async def test_scan_file_merges_into_stored_song(self, mocker: MockerFixture) -> None:
        mocker.patch(WHICH, return_value=None)
        scanned = MediaFormat(
            id="s1", itag=0, mime_type="audio/mpeg", codecs="mp3", bitrate=320000,
            sample_rate=44100, content_length=180000,
        )

        async with open_library(_settings(), start_refresh=False) as library:
            await library.store.upsert_song(Song(id="s1", title="Local"))
            scanner = AsyncMock(spec=IMetadataScanner)
            scanner.get_all_metadata.return_value = ExtraMetadata(genres="Jazz", format=scanned)
            library.scanner = scanner

            await library.scan_file("s1", "/music/local.mp3")
            await library.scan_file("s1", "/music/local.mp3")

            first_prior = scanner.get_all_metadata.await_args_list[0].args[1]
            second_prior = scanner.get_all_metadata.await_args_list[1].args[1]
            assert first_prior == MediaFormat(id="s1", itag=0, mime_type="", codecs="", bitrate=0)
            assert second_prior == scanned
            assert await library.store.get_format("s1") == scanned

    async def test_wires_components_without_refresh(self, mocker: MockerFixture) -> None:
        mocker.patch(WHICH, return_value="/usr/bin/ffprobe")

        async with open_library(_settings(), start_refresh=False) as library:
            assert isinstance(library.scanner, MetadataReconciler)
            assert library.aggregator is not None
            assert library.preferences.snapshot == {}
