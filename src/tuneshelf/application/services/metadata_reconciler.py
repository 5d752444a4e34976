"""Probe report parsing and reconciliation onto prior format records.

A probe report is line-oriented text, one ``KEY:VALUE`` per line. The key is
everything before the first colon, the value everything after it (later colons are
kept verbatim). Keys are case-sensitive; unknown keys are ignored.

Two extraction levels:

- extract_summary: artist / genre / date tags only (best effort, never raises).
- extract_full: the same tags plus technical fields, merged onto a prior MediaFormat.
  Numeric fields are strict: a value that does not parse raises MalformedFieldError.
"""

import asyncio
import logging
from dataclasses import replace

from tuneshelf.domain.entities import ExtraMetadata, MediaFormat
from tuneshelf.domain.exceptions import MalformedFieldError, ProbeFailedError
from tuneshelf.domain.ports import IAudioProber, IMetadataScanner

logger = logging.getLogger(__name__)

# Hey future me - several tag spellings fold into one field. If a key repeats, the LAST
# occurrence wins (no accumulation), e.g. "ARTISTS:A;B" followed by "ARTIST:A" gives "A".
SUMMARY_KEYS: dict[str, str] = {
    "ARTISTS": "artists",
    "ARTIST": "artists",
    "artist": "artists",
    "GENRE": "genres",
    "DATE": "date",
}

TECHNICAL_KEYS: dict[str, str] = {
    "codec": "codec",
    "type": "type",
    "bitrate": "bitrate",
    "sampleRate": "sampleRate",
    "channels": "channels",
    "duration": "duration",
}


def parse_report(report: str, keys: dict[str, str]) -> dict[str, str]:
    """Collect raw values for recognised keys, last occurrence winning."""
    fields: dict[str, str] = {}
    for line in report.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        target = keys.get(key)
        if target is not None:
            fields[target] = value
    return fields


def _parse_int(field: str, raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise MalformedFieldError(field, raw) from None


def extract_summary(report: str) -> ExtraMetadata:
    """Extract artist/genre/date tags from a probe report."""
    fields = parse_report(report, SUMMARY_KEYS)
    return ExtraMetadata(
        artists=fields.get("artists"),
        genres=fields.get("genres"),
        date=fields.get("date"),
    )


def extract_full(report: str, prior: MediaFormat) -> ExtraMetadata:
    """Extract tags plus technical fields and fold them onto ``prior``.

    ``id``, ``itag``, ``mime_type``, ``loudness_db`` and ``playback_url`` always come
    from ``prior``. Codec, bitrate, sample rate and duration (stored as
    ``content_length``) replace the prior values only when present in the report.

    Raises:
        MalformedFieldError: bitrate, sampleRate or duration is not an integer
    """
    fields = parse_report(report, {**SUMMARY_KEYS, **TECHNICAL_KEYS})

    codec = fields.get("codec")
    bitrate = _parse_int("bitrate", fields.get("bitrate"))
    sample_rate = _parse_int("sampleRate", fields.get("sampleRate"))
    duration = _parse_int("duration", fields.get("duration"))

    merged = replace(
        prior,
        codecs=codec.strip() if codec is not None else prior.codecs,
        bitrate=bitrate if bitrate is not None else prior.bitrate,
        sample_rate=sample_rate if sample_rate is not None else prior.sample_rate,
        content_length=duration if duration is not None else prior.content_length,
    )
    return ExtraMetadata(
        artists=fields.get("artists"),
        genres=fields.get("genres"),
        date=fields.get("date"),
        format=merged,
    )


class MetadataReconciler(IMetadataScanner):
    """Metadata scanner backed by an external audio prober.

    The prober call is the only slow part; parsing is pure. Nothing here retries.
    ProbeUnavailableError (tool missing) and ProbeFailedError (this file or a timeout)
    pass straight through to the caller, which picks a fallback.
    """

    def __init__(self, prober: IAudioProber, timeout: float | None = None) -> None:
        self._prober = prober
        self._timeout = timeout

    async def _probe(self, path: str) -> str:
        try:
            return await asyncio.wait_for(self._prober.probe(path), timeout=self._timeout)
        except TimeoutError:
            raise ProbeFailedError(f"Probe timed out after {self._timeout}s", path=path) from None

    async def get_media_store_supplement(self, path: str) -> ExtraMetadata:
        logger.debug("Starting summary probe on: %s", path)
        report = await self._probe(path)
        return extract_summary(report)

    async def get_all_metadata(self, path: str, prior: MediaFormat) -> ExtraMetadata:
        logger.debug("Starting full probe on: %s", path)
        report = await self._probe(path)
        return extract_full(report, prior)
