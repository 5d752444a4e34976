"""ffprobe adapter producing line-oriented probe reports.

Hey future me - ffprobe is an external binary, not a Python package. We locate it ONCE
per process (first use) and cache the outcome either way: if it is missing, every
later probe fails fast with ProbeUnavailableError instead of searching PATH again.
Call reset_ffprobe_lookup() in tests that swap PATH around.

Report format (one KEY:VALUE per line, consumed by the metadata reconciler):

    ARTIST:Some Artist          <- every format tag, then every audio stream tag
    GENRE:Electronic
    codec:flac                  <- technical fields of the first audio stream
    type:audio
    bitrate:912000
    sampleRate:44100
    channels:2
    duration:215000             <- milliseconds
"""

import asyncio
import json
import logging
import shutil
import threading
from decimal import Decimal, InvalidOperation
from typing import Any

from tuneshelf.domain.exceptions import ProbeFailedError, ProbeUnavailableError
from tuneshelf.domain.ports import IAudioProber

logger = logging.getLogger(__name__)

FFPROBE_ARGS = (
    "-v",
    "error",
    "-print_format",
    "json",
    "-show_format",
    "-show_streams",
    "-select_streams",
    "a:0",
)

_lookup_lock = threading.Lock()
_lookup_results: dict[str, str | ProbeUnavailableError] = {}


def resolve_ffprobe(binary: str = "ffprobe") -> str:
    """Return the absolute ffprobe path, looked up once per process.

    Raises:
        ProbeUnavailableError: binary not found (cached, never retried)
    """
    with _lookup_lock:
        if binary not in _lookup_results:
            path = shutil.which(binary)
            if path is None:
                logger.warning("ffprobe binary '%s' not found on PATH", binary)
                _lookup_results[binary] = ProbeUnavailableError(
                    f"ffprobe binary '{binary}' is not available"
                )
            else:
                logger.info("Using ffprobe at %s", path)
                _lookup_results[binary] = path
        result = _lookup_results[binary]

    if isinstance(result, ProbeUnavailableError):
        raise ProbeUnavailableError(result.message)
    return result


def reset_ffprobe_lookup() -> None:
    """Forget cached lookups (tests only)."""
    with _lookup_lock:
        _lookup_results.clear()


def _duration_ms(raw: Any) -> str | None:
    if raw is None:
        return None
    try:
        return str(int(Decimal(str(raw)) * 1000))
    except InvalidOperation:
        return str(raw)


def render_report(probe_output: dict[str, Any]) -> str:
    """Render ffprobe JSON output as a KEY:VALUE report."""
    fmt = probe_output.get("format") or {}
    streams = probe_output.get("streams") or []
    stream = streams[0] if streams else {}

    lines: list[str] = []
    for tags in (fmt.get("tags") or {}, stream.get("tags") or {}):
        for key, value in tags.items():
            # Multi-line tag values (lyrics, comments) would break the line format.
            lines.append(f"{key}:{str(value).replace(chr(10), ' ')}")

    technical = {
        "codec": stream.get("codec_name"),
        "type": stream.get("codec_type"),
        "bitrate": stream.get("bit_rate") or fmt.get("bit_rate"),
        "sampleRate": stream.get("sample_rate"),
        "channels": stream.get("channels"),
        "duration": _duration_ms(stream.get("duration") or fmt.get("duration")),
    }
    for key, value in technical.items():
        if value is not None:
            lines.append(f"{key}:{value}")

    return "\n".join(lines)


class FFprobeProber(IAudioProber):
    """Runs ffprobe as a subprocess and renders its output as a probe report."""

    def __init__(self, binary: str = "ffprobe") -> None:
        self._binary = binary

    async def probe(self, path: str) -> str:
        executable = resolve_ffprobe(self._binary)
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *FFPROBE_ARGS,
                path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeUnavailableError(f"Failed to start ffprobe: {e}", path=path) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Timeouts arrive as cancellation - don't leave ffprobe running.
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise ProbeFailedError(f"ffprobe failed: {message}", path=path)

        try:
            data = json.loads(stdout.decode(errors="replace") or "{}")
        except json.JSONDecodeError as e:
            raise ProbeFailedError(f"Unreadable ffprobe output: {e}", path=path) from e

        return render_report(data)
