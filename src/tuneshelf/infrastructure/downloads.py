"""In-memory download-state tracker."""

import logging
from collections.abc import AsyncIterable, Mapping

from tuneshelf.application.reactive import StateStream
from tuneshelf.domain.entities import DownloadState
from tuneshelf.domain.ports import IDownloadTracker

logger = logging.getLogger(__name__)


class DownloadTracker(IDownloadTracker):
    """Song id → latest DownloadState, published as immutable snapshots."""

    def __init__(self) -> None:
        self._state: StateStream[dict[str, DownloadState]] = StateStream({})

    @property
    def downloads(self) -> AsyncIterable[Mapping[str, DownloadState]]:
        return self._state

    @property
    def snapshot(self) -> Mapping[str, DownloadState]:
        return self._state.value

    def set_state(self, song_id: str, state: DownloadState) -> None:
        logger.debug("Download %s -> %s", song_id, state.status.value)
        self._state.update(lambda current: {**current, song_id: state})

    def remove(self, song_id: str) -> None:
        self._state.update(
            lambda current: {k: v for k, v in current.items() if k != song_id}
        )
