"""Observable key-value preferences, optionally persisted to a JSON file."""

import asyncio
import json
import logging
from collections.abc import AsyncIterable, Mapping
from pathlib import Path
from typing import Any

from tuneshelf.application.reactive import StateStream
from tuneshelf.domain.exceptions import StoreError
from tuneshelf.domain.ports import IPreferenceStore

logger = logging.getLogger(__name__)


class PreferenceStore(IPreferenceStore):
    """Preferences held in a StateStream.

    Every ``set`` publishes a fresh dict snapshot, so observers never see a mapping
    that is mutated underneath them. Setting a key to its current value publishes
    nothing.
    """

    def __init__(self, path: Path | None = None, initial: Mapping[str, Any] | None = None) -> None:
        self._path = path
        values = dict(initial or {})
        if path is not None and path.exists():
            values.update(self._load(path))
        self._state: StateStream[dict[str, Any]] = StateStream(values)
        self._save_lock = asyncio.Lock()

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring preferences file %s: not a JSON object", path)
            return {}
        return data

    @property
    def data(self) -> AsyncIterable[Mapping[str, Any]]:
        return self._state

    @property
    def snapshot(self) -> Mapping[str, Any]:
        return self._state.value

    def get(self, key: str, default: Any = None) -> Any:
        return self._state.value.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        current = self._state.value
        if key in current and current[key] == value:
            return
        self._state.set({**current, key: value})
        if self._path is not None:
            await self._save(self._path)

    async def remove(self, key: str) -> None:
        current = self._state.value
        if key not in current:
            return
        self._state.set({k: v for k, v in current.items() if k != key})
        if self._path is not None:
            await self._save(self._path)

    async def _save(self, path: Path) -> None:
        def write(values: dict[str, Any]) -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(values, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(path)

        # One writer at a time, always the newest snapshot: overlapping set() calls
        # share the .tmp file and must not land an older state last.
        async with self._save_lock:
            try:
                await asyncio.to_thread(write, self._state.value)
            except OSError as e:
                raise StoreError(f"Could not save preferences to {path}: {e}") from e
