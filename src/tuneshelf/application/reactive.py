"""Reactive stream primitives on top of asyncio.

Hey future me - this is the plumbing behind every library view. The model:

- StateStream: holds ONE latest value. Subscribers get the current value first, then
  every change. It is conflated (a slow subscriber only sees the newest value) and
  equal values are dropped, so "nothing changed" never wakes anyone up.
- Operators (map_values, distinct_until_changed, switch_map, combine) are async
  generators over AsyncIterables. Closing the outer iterator (aclose / leaving an
  `async with aclosing(...)`) cancels every inner task it started.
- SharedState: collects a source into a StateStream inside a TaskScope, started
  lazily on the first subscription. This is what views hand out to observers.
- TaskScope: owns long-lived tasks (shared states, refresh watchers). close() cancels
  them all.

Everything must run on the event loop thread - StateStream.set() is not thread-safe.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Coroutine
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_UNSET: Any = object()
_DONE: Any = object()


class StateStream(Generic[T]):
    """Latest-value holder with distinct-until-changed change notification."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._version = 0
        self._changed = asyncio.Event()

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Publish a new value. Values equal to the current one are ignored."""
        if value == self._value:
            return
        self._value = value
        self._version += 1
        # Swap before waking so late subscribers wait on the fresh event.
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def update(self, transform: Callable[[T], T]) -> None:
        self.set(transform(self._value))

    async def subscribe(self) -> AsyncIterator[T]:
        version = self._version
        yield self._value
        while True:
            if self._version == version:
                await self._changed.wait()
            version = self._version
            yield self._value

    def __aiter__(self) -> AsyncIterator[T]:
        return self.subscribe()


class TaskScope:
    """Owns a set of background tasks and cancels them together."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def launch(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start ``coro`` as a task owned by this scope."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"TaskScope '{self.name}' is closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Task %s in scope %s failed: %s",
                task.get_name(),
                self.name,
                error,
                exc_info=error,
            )

    async def close(self) -> None:
        """Cancel all tasks and wait until they are finished."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


class SharedState(Generic[T]):
    """A source collected into a StateStream, started on first subscription."""

    def __init__(self, source: AsyncIterable[T], scope: TaskScope, initial: T, name: str) -> None:
        self._source = source
        self._scope = scope
        self._state: StateStream[T] = StateStream(initial)
        self._name = name
        self._task: asyncio.Task[Any] | None = None

    @property
    def value(self) -> T:
        return self._state.value

    @property
    def is_started(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is None:
            self._task = self._scope.launch(self._collect(), name=self._name)

    async def _collect(self) -> None:
        async for value in self._source:
            self._state.set(value)

    def __aiter__(self) -> AsyncIterator[T]:
        self.start()
        return self._state.subscribe()


async def map_values(source: AsyncIterable[T], transform: Callable[[T], R]) -> AsyncIterator[R]:
    async for value in source:
        yield transform(value)


async def distinct_until_changed(source: AsyncIterable[T]) -> AsyncIterator[T]:
    """Drop values equal (==) to the previously emitted one."""
    last: Any = _UNSET
    async for value in source:
        if last is _UNSET or value != last:
            last = value
            yield value


_ITEM = "item"
_ERROR = "error"
_INNER_DONE = "inner_done"
_OUTER_DONE = "outer_done"


async def switch_map(
    source: AsyncIterable[T], transform: Callable[[T], AsyncIterable[R]]
) -> AsyncIterator[R]:
    """For every upstream value, switch to the stream ``transform(value)`` returns.

    The previous inner stream is cancelled as soon as a new upstream value arrives, and
    anything it already queued is discarded.
    """
    queue: asyncio.Queue[tuple[str, int, Any]] = asyncio.Queue()
    generation = 0
    inner: asyncio.Task[None] | None = None

    async def pump_inner(stream: AsyncIterable[R], own_generation: int) -> None:
        try:
            async for item in stream:
                await queue.put((_ITEM, own_generation, item))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put((_ERROR, own_generation, e))
            return
        await queue.put((_INNER_DONE, own_generation, None))

    async def pump_outer() -> None:
        nonlocal generation, inner
        try:
            async for value in source:
                if inner is not None:
                    inner.cancel()
                generation += 1
                inner = asyncio.create_task(pump_inner(transform(value), generation))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put((_ERROR, -1, e))
            return
        await queue.put((_OUTER_DONE, -1, None))

    outer = asyncio.create_task(pump_outer())
    outer_done = False
    inner_done_generation = 0
    try:
        while True:
            kind, item_generation, payload = await queue.get()
            if kind == _OUTER_DONE:
                outer_done = True
            elif kind == _ERROR:
                if item_generation in (-1, generation):
                    raise payload
                continue
            elif item_generation != generation:
                continue
            elif kind == _ITEM:
                yield payload
                continue
            else:
                inner_done_generation = item_generation
            if outer_done and inner_done_generation == generation:
                return
    finally:
        outer.cancel()
        if inner is not None:
            inner.cancel()


async def combine(
    *sources: AsyncIterable[Any], transform: Callable[..., R]
) -> AsyncIterator[R]:
    """Emit ``transform(*latest)`` whenever any source changes.

    Nothing is emitted until every source produced a value. Updates that are already
    queued are applied together, so observers see one recombination per batch.
    """
    count = len(sources)
    latest: list[Any] = [_UNSET] * count
    queue: asyncio.Queue[tuple[int, Any, BaseException | None]] = asyncio.Queue()

    async def pump(index: int, stream: AsyncIterable[Any]) -> None:
        try:
            async for item in stream:
                await queue.put((index, item, None))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put((index, _UNSET, e))
            return
        await queue.put((index, _DONE, None))

    tasks = [asyncio.create_task(pump(i, s)) for i, s in enumerate(sources)]
    remaining = count
    try:
        while remaining:
            batch = [await queue.get()]
            while not queue.empty():
                batch.append(queue.get_nowait())
            changed = False
            for index, item, error in batch:
                if error is not None:
                    raise error
                if item is _DONE:
                    remaining -= 1
                    continue
                latest[index] = item
                changed = True
            if changed and all(value is not _UNSET for value in latest):
                yield transform(*latest)
    finally:
        for task in tasks:
            task.cancel()
