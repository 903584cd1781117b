from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_UNSET: Any = object()


class LatestKeyRunner(Generic[K, V]):
    """
    Recomputes an async value whenever its trigger key changes.

    - A key equal to the last requested one does not start a new computation;
      callers share the in-flight one.
    - Only the computation for the most recently requested key may apply its
      result; older ones are dropped on arrival.
    - The previous value stays readable while a computation is in flight.
    """

    def __init__(self, compute: Callable[[K], Awaitable[V]], empty: V, name: str) -> None:
        self._compute = compute
        self._empty = empty
        self._name = name
        self._value: V = empty
        self._requested_key: K = _UNSET
        self._resolved_key: K = _UNSET
        self._generation = 0
        self._inflight: asyncio.Task | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def value(self) -> V:
        return self._value

    @property
    def resolved_key(self) -> K | None:
        return None if self._resolved_key is _UNSET else self._resolved_key

    @property
    def requested_key(self) -> K | None:
        return None if self._requested_key is _UNSET else self._requested_key

    @property
    def is_running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def is_stale(self) -> bool:
        return self._requested_key is not _UNSET and self._requested_key != self._resolved_key

    def is_current_for(self, key: K) -> bool:
        return self._resolved_key is not _UNSET and self._resolved_key == key and not self.is_stale

    async def run(self, key: K, force: bool = False) -> V:
        if not force and self._requested_key is not _UNSET and key == self._requested_key:
            task = self._inflight
            if task is not None and not task.done():
                await asyncio.shield(task)
            return self._value

        self._requested_key = key
        self._generation += 1
        task = asyncio.ensure_future(self._execute(key, self._generation))
        self._inflight = task
        await asyncio.shield(task)
        return self._value

    def assign(self, key: K, value: V) -> None:
        """Set the value for `key` directly, dropping any in-flight computation."""
        self._generation += 1
        self._requested_key = key
        self._resolved_key = key
        self._value = value
        self._inflight = None

    def invalidate(self) -> None:
        self._generation += 1
        self._requested_key = _UNSET
        self._resolved_key = _UNSET
        self._value = self._empty
        self._inflight = None

    async def _execute(self, key: K, generation: int) -> None:
        result = await self._compute(key)
        if generation != self._generation:
            self._logger.debug("Dropped stale result", extra={"runner": self._name, "key": repr(key)})
            return
        self._value = result
        self._resolved_key = key
