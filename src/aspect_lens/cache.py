"""
Compute-once memoization for coroutine results.

Used for report-detail lookups (scoped to one aggregation call) and for
workspace-specific tagger predicates (scoped to a tagger engine).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class InFlightMemo(Generic[K, V]):
    """
    Map from key to the result of one computation.

    The first caller for a key starts the computation; concurrent callers await
    the same in-flight task and later callers get the stored result. A failed
    computation is evicted so that the next caller starts a fresh one.
    """

    def __init__(self) -> None:
        self._results: dict[K, V] = {}
        self._tasks: dict[K, asyncio.Future[V]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)

    def keys(self) -> list[K]:
        """Keys with a stored result or a computation in flight."""
        return list(dict.fromkeys([*self._results, *self._tasks]))

    async def get(self, key: K, compute: Callable[[], Awaitable[V]]) -> V:
        """Return the value for key, computing it at most once at a time."""
        if key in self._results:
            return self._results[key]

        task = self._tasks.get(key)
        if task is None or task.cancelled():
            task = asyncio.ensure_future(compute())
            self._tasks[key] = task

        try:
            # Shield so one waiter being cancelled does not cancel the others
            value = await asyncio.shield(task)
        except Exception:
            if self._tasks.get(key) is task:
                del self._tasks[key]
            raise

        self._results[key] = value
        self._tasks.pop(key, None)
        return value

    def invalidate(self, key: K | None = None) -> None:
        """Forget one key, or everything when key is None."""
        if key is None:
            self._results.clear()
            self._tasks.clear()
            return
        self._results.pop(key, None)
        self._tasks.pop(key, None)
        logger.debug(f"Invalidated memo entry {key!r}")
