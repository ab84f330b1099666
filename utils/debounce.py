"""Cancellable timer for search-as-you-type queries."""

import asyncio
from typing import Any, Awaitable, Callable, Optional


class Debouncer:
    """
    Run a query only after input has been quiet for `delay` seconds.

    Each call() cancels the pending timer. Results from a generation that was
    superseded while its query was in flight are discarded (call() returns
    None for them).
    """

    def __init__(self, delay: float = 0.3):
        self.delay = delay
        self.generation = 0
        self._pending: Optional[asyncio.Task] = None

    async def _run(self, generation: int, query: Callable[[], Awaitable[Any]]):
        await asyncio.sleep(self.delay)
        result = await query()
        if generation != self.generation:
            return None
        return result

    async def call(self, query: Callable[[], Awaitable[Any]]) -> Optional[Any]:
        self.cancel()
        self.generation += 1
        task = asyncio.ensure_future(self._run(self.generation, query))
        self._pending = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._pending is task:
                self._pending = None
        if task.cancelled():
            return None
        return task.result()

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

