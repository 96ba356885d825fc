from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("scheduler")


class DebouncedTask:
    """Single-shot deferred call; arming it again replaces the pending one.

    Once the delay has elapsed the callback is detached from the handle, so
    ``cancel()`` issued by the callback itself (or while it runs) does not
    interrupt it.
    """

    def __init__(self, name: str = "debounced"):
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, delay_sec: float, callback: Callable[[], Awaitable[object]]) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._fire(delay_sec, callback), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _fire(self, delay_sec: float, callback: Callable[[], Awaitable[object]]) -> None:
        await asyncio.sleep(delay_sec)
        current = asyncio.current_task()
        if self._task is current:
            self._task = None
        if current is not None:
            self._running.add(current)
        try:
            await callback()
        except Exception:
            logger.exception("debounced_callback_failed name=%s", self.name)
        finally:
            if current is not None:
                self._running.discard(current)

    async def wait_idle(self) -> None:
        """Wait for the pending call (if any) and any callback in flight."""
        while self.pending or self._running:
            tasks = list(self._running)
            if self._task is not None:
                tasks.append(self._task)
            await asyncio.gather(*tasks, return_exceptions=True)
