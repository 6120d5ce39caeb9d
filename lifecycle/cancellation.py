"""
Cooperative cancellation for orchestration runs.

A token is checked before each dispatch attempt and at every poll
suspension, so a caller that went away can stop a run without waiting for
the retry budgets to drain.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from .errors import RunCancelled

SleepFn = Callable[[float], Awaitable[None]]


class CancellationToken:
    """Set-once flag shared between a caller and one run."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self._event.is_set():
            raise RunCancelled(stage)

    async def sleep(self, interval: float, sleep: Optional[SleepFn] = None, stage: Optional[str] = None) -> None:
        """Suspend for `interval` seconds or until cancelled, whichever is first."""
        self.raise_if_cancelled(stage)
        sleeper = asyncio.ensure_future((sleep or asyncio.sleep)(interval))
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        self.raise_if_cancelled(stage)
