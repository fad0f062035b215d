"""Exam countdown: derived remaining time and a cancellable ticker.

Remaining time is never stored. It is recomputed from the attempt's
``started_at`` and the exam duration, so a resumed attempt shows the same
countdown as before the reload.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from cbt.core.clock import as_utc

logger = logging.getLogger(__name__)


def deadline(started_at: datetime, duration_minutes: int) -> datetime:
    return as_utc(started_at) + timedelta(minutes=duration_minutes)


def remaining_seconds(
    started_at: datetime, duration_minutes: int, now: datetime
) -> int:
    """``max(0, started_at + duration − now)`` in whole seconds.

    Partial seconds are dropped, matching the one-second tick.
    """
    left = (deadline(started_at, duration_minutes) - as_utc(now)).total_seconds()
    return max(0, math.floor(left))


def format_clock(seconds: int) -> str:
    """``HH:MM:SS`` as shown on the exam header."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class Ticker:
    """Calls an async callback every ``interval`` seconds until cancelled.

    The owner must call :meth:`cancel` on teardown; a cancelled ticker never
    fires again. Exceptions raised by the callback are logged and stop the
    ticker rather than killing the event loop.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]):
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._cancelled:
            raise RuntimeError("Ticker was cancelled and cannot be restarted")
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                break
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer callback failed; stopping ticker")
                self._cancelled = True

    def cancel(self) -> None:
        self._cancelled = True
        task = self._task
        self._task = None
        # The callback may cancel its own ticker (submit on expiry); the
        # running task then just falls out of its loop.
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()
