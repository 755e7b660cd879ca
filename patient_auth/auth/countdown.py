"""Resend cooldown timer for one-time codes."""

from __future__ import annotations

import asyncio
from typing import Callable

TickCallback = Callable[[int], None]


class ResendCountdown:
    """Self-rescheduling one-second countdown that gates code resends."""

    def __init__(
        self,
        seconds: int = 60,
        *,
        interval_seconds: float = 1.0,
        on_tick: TickCallback | None = None,
    ) -> None:
        """Configure countdown length and tick interval."""
        self._seconds = max(1, int(seconds))
        self._interval = interval_seconds
        self._on_tick = on_tick
        self._remaining = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def seconds(self) -> int:
        """Return the full cooldown length."""
        return self._seconds

    @property
    def remaining(self) -> int:
        """Return seconds left before resend is allowed."""
        return self._remaining

    @property
    def can_resend(self) -> bool:
        """Return whether the countdown has reached zero."""
        return self._remaining == 0

    @property
    def running(self) -> bool:
        """Return whether the background tick task is active."""
        return self._task is not None and not self._task.done()

    def reset(self) -> None:
        """Set remaining time back to the full cooldown without scheduling."""
        self._remaining = self._seconds

    def start(self) -> None:
        """Restart from the full cooldown and tick in the background."""
        self.stop()
        self.reset()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the background tick task; remaining time is kept."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def tick(self) -> int:
        """Advance the countdown by one second."""
        if self._remaining > 0:
            self._remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self._remaining)
        return self._remaining

    async def _run(self) -> None:
        """Tick once per interval until zero."""
        while self._remaining > 0:
            await asyncio.sleep(self._interval)
            self.tick()
