"""
LocalRepo Debouncer.

Collapses bursts of trigger signals into a single delayed action.
Requires Python 3.11+.
"""

import asyncio
import inspect
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any

from utils.logger import LoggerMixin


Action = Callable[[], Awaitable[Any] | Any]


class Debouncer(LoggerMixin):
    """
    Debounces rapid trigger signals.

    Every call to trigger() pushes the deadline out to now + delay.
    listen() runs the action once the deadline passes with no new
    trigger. Only the time of the latest trigger matters, so any number
    of triggers inside one quiet window produce a single action.
    """

    def __init__(self, delay_ms: int = 500) -> None:
        """
        Initialize the debouncer.

        Args:
            delay_ms: Quiet window in milliseconds before the action fires
        """
        self._delay = delay_ms / 1000.0
        self._lock = threading.Lock()
        self._last_triggered: float = 0.0
        self._pending = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    @property
    def delay(self) -> float:
        """Quiet window in seconds."""
        return self._delay

    @property
    def pending(self) -> bool:
        """Whether a trigger is waiting for its quiet window to elapse."""
        with self._lock:
            return self._pending

    def trigger(self) -> None:
        """
        Record a trigger and wake the listener.

        Safe to call from any thread. Never blocks.
        """
        with self._lock:
            self._last_triggered = time.monotonic()
            self._pending = True
            loop = self._loop
            wakeup = self._wakeup

        if loop is None or wakeup is None:
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            # Loop already closed; listen() is no longer running.
            pass

    async def listen(self, action: Action) -> None:
        """
        Run action after each quiet window until cancelled.

        The action is awaited inline and never overlaps itself. An
        exception raised by the action ends listening and propagates.

        Args:
            action: Plain or coroutine function taking no arguments
        """
        wakeup = asyncio.Event()
        with self._lock:
            if self._loop is not None:
                raise RuntimeError("Debouncer.listen() is already running")
            self._loop = asyncio.get_running_loop()
            self._wakeup = wakeup

        self.log.debug("debouncer_listening", delay_s=self._delay)
        try:
            while True:
                wakeup.clear()
                timeout = self._due_in()
                if timeout is not None and timeout <= 0:
                    if self._claim():
                        await self._run(action)
                    continue
                await sleep_or_wakeup(timeout, wakeup)
        finally:
            with self._lock:
                self._loop = None
                self._wakeup = None

    def _due_in(self) -> float | None:
        """Seconds until the pending action is due, or None when idle."""
        with self._lock:
            if not self._pending:
                return None
            return self._last_triggered + self._delay - time.monotonic()

    def _claim(self) -> bool:
        """Clear the pending flag if no trigger arrived since the deadline check."""
        with self._lock:
            if not self._pending:
                return False
            if self._last_triggered + self._delay > time.monotonic():
                return False
            self._pending = False
            return True

    async def _run(self, action: Action) -> None:
        self.log.debug("debounced_action_firing")
        result = action()
        if inspect.isawaitable(result):
            await result


async def sleep_or_wakeup(delay: float | None, event: asyncio.Event) -> bool:
    """
    Sleep for delay seconds unless event is set first.

    A delay of None waits for the event alone.

    Returns:
        True if the event fired, False if the delay elapsed
    """
    try:
        async with asyncio.timeout(delay):
            await event.wait()
    except TimeoutError:
        return False
    return True
