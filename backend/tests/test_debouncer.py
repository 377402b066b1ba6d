"""
Tests for Debouncer.

Requires Python 3.11+.
"""

import asyncio
import threading
import time

import pytest

from watcher.debouncer import Debouncer, sleep_or_wakeup


class TestDebouncer:
    """Test cases for Debouncer."""

    async def test_coalesces_bursts(self):
        """Ten quick triggers and one late trigger fire exactly twice."""
        debouncer = Debouncer(delay_ms=500)
        count = 0

        def action() -> None:
            nonlocal count
            count += 1

        listener = asyncio.create_task(debouncer.listen(action))
        start = time.monotonic()

        for _ in range(10):
            await asyncio.sleep(0.02)
            debouncer.trigger()
        await asyncio.sleep(0.706)
        debouncer.trigger()

        await asyncio.sleep(4.0 - (time.monotonic() - start))
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

        assert count == 2

    async def test_fires_after_quiet_window(self):
        """The action never runs before the quiet window has elapsed."""
        debouncer = Debouncer(delay_ms=100)
        fired_at: list[float] = []

        async def action() -> None:
            fired_at.append(time.monotonic())

        listener = asyncio.create_task(debouncer.listen(action))
        debouncer.trigger()
        await asyncio.sleep(0.05)
        last_trigger = time.monotonic()
        debouncer.trigger()
        await asyncio.sleep(0.3)
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

        assert len(fired_at) == 1
        assert fired_at[0] - last_trigger >= 0.1

    async def test_trigger_before_listen(self):
        """Triggers recorded before listening starts are honored."""
        debouncer = Debouncer(delay_ms=50)
        debouncer.trigger()
        assert debouncer.pending

        fired = asyncio.Event()
        listener = asyncio.create_task(debouncer.listen(fired.set))
        await asyncio.wait_for(fired.wait(), timeout=2.0)
        assert not debouncer.pending

        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

    async def test_idle_without_triggers(self):
        """No trigger means no action."""
        debouncer = Debouncer(delay_ms=20)
        calls = []

        listener = asyncio.create_task(debouncer.listen(lambda: calls.append(1)))
        await asyncio.sleep(0.2)
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

        assert calls == []

    async def test_action_error_propagates(self):
        """An exception from the action ends listen()."""
        debouncer = Debouncer(delay_ms=20)

        async def action() -> None:
            raise RuntimeError("boom")

        debouncer.trigger()
        with pytest.raises(RuntimeError, match="boom"):
            await asyncio.wait_for(debouncer.listen(action), timeout=2.0)

    async def test_trigger_from_threads(self):
        """Triggers from other threads wake the listener."""
        debouncer = Debouncer(delay_ms=50)
        count = 0

        def action() -> None:
            nonlocal count
            count += 1

        listener = asyncio.create_task(debouncer.listen(action))
        await asyncio.sleep(0.01)

        threads = [threading.Thread(target=debouncer.trigger) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        await asyncio.sleep(0.3)
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

        assert count == 1

    async def test_action_never_overlaps(self):
        """A slow action is not re-entered by triggers arriving meanwhile."""
        debouncer = Debouncer(delay_ms=20)
        running = 0
        max_running = 0
        calls = 0

        async def action() -> None:
            nonlocal running, max_running, calls
            running += 1
            calls += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.1)
            running -= 1

        listener = asyncio.create_task(debouncer.listen(action))
        debouncer.trigger()
        await asyncio.sleep(0.05)
        debouncer.trigger()
        await asyncio.sleep(0.4)
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

        assert calls == 2
        assert max_running == 1

    async def test_single_listener(self):
        """Only one listen() may run at a time."""
        debouncer = Debouncer(delay_ms=20)
        listener = asyncio.create_task(debouncer.listen(lambda: None))
        await asyncio.sleep(0.01)

        with pytest.raises(RuntimeError):
            await debouncer.listen(lambda: None)

        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener

    async def test_cancel_during_trigger_storm(self):
        """Cancellation wins even while wakeups keep arriving."""
        debouncer = Debouncer(delay_ms=200)
        listener = asyncio.create_task(debouncer.listen(lambda: None))
        stop = threading.Event()

        def storm() -> None:
            while not stop.is_set():
                debouncer.trigger()

        thread = threading.Thread(target=storm)
        thread.start()
        try:
            await asyncio.sleep(0.05)
            listener.cancel()
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(listener, timeout=5.0)
        finally:
            stop.set()
            thread.join()


class TestSleepOrWakeup:
    """Test cases for sleep_or_wakeup."""

    async def test_times_out(self):
        assert await sleep_or_wakeup(0.01, asyncio.Event()) is False

    async def test_wakes_up(self):
        event = asyncio.Event()
        event.set()
        assert await sleep_or_wakeup(10.0, event) is True
