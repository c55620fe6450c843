"""One-shot session and room timers."""

from __future__ import annotations

import asyncio

from squadbot.errors import NotFoundError
from squadbot.services.timeout_service import TimeoutScheduler


def test_session_timeout_fires_once():
    async def scenario():
        scheduler = TimeoutScheduler()
        fired = []

        async def on_timeout(key):
            fired.append(key)

        scheduler.schedule_session_timeout("s1", 0.01, on_timeout)
        assert scheduler.has_session_timeout("s1")
        await asyncio.sleep(0.1)
        assert fired == ["s1"]
        assert not scheduler.has_session_timeout("s1")
        assert scheduler.pending_session_timeouts == 0

    asyncio.run(scenario())


def test_cancelled_timeout_never_fires():
    async def scenario():
        scheduler = TimeoutScheduler()
        fired = []

        async def on_timeout(key):
            fired.append(key)

        scheduler.schedule_session_timeout("s1", 0.01, on_timeout)
        assert scheduler.cancel_session_timeout("s1") is True
        assert scheduler.cancel_session_timeout("s1") is False
        await asyncio.sleep(0.1)
        assert fired == []

    asyncio.run(scenario())


def test_rescheduling_replaces_pending_timer():
    async def scenario():
        scheduler = TimeoutScheduler()
        fired = []

        async def first(key):
            fired.append("first")

        async def second(key):
            fired.append("second")

        scheduler.schedule_session_timeout("s1", 0.01, first)
        scheduler.schedule_session_timeout("s1", 0.02, second)
        assert scheduler.pending_session_timeouts == 1
        await asyncio.sleep(0.1)
        assert fired == ["second"]

    asyncio.run(scenario())


def test_callback_may_reschedule_its_own_key():
    async def scenario():
        scheduler = TimeoutScheduler()
        fired = []

        async def on_timeout(key):
            fired.append(key)
            if len(fired) == 1:
                scheduler.schedule_room_cleanup(key, 0.01, on_timeout)

        scheduler.schedule_room_cleanup("r1", 0.01, on_timeout)
        await asyncio.sleep(0.2)
        assert fired == ["r1", "r1"]
        assert scheduler.pending_room_cleanups == 0

    asyncio.run(scenario())


def test_domain_error_in_callback_is_contained(caplog):
    async def scenario():
        scheduler = TimeoutScheduler()

        async def on_timeout(key):
            raise NotFoundError("gone")

        timer = scheduler.schedule_session_timeout("s1", 0.01, on_timeout)
        await asyncio.sleep(0.1)
        assert timer.task.done() and timer.task.exception() is None

    asyncio.run(scenario())
    assert "NotFoundError" in caplog.text


def test_cancel_all():
    async def scenario():
        scheduler = TimeoutScheduler()
        fired = []

        async def on_timeout(key):
            fired.append(key)

        scheduler.schedule_session_timeout("s1", 0.01, on_timeout)
        scheduler.schedule_room_cleanup("r1", 0.01, on_timeout)
        scheduler.cancel_all()
        await asyncio.sleep(0.1)
        assert fired == []
        assert scheduler.pending_session_timeouts == 0
        assert scheduler.pending_room_cleanups == 0

    asyncio.run(scenario())


def test_unexpected_error_reaches_loop_exception_handler():
    async def scenario():
        seen = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: seen.append(context))

        async def on_timeout(key):
            raise RuntimeError("boom")

        TimeoutScheduler().schedule_session_timeout("s1", 0.01, on_timeout)
        await asyncio.sleep(0.1)
        assert [type(context["exception"]) for context in seen] == [RuntimeError]
        assert "timer:s1" in seen[0]["message"]

    asyncio.run(scenario())
