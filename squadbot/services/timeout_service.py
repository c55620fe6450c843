import logging
from typing import Any, Awaitable, Callable, Dict

from squadbot.utils.timer import OneShotTimer

logger = logging.getLogger(__name__)

TimerCallback = Callable[[str], Awaitable[Any]]


class TimeoutScheduler:
    """
    Session expiry timers and empty voice-room cleanup timers.

    Both tables hold at most one pending timer per key; scheduling a key that
    already has one replaces it. Timers only carry the id, callbacks re-fetch
    whatever state they need when they fire.
    """

    def __init__(self):
        self._session_timers: Dict[str, OneShotTimer] = {}
        self._room_timers: Dict[str, OneShotTimer] = {}

    # Session expiry

    def schedule_session_timeout(self, session_id: str, delay: float, callback: TimerCallback) -> OneShotTimer:
        self.cancel_session_timeout(session_id)
        timer = OneShotTimer(session_id, delay, callback, on_done=self._detach_session_timer)
        self._session_timers[session_id] = timer
        timer.start()
        return timer

    def cancel_session_timeout(self, session_id: str) -> bool:
        timer = self._session_timers.pop(session_id, None)
        if timer is None:
            return False
        timer.stop()
        return True

    def has_session_timeout(self, session_id: str) -> bool:
        timer = self._session_timers.get(session_id)
        return timer is not None and timer.active

    def _detach_session_timer(self, timer: OneShotTimer):
        if self._session_timers.get(timer.key) is timer:
            del self._session_timers[timer.key]

    # Empty voice-room cleanup

    def schedule_room_cleanup(self, room_id: str, delay: float, callback: TimerCallback) -> OneShotTimer:
        self.cancel_room_cleanup(room_id)
        timer = OneShotTimer(room_id, delay, callback, on_done=self._detach_room_timer)
        self._room_timers[room_id] = timer
        timer.start()
        logger.info(f"Started {delay:g}s cleanup timer for empty voice channel {room_id}")
        return timer

    def cancel_room_cleanup(self, room_id: str) -> bool:
        timer = self._room_timers.pop(room_id, None)
        if timer is None:
            return False
        timer.stop()
        logger.info(f"Cancelled cleanup timer for voice channel {room_id}")
        return True

    def has_room_cleanup(self, room_id: str) -> bool:
        timer = self._room_timers.get(room_id)
        return timer is not None and timer.active

    def _detach_room_timer(self, timer: OneShotTimer):
        if self._room_timers.get(timer.key) is timer:
            del self._room_timers[timer.key]

    @property
    def pending_session_timeouts(self) -> int:
        return len(self._session_timers)

    @property
    def pending_room_cleanups(self) -> int:
        return len(self._room_timers)

    def cancel_all(self):
        for timer in list(self._session_timers.values()) + list(self._room_timers.values()):
            timer.stop()
        self._session_timers.clear()
        self._room_timers.clear()
