import asyncio
import logging
from typing import Any, Callable, Optional

from squadbot.errors import SessionError

logger = logging.getLogger(__name__)

def report_task_failure(task: asyncio.Task):
    """Hands an unexpected background failure to the loop's exception handler."""
    if task.cancelled() or task.exception() is None:
        return
    task.get_loop().call_exception_handler({
        "message": f"Background task {task.get_name()} failed",
        "exception": task.exception(),
        "task": task,
    })

class OneShotTimer:
    """Fires `on_finish(key)` once after `duration` seconds unless stopped first."""

    def __init__(self, key: str, duration: float, on_finish: Callable[[str], Any], on_done: Optional[Callable[["OneShotTimer"], None]] = None):
        self.key = key
        self.duration = max(0.0, duration)
        self.on_finish = on_finish
        self.on_done = on_done
        self.task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done() and not self._cancelled

    def start(self):
        self._cancelled = False
        self.task = asyncio.create_task(self._run(), name=f"timer:{self.key}")
        self.task.add_done_callback(report_task_failure)
        return self.task

    async def _run(self):
        try:
            await asyncio.sleep(self.duration)
            if self._cancelled:
                return
            # Detach before firing so the callback may reschedule this key
            if self.on_done:
                self.on_done(self)
            result = self.on_finish(self.key)
            if asyncio.iscoroutine(result):
                await result
        except SessionError as e:
            logger.warning(f"Timer {self.key} finished with {type(e).__name__}: {e.message}")

    def stop(self):
        self._cancelled = True
        if self.task and not self.task.done() and self.task is not asyncio.current_task():
            self.task.cancel()
