import time
from typing import Callable


class TimerHandle:
    """Cancel token for one scheduled callback."""

    def __init__(self, room_code: str, delay: float) -> None:
        self.room_code = room_code
        self.delay = delay
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class RoomTimers:
    """Per-room delayed callbacks run as Socket.IO background tasks.

    A cancelled handle never fires. Exceptions raised by a callback are
    logged and dropped so they never reach the async runtime.
    """

    def __init__(self, spawn: Callable, sleep: Callable = time.sleep, logger=None, heartbeat: int = 0) -> None:
        self._spawn = spawn
        self._sleep = sleep
        self._logger = logger
        self._heartbeat = heartbeat

    def schedule(self, room_code: str, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(room_code, delay)
        self._spawn(self._worker, handle, callback)
        return handle

    def _worker(self, handle: TimerHandle, callback: Callable[[], None]) -> None:
        if self._heartbeat and self._heartbeat > 0:
            slept = 0.0
            while slept < handle.delay and not handle.cancelled:
                step = min(self._heartbeat, handle.delay - slept)
                self._sleep(step)
                slept += step
                self._log('info', f"[timer-heartbeat] room={handle.room_code} remaining={max(0, handle.delay - slept)}s")
        else:
            self._sleep(handle.delay)
        if handle.cancelled:
            return
        handle.fired = True
        try:
            callback()
        except Exception:
            self._log('exception', f"[timer-error] room={handle.room_code} callback failed")

    def _log(self, level: str, message: str) -> None:
        if self._logger is not None:
            getattr(self._logger, level)(message)
