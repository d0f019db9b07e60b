# backend/campus_attendance/services/countdown.py
"""Cancellable countdown timer and remaining-time formatting."""
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_TICK_SECONDS = 1.0


def format_remaining(expires_at: Optional[datetime], now: datetime) -> str:
    """Human label for the time left until ``expires_at``."""
    if expires_at is None:
        return 'No expiration set'

    diff_seconds = (expires_at - now).total_seconds()
    if diff_seconds <= 0:
        return 'Expired'

    diff_mins = int(diff_seconds // 60)
    diff_hours = diff_mins // 60
    diff_days = diff_hours // 24

    if diff_days > 0:
        return f"{diff_days}d {diff_hours % 24}h {diff_mins % 60}m"
    if diff_hours > 0:
        return f"{diff_hours}h {diff_mins % 60}m"
    return f"{diff_mins} minutes"


class CountdownTimer:
    """
    Calls ``callback`` every ``interval`` seconds on a daemon thread until
    cancelled. Owners must cancel it on every exit path; the context manager
    form does that.
    """

    def __init__(self, callback: Callable[[], None], interval: float = MAX_TICK_SECONDS):
        if interval <= 0 or interval > MAX_TICK_SECONDS:
            raise ValueError(f"Tick interval must be in (0, {MAX_TICK_SECONDS}] seconds")
        self.callback = callback
        self.interval = interval
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopped.is_set()

    def start(self) -> 'CountdownTimer':
        if self._thread is not None:
            raise RuntimeError("Timer already started")
        self._thread = threading.Thread(target=self._run, name='attendance-countdown', daemon=True)
        self._thread.start()
        return self

    def cancel(self, wait: bool = True) -> None:
        """Stop ticking. With ``wait`` the call returns once the thread has exited."""
        self._stopped.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval * 2)

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Countdown tick failed; stopping timer")
                self._stopped.set()

    def __enter__(self) -> 'CountdownTimer':
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()
