# backend/campus_attendance/services/token_display.py
"""View-scoped owner of the token currently on screen."""
import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Union

from campus_attendance.services.countdown import CountdownTimer, format_remaining
from campus_attendance.services.event_store import EventSnapshot
from campus_attendance.services.location_service import LocationFix, LocationService
from campus_attendance.services.session_controller import (
    AttendanceSessionController, SessionState, compute_state
)
from campus_attendance.services.token_service import AttendanceToken

logger = logging.getLogger(__name__)


class TokenDisplay:
    """
    Shows one event's token at a time with a live countdown.

    ``show`` acquires a countdown timer and a store subscription for the
    selected event; ``hide`` (also run on context exit and before showing a
    different event) releases both. Displayed fields are only written while
    holding ``_lock``, whether from the caller, the timer thread or a store
    notification.
    """

    def __init__(
        self,
        controller: AttendanceSessionController,
        tick_seconds: float = 1.0,
        on_tick: Callable[['TokenDisplay'], None] = None,
        on_expired: Callable[['TokenDisplay'], None] = None,
        timer_factory=CountdownTimer
    ):
        self.controller = controller
        self.tick_seconds = tick_seconds
        self.on_tick = on_tick
        self.on_expired = on_expired
        self.timer_factory = timer_factory

        self.selected_event_id: Optional[int] = None
        self.event: Optional[EventSnapshot] = None
        self.token: Optional[AttendanceToken] = None
        self.state: Optional[SessionState] = None
        self.time_remaining: Optional[str] = None

        self._lock = threading.RLock()
        self._timer = None
        self._unsubscribe = None

    @property
    def is_showing(self) -> bool:
        return self.selected_event_id is not None

    def show(self, event_id: int) -> AttendanceToken:
        """Select ``event_id``. On failure the previous selection stays on screen."""
        event = self.controller.store.get_event(event_id)
        token = self.controller.token_for(event)

        with self._lock:
            self._release()
            self.selected_event_id = event_id
            self.event = event
            self.token = token
            self.state = None
            self._evaluate()
            self._unsubscribe = self.controller.store.subscribe(event_id, self._on_event_changed)
            self._timer = self.timer_factory(self.tick, self.tick_seconds)
            self._timer.start()

        logger.debug("Showing attendance token for event %s", event_id)
        return token

    def hide(self) -> None:
        with self._lock:
            self._release()
            self.selected_event_id = None
            self.event = None
            self.token = None
            self.state = None
            self.time_remaining = None

    def tick(self) -> None:
        """Recompute remaining time; flips to Expired when the clock passes expiry."""
        with self._lock:
            if self.selected_event_id is None:
                return
            self._evaluate()

    def refresh(self) -> None:
        """Re-read the selected event from the store."""
        with self._lock:
            event_id = self.selected_event_id
        if event_id is None:
            return
        self._on_event_changed(self.controller.store.get_event(event_id))

    # Administrator actions. Each waits for the store to acknowledge before
    # the display changes; an exception leaves the current token untouched.

    def set_manual_expiration(self, new_expiration: Union[str, datetime]) -> AttendanceToken:
        token = self.controller.set_manual_expiration(self._require_selection(), new_expiration)
        self.refresh()
        return token

    def clear_manual_expiration(self) -> AttendanceToken:
        token = self.controller.clear_manual_expiration(self._require_selection())
        self.refresh()
        return token

    def stop_attendance(self) -> EventSnapshot:
        event = self.controller.stop_attendance(self._require_selection())
        self.refresh()
        return event

    def capture_location(self, location_service: LocationService) -> Optional[LocationFix]:
        """
        Read the device location for the selected event.

        Returns ``None`` when the selection changed while the read was in
        flight; that result belongs to a session that is no longer shown.
        """
        requested_for = self._require_selection()
        fix = location_service.get_current_location()

        with self._lock:
            if self.selected_event_id != requested_for:
                logger.debug("Discarding stale location read for event %s", requested_for)
                return None
        return fix

    def _require_selection(self) -> int:
        with self._lock:
            if self.selected_event_id is None:
                raise RuntimeError("No event is being shown")
            return self.selected_event_id

    def _on_event_changed(self, event: EventSnapshot) -> None:
        with self._lock:
            if event.id != self.selected_event_id:
                return
            self.event = event
            self.token = self.controller.token_for(event)
            self._evaluate()

    def _evaluate(self) -> None:
        now = self.controller.clock()
        previous = self.state
        self.state = compute_state(self.event, now)

        if self.state is SessionState.ACTIVE and self.token.is_expired(now):
            # default-policy token lapsed while the event is still open
            self.token = self.controller.token_for(self.event)

        if self.state is SessionState.EXPIRED:
            self.time_remaining = 'Expired'
        else:
            self.time_remaining = format_remaining(self.token.expires_at, now)

        if previous is SessionState.ACTIVE and self.state is SessionState.EXPIRED:
            logger.info("Attendance session for event %s expired", self.selected_event_id)
            if self.on_expired:
                self.on_expired(self)
        if self.on_tick:
            self.on_tick(self)

    def _release(self) -> None:
        if self._timer is not None:
            # no join while holding the lock the timer thread ticks under
            self._timer.cancel(wait=False)
            self._timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> 'TokenDisplay':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.hide()
