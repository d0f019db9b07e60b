# backend/campus_attendance/services/event_store.py
"""Event persistence: snapshots at the read boundary, versioned writes."""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from campus_attendance import db
from campus_attendance.exceptions import (
    ConcurrentModification, DuplicateAttendance, EventNotFound,
    InvalidCoordinates, PersistenceError
)
from campus_attendance.models import AttendanceRecord, Event
from campus_attendance.services.geofence_service import Geofence
from campus_attendance.utils.helpers import ensure_utc, to_iso

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = frozenset({'is_active', 'qr_expiration', 'latitude', 'longitude', 'radius_meters'})


@dataclass(frozen=True)
class EventSnapshot:
    """Event as the attendance core sees it, with defaults already applied."""
    id: int
    title: str
    location: str
    date: str
    geofence: Optional[Geofence]
    qr_expiration: Optional[datetime]
    is_active: bool
    version: int

    @classmethod
    def from_model(cls, event: Event) -> 'EventSnapshot':
        return cls(
            id=event.id,
            title=event.title or '',
            location=event.location or '',
            date=event.date or '',
            geofence=cls._read_geofence(event),
            qr_expiration=ensure_utc(event.qr_expiration) if event.qr_expiration else None,
            is_active=event.is_active is not False,
            version=event.version or 1
        )

    @staticmethod
    def _read_geofence(event: Event) -> Optional[Geofence]:
        values = (event.latitude, event.longitude, event.radius_meters)
        if any(value is None for value in values):
            return None
        try:
            return Geofence(*values)
        except InvalidCoordinates as e:
            # A corrupt geofence must not silently disable verification.
            raise PersistenceError(f"Stored geofence for event {event.id} is invalid: {e.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'location': self.location,
            'date': self.date,
            'coordinates': self.geofence.to_dict() if self.geofence else None,
            'qr_expiration': to_iso(self.qr_expiration) if self.qr_expiration else None,
            'is_active': self.is_active,
            'version': self.version
        }


class EventStore:
    """SQLAlchemy-backed store with in-process change subscriptions."""

    def __init__(self):
        self._subscribers: Dict[int, List[Callable[[EventSnapshot], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def get_event(self, event_id: int) -> EventSnapshot:
        try:
            event = db.session.get(Event, event_id)
        except SQLAlchemyError as e:
            logger.error("Failed to read event %s: %s", event_id, e)
            raise PersistenceError("Failed to load event")

        if event is None:
            raise EventNotFound(f"Event {event_id} not found")
        return EventSnapshot.from_model(event)

    def update_event(self, event_id: int, changes: Dict[str, Any],
                     expected_version: Optional[int] = None) -> EventSnapshot:
        """
        Apply a partial update and bump the event version.

        With ``expected_version`` the write only succeeds if nobody else
        changed the event since it was read (compare-and-swap).
        """
        unknown = set(changes) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable: {', '.join(sorted(unknown))}")

        try:
            stmt = update(Event).where(Event.id == event_id)
            if expected_version is not None:
                stmt = stmt.where(Event.version == expected_version)
            stmt = stmt.values(version=Event.version + 1, **changes) \
                .execution_options(synchronize_session=False)

            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                if db.session.get(Event, event_id) is None:
                    raise EventNotFound(f"Event {event_id} not found")
                logger.warning("Version conflict on event %s (expected v%s)", event_id, expected_version)
                raise ConcurrentModification()

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Failed to update event %s: %s", event_id, e)
            raise PersistenceError("Failed to update event")

        snapshot = self.get_event(event_id)
        self._notify(snapshot)
        return snapshot

    def has_attendee(self, event_id: int, student_id: str) -> bool:
        try:
            query = AttendanceRecord.query.filter_by(event_id=event_id, student_id=student_id)
            return bool(db.session.query(query.exists()).scalar())
        except SQLAlchemyError as e:
            logger.error("Failed to read attendees of event %s: %s", event_id, e)
            raise PersistenceError("Failed to load attendance records")

    def append_attendee(self, event_id: int, fields: Dict[str, Any]) -> AttendanceRecord:
        """Insert one attendance record; records are never updated afterwards."""
        record = AttendanceRecord(event_id=event_id, **fields)
        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateAttendance()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Failed to append attendee to event %s: %s", event_id, e)
            raise PersistenceError("Failed to save attendance")
        return record

    def list_attendees(self, event_id: int, year_level: str = None,
                       block: str = None) -> List[AttendanceRecord]:
        try:
            query = AttendanceRecord.query.filter_by(event_id=event_id)
            if year_level:
                query = query.filter(AttendanceRecord.year_level == str(year_level))
            if block:
                query = query.filter(AttendanceRecord.block == str(block))
            return query.order_by(AttendanceRecord.id).all()
        except SQLAlchemyError as e:
            logger.error("Failed to read attendees of event %s: %s", event_id, e)
            raise PersistenceError("Failed to load attendance records")

    def subscribe(self, event_id: int, callback: Callable[[EventSnapshot], None]) -> Callable[[], None]:
        """Call ``callback`` with the new snapshot after every write to the event."""
        with self._lock:
            self._subscribers[event_id].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(event_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(event_id, None)

        return unsubscribe

    def subscriber_count(self, event_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(event_id, []))

    def _notify(self, snapshot: EventSnapshot) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(snapshot.id, []))
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Event %s subscriber failed", snapshot.id)
