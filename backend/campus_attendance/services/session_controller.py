# backend/campus_attendance/services/session_controller.py
"""Attendance session state machine and token re-issuance."""
import logging
import threading
from enum import Enum
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from campus_attendance.exceptions import (
    InvalidToken, LocationUnavailable, OutsideGeofence,
    DuplicateAttendance, SessionExpired
)
from campus_attendance.models import AttendanceRecord
from campus_attendance.services.countdown import format_remaining
from campus_attendance.services.event_store import EventSnapshot, EventStore
from campus_attendance.services.geofence_service import Geofence, GeofenceResult, GeofenceService
from campus_attendance.services.location_service import DEFAULT_REQUIRED_ACCURACY, LocationFix
from campus_attendance.services.token_service import AttendanceToken, TokenCache, TokenService
from campus_attendance.utils.helpers import to_iso
from campus_attendance.utils.validators import Validator

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Whether the displayed token may still be used to record attendance."""
    ACTIVE = 'active'
    EXPIRED = 'expired'


def compute_state(event: EventSnapshot, now: datetime) -> SessionState:
    if not event.is_active:
        return SessionState.EXPIRED
    if event.qr_expiration is not None and now >= event.qr_expiration:
        return SessionState.EXPIRED
    return SessionState.ACTIVE


class AttendanceSessionController:
    """
    Orchestrates token issuance and Active/Expired transitions for events.

    Holds no durable state: every observation re-reads the event from the
    store. Destructive transitions are applied locally only after the store
    acknowledges the write, so a failed call leaves the previously displayed
    token in place.
    """

    def __init__(
        self,
        store: EventStore,
        issuer: TokenService,
        max_radius_meters: float = None,
        reject_outside_radius: bool = True,
        accuracy_warn_meters: float = DEFAULT_REQUIRED_ACCURACY
    ):
        self.store = store
        self.issuer = issuer
        self.max_radius_meters = max_radius_meters
        self.reject_outside_radius = reject_outside_radius
        self.accuracy_warn_meters = accuracy_warn_meters
        self._tokens = TokenCache(issuer)
        self._lock = threading.RLock()

    @property
    def clock(self):
        return self.issuer.clock

    # ------------------------------------------------------------------ reads

    def get_state(self, event_id: int) -> SessionState:
        return compute_state(self.store.get_event(event_id), self.clock())

    def open_token(self, event_id: int) -> AttendanceToken:
        """Token for the QR view; stable until the event's token inputs change."""
        event = self.store.get_event(event_id)
        return self.token_for(event)

    def token_for(self, event: EventSnapshot) -> AttendanceToken:
        return self._tokens.get_or_issue(event)

    def describe(self, event_id: int) -> Dict[str, Any]:
        event = self.store.get_event(event_id)
        return self.describe_snapshot(event)

    def describe_snapshot(self, event: EventSnapshot) -> Dict[str, Any]:
        now = self.clock()
        token = self.token_for(event)
        state = compute_state(event, now)

        if state is SessionState.EXPIRED:
            remaining = timedelta(0)
            label = 'Expired'
        else:
            remaining = token.remaining(now)
            label = format_remaining(token.expires_at, now)

        return {
            'event': event.to_dict(),
            'state': state.value,
            'expires_at': to_iso(token.expires_at),
            'uses_manual_expiration': token.uses_manual_expiration,
            'remaining_seconds': int(remaining.total_seconds()),
            'time_remaining': label,
            'requires_location': event.geofence is not None
        }

    # ------------------------------------------------------------ transitions

    def stop_attendance(self, event_id: int, expected_version: int = None) -> EventSnapshot:
        """Active -> Expired immediately; only a new manual expiration reopens it."""
        with self._lock:
            event = self.store.get_event(event_id)
            now = self.clock()
            updated = self.store.update_event(
                event_id,
                {'is_active': False, 'qr_expiration': now},
                expected_version=self._version(event, expected_version)
            )
            self._tokens.put(updated, self.issuer.issue_token(updated))

        logger.info("Attendance stopped for event %s", event_id)
        return updated

    def set_manual_expiration(self, event_id: int, new_expiration: Union[str, datetime],
                              expected_version: int = None) -> AttendanceToken:
        """Validate, persist ``is_active=True`` with the new expiration, then re-issue."""
        with self._lock:
            event = self.store.get_event(event_id)
            expires_at = self.issuer.validate_expiration(new_expiration, self.clock())
            updated = self.store.update_event(
                event_id,
                {'is_active': True, 'qr_expiration': expires_at},
                expected_version=self._version(event, expected_version)
            )
            token = self.issuer.issue_token(updated)
            self._tokens.put(updated, token)

        logger.info("Manual expiration for event %s set to %s", event_id, to_iso(token.expires_at))
        return token

    def clear_manual_expiration(self, event_id: int, expected_version: int = None) -> AttendanceToken:
        """Drop the override. ``is_active`` is left alone, so a stopped event stays expired."""
        with self._lock:
            event = self.store.get_event(event_id)
            updated = self.store.update_event(
                event_id,
                {'qr_expiration': None},
                expected_version=self._version(event, expected_version)
            )
            token = self.issuer.issue_token(updated)
            self._tokens.put(updated, token)

        logger.info("Manual expiration cleared for event %s", event_id)
        return token

    def set_geofence(self, event_id: int, geofence: Optional[Geofence],
                     expected_version: int = None) -> AttendanceToken:
        """Attach, replace or remove (``None``) the event geofence and re-issue."""
        if geofence is not None:
            Validator.validate_radius(geofence.radius_meters, self.max_radius_meters)

        changes = {
            'latitude': geofence.latitude if geofence else None,
            'longitude': geofence.longitude if geofence else None,
            'radius_meters': geofence.radius_meters if geofence else None
        }
        with self._lock:
            event = self.store.get_event(event_id)
            updated = self.store.update_event(
                event_id, changes,
                expected_version=self._version(event, expected_version)
            )
            token = self.issuer.issue_token(updated)
            self._tokens.put(updated, token)

        logger.info("Geofence for event %s set to %s", event_id, geofence)
        return token

    # ------------------------------------------------------------ verification

    def verify_position(self, event_id: int, fix: LocationFix) -> Optional[GeofenceResult]:
        """Geofence verdict, or ``None`` when the event does not require one."""
        event = self.store.get_event(event_id)
        return GeofenceService.evaluate_optional(fix.position, event.geofence)

    def record_attendance(self, qr_data: str, student: Dict[str, Any],
                          location: Optional[LocationFix] = None,
                          location_error: str = None) -> AttendanceRecord:
        """
        Verify a scanned payload and append the attendance record.

        ``student`` carries ``student_id``, ``student_name``, ``year_level``,
        ``block``, ``course`` and ``gender``. ``location_error`` is the device's
        reason for not having a fix; it only matters when the event has a geofence.
        """
        token = self.issuer.decode(qr_data)
        try:
            event_id = int(token.event_id)
        except ValueError:
            raise InvalidToken("Unknown event in QR code")

        event = self.store.get_event(event_id)
        now = self.clock()

        if compute_state(event, now) is SessionState.EXPIRED or token.is_expired(now):
            raise SessionExpired("This QR code has expired")
        if token.event_version != event.version or token.geofence != event.geofence:
            raise InvalidToken("This QR code has been replaced. Please scan the current code.")

        student_id = str(student['student_id'])
        if self.store.has_attendee(event_id, student_id):
            raise DuplicateAttendance()

        fields = {
            'student_id': student_id,
            'student_name': student['student_name'],
            'year_level': student.get('year_level'),
            'block': student.get('block'),
            'course': student.get('course'),
            'gender': student.get('gender'),
            'timestamp': now
        }

        if event.geofence is not None:
            if location is None:
                raise LocationUnavailable(location_error or "Location verification is required for this event")

            result = GeofenceService.evaluate(location.position, event.geofence)
            if location.accuracy is not None and not location.is_accurate(self.accuracy_warn_meters):
                logger.warning("Low accuracy fix (%s m) from student %s for event %s",
                               location.accuracy, student_id, event_id)
            if not result.is_within_radius and self.reject_outside_radius:
                logger.info("Student %s rejected for event %s: %.1fm from venue",
                            student_id, event_id, result.distance_meters)
                raise OutsideGeofence(
                    f"You are {result.distance_meters:.0f}m from the venue. "
                    f"You must be within {event.geofence.radius_meters:.0f}m."
                )

            fields.update({
                'latitude': location.latitude,
                'longitude': location.longitude,
                'is_within_radius': result.is_within_radius,
                'distance_meters': result.distance_meters,
                'accuracy_meters': location.accuracy
            })

        record = self.store.append_attendee(event_id, fields)
        logger.info("Attendance recorded for student %s at event %s", student_id, event_id)
        return record

    @staticmethod
    def _version(event: EventSnapshot, expected_version: Optional[int]) -> int:
        return event.version if expected_version is None else expected_version
