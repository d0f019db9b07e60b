"""Attendance error taxonomy."""


class AttendanceError(Exception):
    """Base error carrying a machine-readable kind and an HTTP status."""

    kind = 'AttendanceError'
    status_code = 400
    default_message = 'Attendance operation failed'

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidExpiration(AttendanceError):
    """Manual expiration missing, unparseable or not strictly in the future."""
    kind = 'InvalidExpiration'
    default_message = 'Expiration date must be a valid future date and time'


class InvalidCoordinates(AttendanceError):
    """Latitude, longitude or radius outside the accepted range."""
    kind = 'InvalidCoordinates'
    default_message = 'Invalid coordinates'


class InvalidToken(AttendanceError):
    kind = 'InvalidToken'
    default_message = 'This QR code cannot be read. Please ask for a new code.'


class SessionExpired(AttendanceError):
    kind = 'SessionExpired'
    status_code = 410
    default_message = 'Attendance for this event is closed'


class OutsideGeofence(AttendanceError):
    kind = 'OutsideGeofence'
    status_code = 403
    default_message = 'You are outside the event verification radius'


class DuplicateAttendance(AttendanceError):
    kind = 'DuplicateAttendance'
    status_code = 409
    default_message = 'Attendance already recorded for this event'


class EventNotFound(AttendanceError):
    kind = 'EventNotFound'
    status_code = 404
    default_message = 'Event not found'


class PersistenceError(AttendanceError):
    """Store read or write failed; the displayed state may be stale."""
    kind = 'PersistenceError'
    status_code = 503
    default_message = 'Failed to reach the event store'


class ConcurrentModification(PersistenceError):
    """Event changed since it was read (version mismatch)."""
    kind = 'ConcurrentModification'
    status_code = 409
    default_message = 'Event was modified by someone else. Reload and try again.'


class LocationUnavailable(AttendanceError):
    """Location permission denied or no device fix."""
    kind = 'LocationUnavailable'
    status_code = 422
    default_message = 'Unable to access your location. Please check your location settings and try again.'
