"""Helper functions for the application."""
from datetime import datetime, timezone
from typing import Any, Union

from flask import jsonify


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, kind: str = None):
    """Return consistent error response."""
    body = {
        'error': True,
        'message': message,
        'status_code': status_code
    }
    if kind:
        body['kind'] = kind
    return jsonify(body), status_code


def attendance_error_response(error):
    """Render an AttendanceError in the standard envelope."""
    return error_response(error.message, error.status_code, kind=error.kind)


def utc_now() -> datetime:
    """Current UTC instant truncated to milliseconds (the wire precision)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime.

    Raises ValueError for anything that is not a datetime or a parseable string.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not an ISO-8601 datetime: {value!r}")

    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(text))


def to_iso(value: datetime) -> str:
    """Format an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return ensure_utc(value).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
