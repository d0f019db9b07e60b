# File: backend/campus_attendance/api/attendance.py
"""Student attendance endpoints with geofence verification."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from campus_attendance import limiter
from campus_attendance.exceptions import AttendanceError
from campus_attendance.services.location_service import LocationFix
from campus_attendance.utils.decorators import student_required
from campus_attendance.utils.helpers import attendance_error_response, error_response, success_response
from campus_attendance.utils.validators import Validator

attendance_bp = Blueprint('attendance', __name__)


def get_controller():
    return current_app.extensions['attendance']


def _location_from(data):
    """LocationFix from the request, ``None`` when the device reported none."""
    if data.get('location') is None:
        return None
    return LocationFix.from_dict(data['location'])


@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')


@attendance_bp.route('/verify-location', methods=['POST'])
@jwt_required()
@student_required
def verify_location():
    """Pre-check a device position against an event geofence."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400)

    validation = Validator.validate_required_fields(data, ['event_id', 'location'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    try:
        fix = _location_from(data)
        result = get_controller().verify_position(int(data['event_id']), fix)
    except (TypeError, ValueError):
        return error_response("Event ID must be an integer", 400)
    except AttendanceError as e:
        return attendance_error_response(e)

    if result is None:
        return success_response(
            data={'verification_required': False},
            message="This event does not require location verification"
        )
    return success_response(
        data={'verification_required': True, **result.to_dict()},
        message="Location verified" if result.is_within_radius else "You are outside the event radius"
    )


@attendance_bp.route('/checkin', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("30 per minute")
def check_in():
    """Submit a scanned attendance QR code."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Request body must be a JSON object", 400)

    validation = Validator.validate_required_fields(data, ['qr_data', 'studentName'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    student = {
        'student_id': get_jwt_identity(),
        'student_name': data['studentName'],
        'year_level': data.get('yearLevel'),
        'block': data.get('block'),
        'course': data.get('course'),
        'gender': data.get('gender')
    }

    try:
        location_error = data.get('location_error')
        record = get_controller().record_attendance(
            data['qr_data'], student, _location_from(data),
            location_error=str(location_error) if location_error else None
        )
    except AttendanceError as e:
        current_app.logger.info("Check-in rejected for %s: %s", student['student_id'], e.kind)
        return attendance_error_response(e)

    return success_response(
        data=record.to_dict(),
        message="Attendance recorded successfully",
        status_code=201
    )
