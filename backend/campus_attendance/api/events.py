# backend/campus_attendance/api/events.py
"""Administrator endpoints for event attendance sessions."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from campus_attendance import limiter
from campus_attendance.exceptions import AttendanceError
from campus_attendance.services.geofence_service import Geofence
from campus_attendance.services.token_service import TokenService
from campus_attendance.utils.decorators import admin_required
from campus_attendance.utils.helpers import attendance_error_response, error_response, success_response

events_bp = Blueprint('events', __name__)


def get_controller():
    return current_app.extensions['attendance']


def _json_body():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _expected_version(data):
    version = data.get('version')
    if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
        raise ValueError("Version must be an integer")
    return version


def _token_response(token, message: str):
    controller = get_controller()
    qr_data = controller.issuer.encode(token)
    return success_response(
        data={
            'qr_data': qr_data,
            'qr_image': TokenService.render_qr(qr_data),
            'token': token.to_payload(),
            'session': controller.describe(int(token.event_id))
        },
        message=message
    )


@events_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Event attendance service is running')


@events_bp.route('/<int:event_id>/session', methods=['GET'])
@jwt_required()
@admin_required
def get_session(event_id):
    """Current Active/Expired state and time remaining."""
    try:
        return success_response(data=get_controller().describe(event_id))
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/token', methods=['POST'])
@jwt_required()
@admin_required
@limiter.limit("60 per minute")
def issue_token(event_id):
    """Open the QR view; with ``manual_expiration`` the override is persisted first."""
    try:
        data = _json_body()
        controller = get_controller()
        manual_expiration = data.get('manual_expiration')
        if manual_expiration is not None:
            token = controller.set_manual_expiration(
                event_id, manual_expiration, expected_version=_expected_version(data))
        else:
            token = controller.open_token(event_id)
        return _token_response(token, "QR code generated successfully")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/expiration', methods=['PUT'])
@jwt_required()
@admin_required
def set_expiration(event_id):
    """Set a manual expiration and reactivate attendance."""
    try:
        data = _json_body()
        token = get_controller().set_manual_expiration(
            event_id, data.get('expires_at'), expected_version=_expected_version(data))
        return _token_response(token, "Expiration date set successfully!")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/expiration', methods=['DELETE'])
@jwt_required()
@admin_required
def clear_expiration(event_id):
    """Remove the manual expiration; activity is unchanged."""
    try:
        data = _json_body()
        token = get_controller().clear_manual_expiration(
            event_id, expected_version=_expected_version(data))
        return _token_response(token, "Expiration date cleared!")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/stop', methods=['POST'])
@jwt_required()
@admin_required
def stop_attendance(event_id):
    """Expire the session immediately."""
    try:
        data = _json_body()
        controller = get_controller()
        controller.stop_attendance(event_id, expected_version=_expected_version(data))
        return success_response(data=controller.describe(event_id), message="Attendance stopped")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/geofence', methods=['PUT'])
@jwt_required()
@admin_required
def set_geofence(event_id):
    """Attach or replace the verification geofence; re-issues the token."""
    try:
        data = _json_body()
        geofence = Geofence.from_dict(data)
        token = get_controller().set_geofence(
            event_id, geofence, expected_version=_expected_version(data))
        return _token_response(token, "Location verification coordinates saved!")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/geofence', methods=['DELETE'])
@jwt_required()
@admin_required
def clear_geofence(event_id):
    """Remove location verification from the event."""
    try:
        data = _json_body()
        token = get_controller().set_geofence(
            event_id, None, expected_version=_expected_version(data))
        return _token_response(token, "Location verification removed")
    except ValueError as e:
        return error_response(str(e), 400)
    except AttendanceError as e:
        return attendance_error_response(e)


@events_bp.route('/<int:event_id>/attendees', methods=['GET'])
@jwt_required()
@admin_required
def list_attendees(event_id):
    """Attendance records, optionally filtered by year level and block."""
    try:
        store = get_controller().store
        store.get_event(event_id)
        records = store.list_attendees(
            event_id,
            year_level=request.args.get('year_level'),
            block=request.args.get('block')
        )
        return success_response(data={
            'event_id': event_id,
            'total': len(records),
            'attendees': [record.to_dict() for record in records]
        })
    except AttendanceError as e:
        return attendance_error_response(e)
