# backend/campus_attendance/utils/decorators.py
"""Role checks on externally issued JWTs."""
from functools import wraps
from flask import current_app
from flask_jwt_extended import get_jwt
from campus_attendance.utils.helpers import error_response


def _role() -> str:
    return get_jwt().get('role')


def admin_required(f):
    """Decorator to require one of the configured administrator roles."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _role() not in current_app.config.get('ADMIN_ROLES', ('admin',)):
            return error_response("Admin access required", 403)

        return f(*args, **kwargs)
    return decorated_function


def student_required(f):
    """Decorator to require student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _role() != 'student':
            return error_response("Student access required", 403)

        return f(*args, **kwargs)
    return decorated_function
