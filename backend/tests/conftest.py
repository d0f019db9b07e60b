"""Shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token

from campus_attendance import create_app, db
from campus_attendance.models import Event

T0 = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)

MANILA = {'latitude': 14.5995, 'longitude': 120.9842, 'radius': 100}


class FixedClock:
    """Deterministic clock; advance it explicitly."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def clock(app):
    """Install a fixed clock on the app's token issuer."""
    fixed = FixedClock()
    app.extensions['attendance'].issuer.clock = fixed
    return fixed


@pytest.fixture
def controller(app, clock):
    return app.extensions['attendance']


@pytest.fixture
def make_event(app):
    def _make_event(title='Campus Orientation', geofence=MANILA, **fields):
        if geofence:
            fields.setdefault('latitude', geofence['latitude'])
            fields.setdefault('longitude', geofence['longitude'])
            fields.setdefault('radius_meters', geofence['radius'])
        event = Event(title=title, location='Gymnasium', date='2025-06-01', **fields)
        return event.save()
    return _make_event


@pytest.fixture
def admin_headers(app):
    token = create_access_token(identity='admin-1', additional_claims={'role': 'admin'})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def student_headers(app):
    token = create_access_token(identity='2021-00123', additional_claims={'role': 'student'})
    return {'Authorization': f'Bearer {token}'}
