# backend/campus_attendance/models/event.py
"""Event model with attendance session fields."""
from campus_attendance import db
from campus_attendance.models.base import BaseModel


class Event(BaseModel):
    """Campus event. Attendance state lives in ``is_active`` and ``qr_expiration``."""

    __tablename__ = 'events'

    title = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)  # venue name, e.g. "Gymnasium"
    date = db.Column(db.String(64), nullable=True)

    # Geofence for location verification; all three set or none
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    radius_meters = db.Column(db.Float, nullable=True)

    # Attendance session
    qr_expiration = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=True)  # NULL reads as active
    version = db.Column(db.Integer, nullable=False, default=1)

    attendees = db.relationship(
        'AttendanceRecord',
        backref='event',
        lazy='dynamic',
        order_by='AttendanceRecord.id'
    )

    def __repr__(self):
        return f'<Event {self.title}>'
