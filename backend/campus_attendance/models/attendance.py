# backend/campus_attendance/models/attendance.py
"""Attendance record model with location verification details."""
from campus_attendance import db
from campus_attendance.models.base import BaseModel
from campus_attendance.utils.helpers import to_iso, utc_now


class AttendanceRecord(BaseModel):
    """One scan. Append-only: never updated after insert."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('event_id', 'student_id', name='uq_attendance_event_student'),
    )

    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=False, index=True)

    # Student snapshot at scan time
    student_id = db.Column(db.String(50), nullable=False)
    student_name = db.Column(db.String(255), nullable=False)
    year_level = db.Column(db.String(20), nullable=True)
    block = db.Column(db.String(20), nullable=True)
    course = db.Column(db.String(100), nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)

    # Location where check-in happened (absent when the event has no geofence)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    is_within_radius = db.Column(db.Boolean, nullable=True)
    distance_meters = db.Column(db.Float, nullable=True)
    accuracy_meters = db.Column(db.Float, nullable=True)

    def update(self, **kwargs):
        raise TypeError("Attendance records are immutable")

    def to_dict(self):
        """Convert to the attendee-list shape."""
        data = {
            'studentID': self.student_id,
            'studentName': self.student_name,
            'yearLevel': self.year_level,
            'block': self.block,
            'course': self.course,
            'gender': self.gender,
            'timestamp': to_iso(self.timestamp)
        }
        if self.latitude is not None:
            data['location'] = {
                'latitude': self.latitude,
                'longitude': self.longitude,
                'isWithinRadius': self.is_within_radius,
                'distanceMeters': self.distance_meters,
                'accuracyMeters': self.accuracy_meters
            }
        return data

    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.event_id}>'
