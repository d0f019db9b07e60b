"""Models package with all models."""
from .base import BaseModel
from .event import Event
from .attendance import AttendanceRecord

__all__ = ['BaseModel', 'Event', 'AttendanceRecord']
