# backend/campus_attendance/services/geofence_service.py
"""Geofence verification service."""
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from campus_attendance.utils.validators import Validator

EARTH_RADIUS_METERS = 6371000.0


@dataclass(frozen=True)
class Position:
    """A validated latitude/longitude pair."""
    latitude: float
    longitude: float

    def __post_init__(self):
        object.__setattr__(self, 'latitude', Validator.validate_latitude(self.latitude))
        object.__setattr__(self, 'longitude', Validator.validate_longitude(self.longitude))


@dataclass(frozen=True)
class Geofence:
    """Circular verification region attached to an event."""
    latitude: float
    longitude: float
    radius_meters: float

    def __post_init__(self):
        object.__setattr__(self, 'latitude', Validator.validate_latitude(self.latitude))
        object.__setattr__(self, 'longitude', Validator.validate_longitude(self.longitude))
        object.__setattr__(self, 'radius_meters', Validator.validate_radius(self.radius_meters))

    @property
    def center(self) -> Position:
        return Position(self.latitude, self.longitude)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Geofence':
        """Build from the wire shape ``{latitude, longitude, radius}``."""
        radius = data.get('radius', data.get('radius_meters'))
        return cls(data.get('latitude'), data.get('longitude'), radius)

    def to_dict(self) -> Dict[str, float]:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'radius': self.radius_meters
        }


@dataclass(frozen=True)
class GeofenceResult:
    distance_meters: float
    is_within_radius: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'distance_meters': round(self.distance_meters, 2),
            'is_within_radius': self.is_within_radius
        }


class GeofenceService:
    """Service for great-circle distance and geofence checks."""

    @staticmethod
    def distance_meters(a: Position, b: Position) -> float:
        """Haversine distance between two positions in meters."""
        lat1_rad = math.radians(a.latitude)
        lat2_rad = math.radians(b.latitude)
        delta_lat = math.radians(b.latitude - a.latitude)
        delta_lon = math.radians(b.longitude - a.longitude)

        h = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        h = min(1.0, h)  # rounding near antipodes
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

        return EARTH_RADIUS_METERS * c

    @staticmethod
    def evaluate(position: Position, geofence: Geofence) -> GeofenceResult:
        """Check ``position`` against ``geofence``. The boundary counts as inside."""
        distance = GeofenceService.distance_meters(position, geofence.center)
        return GeofenceResult(
            distance_meters=distance,
            is_within_radius=distance <= geofence.radius_meters
        )

    @staticmethod
    def evaluate_optional(position: Position, geofence: Optional[Geofence]) -> Optional[GeofenceResult]:
        """Like evaluate, but ``None`` when the event requires no verification."""
        if geofence is None:
            return None
        return GeofenceService.evaluate(position, geofence)
