# backend/campus_attendance/services/location_service.py
"""Device location reads."""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from campus_attendance.exceptions import InvalidCoordinates, LocationUnavailable
from campus_attendance.services.geofence_service import Position

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_ACCURACY = 50.0  # meters


@dataclass(frozen=True)
class LocationFix:
    """A device position with optional accuracy radius in meters."""
    position: Position
    accuracy: Optional[float] = None

    @property
    def latitude(self) -> float:
        return self.position.latitude

    @property
    def longitude(self) -> float:
        return self.position.longitude

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'LocationFix':
        """Build from ``{latitude, longitude, accuracy?}``; raises InvalidCoordinates."""
        if not isinstance(data, dict):
            raise InvalidCoordinates("Location must be an object with latitude and longitude")

        accuracy = data.get('accuracy')
        if accuracy is not None:
            if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)) or accuracy < 0:
                raise InvalidCoordinates("Accuracy must be a non-negative number of meters")
            accuracy = float(accuracy)

        return cls(Position(data.get('latitude'), data.get('longitude')), accuracy)

    def is_accurate(self, required_accuracy: float = DEFAULT_REQUIRED_ACCURACY) -> bool:
        return self.accuracy is not None and self.accuracy <= required_accuracy


class LocationService:
    """Wraps a geolocation provider; any provider failure becomes LocationUnavailable."""

    def __init__(self, provider: Callable[[], Dict[str, Any]]):
        self.provider = provider

    def get_current_location(self) -> LocationFix:
        try:
            reading = self.provider()
        except LocationUnavailable:
            raise
        except PermissionError:
            raise LocationUnavailable(
                "Location permission denied. Please enable location access in settings.")
        except TimeoutError:
            raise LocationUnavailable("Location request timed out. Please try again.")
        except Exception as e:
            logger.warning("Location provider failed: %s", e)
            raise LocationUnavailable()

        if reading is None:
            raise LocationUnavailable()
        try:
            return LocationFix.from_dict(reading)
        except InvalidCoordinates as e:
            logger.warning("Location provider returned an invalid fix: %s", e.message)
            raise LocationUnavailable("Location unavailable. The device reported an invalid position.")
