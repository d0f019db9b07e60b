"""Validation utilities for the application."""
import math
from numbers import Real
from typing import Any, Dict, List

from campus_attendance.exceptions import InvalidCoordinates


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_coordinate(value: Any, name: str, limit: float) -> float:
        """Return ``value`` as float or raise InvalidCoordinates. Never clamps."""
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidCoordinates(f"{name.title()} must be a number")

        number = float(value)
        if not math.isfinite(number):
            raise InvalidCoordinates(f"{name.title()} must be a finite number")
        if number < -limit or number > limit:
            raise InvalidCoordinates(f"{name.title()} must be between -{limit:g} and {limit:g}")
        return number

    @staticmethod
    def validate_latitude(value: Any) -> float:
        return Validator.validate_coordinate(value, 'latitude', 90.0)

    @staticmethod
    def validate_longitude(value: Any) -> float:
        return Validator.validate_coordinate(value, 'longitude', 180.0)

    @staticmethod
    def validate_radius(value: Any, max_radius: float = None) -> float:
        """Radius in meters: finite, strictly positive, optionally bounded."""
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidCoordinates("Radius must be a number")

        radius = float(value)
        if not math.isfinite(radius) or radius <= 0:
            raise InvalidCoordinates("Radius must be a positive number of meters")
        if max_radius is not None and radius > max_radius:
            raise InvalidCoordinates(f"Radius must not exceed {max_radius:g} meters")
        return radius

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"Missing required field: {field}")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }
