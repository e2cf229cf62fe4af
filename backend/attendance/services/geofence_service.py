"""Geofence verification service."""
import math
from dataclasses import dataclass
from typing import Optional

from attendance.services.checkin_types import LocationFix, OutcomeStatus
from attendance.utils.errors import GeofenceConfigurationError

EARTH_RADIUS_METERS = 6371000

# Hard bounds for any configured geofence radius
MIN_RADIUS_METERS = 1
MAX_RADIUS_METERS = 200


@dataclass
class GeofenceResult:
    """Outcome of a geofence check. status is None on pass."""
    status: Optional[OutcomeStatus]
    message: str
    distance_m: Optional[float] = None

    @property
    def passed(self) -> bool:
        return self.status is None


def _usable(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _valid_coordinate(latitude, longitude) -> bool:
    return (_usable(latitude) and _usable(longitude)
            and -90 <= latitude <= 90 and -180 <= longitude <= 180)


class GeofenceValidator:
    """Service for GPS and location verification."""

    def __init__(
        self,
        max_accuracy_m: float = 25,
        min_radius_m: float = MIN_RADIUS_METERS,
        max_radius_m: float = MAX_RADIUS_METERS
    ):
        if not (MIN_RADIUS_METERS <= min_radius_m <= max_radius_m <= MAX_RADIUS_METERS):
            raise ValueError(
                f"Radius bounds [{min_radius_m}, {max_radius_m}] m must lie within "
                f"[{MIN_RADIUS_METERS}, {MAX_RADIUS_METERS}] m"
            )
        self.max_accuracy_m = max_accuracy_m
        self.min_radius_m = min_radius_m
        self.max_radius_m = max_radius_m

    @classmethod
    def from_config(cls, config) -> 'GeofenceValidator':
        return cls(
            max_accuracy_m=config.get('GEOFENCE_MAX_ACCURACY_METERS', 25),
            min_radius_m=config.get('GEOFENCE_MIN_RADIUS_METERS', MIN_RADIUS_METERS),
            max_radius_m=config.get('GEOFENCE_MAX_RADIUS_METERS', MAX_RADIUS_METERS)
        )

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two GPS points in meters."""
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        a = min(1.0, max(0.0, a))
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_METERS * c

    def check_radius(self, radius_m) -> None:
        """Raise if a configured radius is outside the allowed bounds. Never clamps."""
        if not _usable(radius_m) or not (self.min_radius_m <= radius_m <= self.max_radius_m):
            raise GeofenceConfigurationError(
                f"Geofence radius {radius_m} m is outside "
                f"[{self.min_radius_m}, {self.max_radius_m}] m"
            )

    def verify(self, session, location: Optional[LocationFix]) -> GeofenceResult:
        """Check a reported position against the session geofence.

        Order: missing data, accuracy, mock flag, then distance.
        Raises GeofenceConfigurationError for an unusable radius.
        """
        self.check_radius(session.radius_m)

        if location is None or location.timed_out:
            return GeofenceResult(OutcomeStatus.INVALID_LOCATION,
                                  "Location could not be acquired from the device")

        if not (_valid_coordinate(location.latitude, location.longitude)
                and _valid_coordinate(session.latitude, session.longitude)):
            return GeofenceResult(OutcomeStatus.INVALID_LOCATION, "Location coordinates are missing")

        if not _usable(location.accuracy_m) or location.accuracy_m > self.max_accuracy_m:
            return GeofenceResult(
                OutcomeStatus.INVALID_LOCATION,
                f"Location accuracy is too low (needs {self.max_accuracy_m} m or better)"
            )

        if location.is_mock:
            return GeofenceResult(OutcomeStatus.MOCK_LOCATION_DETECTED,
                                  "Mock location detected on the device")

        distance = self.calculate_distance(
            location.latitude, location.longitude,
            session.latitude, session.longitude
        )

        if distance <= session.radius_m:
            return GeofenceResult(None, "Inside the session geofence", distance)

        return GeofenceResult(
            OutcomeStatus.OUTSIDE_RADIUS,
            f"You are {distance:.1f} m from the session, outside the {session.radius_m:.0f} m radius",
            distance
        )
