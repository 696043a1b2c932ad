import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EARTH_RADIUS_KM = 6371.0

_CARDINAL_DIRECTIONS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)


class Coordinate(BaseModel):
    """A WGS84 latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    @field_validator("latitude")
    @classmethod
    def _check_latitude(cls, value: float) -> float:
        if not -90.0 <= value <= 90.0:
            raise ValueError(f"Latitude must be between -90 and 90 degrees, got {value}")
        return value

    @field_validator("longitude")
    @classmethod
    def _check_longitude(cls, value: float) -> float:
        if not -180.0 <= value <= 180.0:
            raise ValueError(f"Longitude must be between -180 and 180 degrees, got {value}")
        return value

    def distance_to(self, other: "Coordinate") -> float:
        """Great-circle distance in kilometers (haversine)."""
        return haversine_km(self.latitude, self.longitude, other.latitude, other.longitude)

    def is_within_distance(self, other: "Coordinate", distance_km: float) -> bool:
        return self.distance_to(other) <= distance_km

    def __str__(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str = ""
    state: str = ""

    def __str__(self) -> str:
        return ", ".join(part for part in (self.city, self.state) if part)


class WindInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    speed: float = Field(default=0.0, ge=0)
    direction: float = Field(default=0.0, ge=0, le=360)
    gust: Optional[float] = Field(default=None, ge=0)

    @property
    def cardinal_direction(self) -> str:
        index = int(round(self.direction / 22.5)) % 16
        return _CARDINAL_DIRECTIONS[index]
