import math
from enum import Enum

from pydantic import Field, field_validator

from pixmap_persistence.domain.base import DomainEntity, require_text


class MountType(str, Enum):
    CANON_EF = "CanonEF"
    CANON_EFM = "CanonEFM"
    CANON_RF = "CanonRF"
    NIKON_F = "NikonF"
    NIKON_Z = "NikonZ"
    SONY_E = "SonyE"
    SONY_FE = "SonyFE"
    PENTAX_K = "PentaxK"
    MICRO_FOUR_THIRDS = "MicroFourThirds"
    FUJIFILM_X = "FujifilmX"
    OTHER = "Other"


# Approximate crop factors keyed by lower-cased sensor type.
CROP_FACTORS = {
    "full frame": 1.0,
    "crop": 1.5,
    "aps-c": 1.5,
    "micro four thirds": 2.0,
    "medium format": 0.79,
}


class CameraBody(DomainEntity):
    """A camera body with its sensor dimensions in millimeters. `name` is unique."""

    name: str
    sensor_type: str
    sensor_width: float = Field(gt=0)
    sensor_height: float = Field(gt=0)
    mount_type: MountType = MountType.OTHER
    is_user_created: bool = False
    manufacturer: str = ""
    model: str = ""
    crop_factor: float = Field(default=1.0, gt=0)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return require_text(value, "Camera name cannot be blank")

    @classmethod
    def create(
        cls,
        name: str,
        sensor_type: str,
        sensor_width: float,
        sensor_height: float,
        mount_type: MountType,
        is_user_created: bool = False,
    ) -> "CameraBody":
        """Build a camera body, deriving the crop factor from `sensor_type`."""
        return cls(
            name=name,
            sensor_type=sensor_type,
            sensor_width=sensor_width,
            sensor_height=sensor_height,
            mount_type=mount_type,
            is_user_created=is_user_created,
            crop_factor=CROP_FACTORS.get(sensor_type.lower(), 1.0),
        )

    @property
    def diagonal_mm(self) -> float:
        return math.hypot(self.sensor_width, self.sensor_height)

    @property
    def aspect_ratio(self) -> float:
        return self.sensor_width / self.sensor_height

    @property
    def is_full_frame(self) -> bool:
        return self.sensor_type.lower() == "full frame"

    @property
    def display_name(self) -> str:
        if self.manufacturer.strip() and self.model.strip():
            return f"{self.manufacturer} {self.model}"
        return self.name

    def rename(self, name: str) -> "CameraBody":
        return self._changed(name=name)
