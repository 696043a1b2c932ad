from datetime import datetime
from typing import Optional

from pydantic import field_validator

from pixmap_persistence.base.utils import normalize_datetime
from pixmap_persistence.domain.base import DomainEntity, require_text


class Setting(DomainEntity):
    """A key/value application setting. `key` is the natural lookup key."""

    key: str
    value: str = ""
    description: str = ""

    @field_validator("key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        return require_text(value, "Key cannot be empty")

    @classmethod
    def create(cls, key: str, value: str, description: str = "") -> "Setting":
        return cls(key=key, value=value, description=description)

    def update_value(self, value: str) -> "Setting":
        return self._changed(value=value)

    def update_value_and_description(self, value: str, description: str) -> "Setting":
        return self._changed(value=value, description=description)

    @property
    def has_value(self) -> bool:
        return bool(self.value.strip())

    def as_bool(self) -> bool:
        return self.value.strip().lower() == "true"

    def as_int(self, default: int = 0) -> int:
        try:
            return int(self.value.strip())
        except ValueError:
            return default

    def as_float(self, default: float = 0.0) -> float:
        try:
            return float(self.value.strip())
        except ValueError:
            return default

    def as_datetime(self) -> Optional[datetime]:
        """Parse an ISO-8601 value; None when the value is not a timestamp."""
        try:
            return normalize_datetime(datetime.fromisoformat(self.value.strip()))
        except ValueError:
            return None

    def display_string(self) -> str:
        if self.description:
            return f"{self.key}: {self.value} ({self.description})"
        return f"{self.key}: {self.value}"
