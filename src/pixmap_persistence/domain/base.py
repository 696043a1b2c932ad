from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pixmap_persistence.base.utils import normalize_datetime, utc_now

EntityT = TypeVar("EntityT", bound="DomainEntity")


def require_text(value: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValueError(message)
    return value


class DomainEntity(BaseModel):
    """
    Immutable entity with an integer identity.

    `id == 0` means "not persisted yet". Repositories never mutate an entity;
    they return the instance produced by `with_id`. Named mutators on the
    subclasses return updated copies with a refreshed `timestamp`.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return normalize_datetime(value)

    @property
    def is_persisted(self) -> bool:
        return self.id > 0

    def with_id(self: EntityT, id: int) -> EntityT:
        """Return a copy carrying the identity assigned by the database."""
        if id <= 0:
            raise ValueError("Id must be greater than zero")
        return self.model_copy(update={"id": id})

    def _changed(self: EntityT, **changes: Any) -> EntityT:
        # Rebuilt through the constructor so field validators run again.
        values = dict(self)
        values.update(changes)
        values["timestamp"] = utc_now()
        return type(self)(**values)

    def touch(self: EntityT) -> EntityT:
        return self._changed()
