from typing import Optional

from pydantic import Field, field_validator

from pixmap_persistence.domain.base import DomainEntity, require_text

DEFAULT_LOCALE = "en-US"


class TipType(DomainEntity):
    """A category of photography tips (e.g. "Landscape")."""

    name: str
    i8n: str = DEFAULT_LOCALE

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return require_text(value, "Name cannot be empty")

    @classmethod
    def create(cls, name: str, i8n: Optional[str] = None) -> "TipType":
        return cls(name=name, i8n=i8n or DEFAULT_LOCALE)

    def set_localization(self, i8n: Optional[str]) -> "TipType":
        return self._changed(i8n=i8n or DEFAULT_LOCALE)


class Tip(DomainEntity):
    """A photography tip with optional suggested camera settings."""

    tip_type_id: int = Field(gt=0)
    title: str
    content: str = ""
    fstop: str = ""
    shutter_speed: str = ""
    iso: str = ""
    i8n: str = DEFAULT_LOCALE

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        return require_text(value, "Title cannot be empty")

    @classmethod
    def create(cls, tip_type_id: int, title: str, content: str = "") -> "Tip":
        return cls(tip_type_id=tip_type_id, title=title, content=content)

    def update_content(self, title: str, content: str) -> "Tip":
        return self._changed(title=title, content=content)

    def update_photography_settings(self, fstop: str, shutter_speed: str, iso: str) -> "Tip":
        return self._changed(fstop=fstop, shutter_speed=shutter_speed, iso=iso)

    def set_localization(self, i8n: Optional[str]) -> "Tip":
        return self._changed(i8n=i8n or DEFAULT_LOCALE)
