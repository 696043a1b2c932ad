from typing import Optional

from pydantic import Field, field_validator

from pixmap_persistence.domain.base import DomainEntity, require_text
from pixmap_persistence.domain.values import Address, Coordinate


class Location(DomainEntity):
    """A saved photo location. Deletion is a soft delete through `is_deleted`."""

    title: str
    description: str = ""
    coordinate: Coordinate
    address: Address = Field(default_factory=Address)
    photo_path: Optional[str] = None
    is_deleted: bool = False

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        return require_text(value, "Title cannot be empty")

    @classmethod
    def create(
        cls,
        title: str,
        coordinate: Coordinate,
        description: str = "",
        address: Optional[Address] = None,
    ) -> "Location":
        return cls(
            title=title,
            description=description,
            coordinate=coordinate,
            address=address or Address(),
        )

    def update_details(self, title: str, description: str) -> "Location":
        return self._changed(title=title, description=description)

    def update_coordinate(self, coordinate: Coordinate) -> "Location":
        return self._changed(coordinate=coordinate)

    def attach_photo(self, photo_path: str) -> "Location":
        require_text(photo_path, "Photo path cannot be empty")
        return self._changed(photo_path=photo_path)

    def remove_photo(self) -> "Location":
        return self._changed(photo_path=None)

    def delete(self) -> "Location":
        return self._changed(is_deleted=True)

    def restore(self) -> "Location":
        return self._changed(is_deleted=False)
