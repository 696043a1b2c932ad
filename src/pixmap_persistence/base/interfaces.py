from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Type, TypeVar

# Type variable for any entity
T = TypeVar("T")


class Repository(Generic[T], ABC):
    """
    Base repository interface shared by every entity repository.

    Lookups that find nothing return None (or an empty list) instead of
    raising. Writes raise a RepositoryException subclass carrying an
    ErrorCode and the name of the failed operation.
    """

    @property
    @abstractmethod
    def entity_type(self) -> Type[T]:
        """The entity type this repository manages."""
        pass

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    # --- Core CRUD Methods ---

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[T]:
        """
        Retrieve an entity by its integer identity.

        Args:
            id: The database identity of the entity.

        Returns:
            The entity, or None if no row has that id.
        """
        pass

    @abstractmethod
    async def get_all(self) -> List[T]:
        """Retrieve every stored entity in the repository's natural order."""
        pass

    @abstractmethod
    async def create(self, entity: T) -> T:
        """
        Persist a new entity.

        Args:
            entity: An entity that has not been persisted yet (id == 0).

        Returns:
            A fresh instance carrying the identity assigned by the database.

        Raises:
            KeyAlreadyExistsException: If a natural key of the entity is taken.
            RepositoryException: For any other classified failure.
        """
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """
        Persist changes to an existing entity.

        Raises:
            ObjectNotFoundException: If no row matched; updates are never silent no-ops.
        """
        pass

    @abstractmethod
    async def delete(self, identifier: Any) -> bool:
        """
        Delete an entity by its identifier.

        Returns:
            True if a row was affected, False if nothing matched.
        """
        pass

    # --- Helper Methods ---

    def validate_entity(self, entity: T) -> None:
        """
        Basic validation that an entity instance is of the expected type.

        Raises:
            ValueError: If the entity is not an instance of `self.entity_type`.
        """
        if not isinstance(entity, self.entity_type):
            raise ValueError(
                f"Entity must be of type {self.entity_type.__name__}, "
                f"but received {type(entity).__name__}"
            )
