import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from pixmap_persistence.base.exceptions import RepositoryException
from pixmap_persistence.base.interfaces import Repository
from pixmap_persistence.base.result import Result

T = TypeVar("T")
R = TypeVar("R")

base_logger = logging.getLogger("pixmap_persistence.repositories.adapters")


class RepositoryAdapter(Generic[T]):
    """
    Result-returning facade over a repository for use-case handlers.

    Classified repository failures become failed Results carrying the error
    code, the operation name and the message. Lookups that find nothing
    are successes with a None value. Programming errors (InvalidStateError)
    and cancellation still propagate.
    """

    def __init__(self, repository: Repository[T]):
        self._repository = repository
        self._logger = logging.getLogger(
            f"{base_logger.name}.{self.__class__.__name__}[{repository.entity_name}]"
        )

    @property
    def repository(self) -> Repository[T]:
        return self._repository

    async def _capture(self, call: Callable[[], Awaitable[R]]) -> Result[R]:
        try:
            return Result.success(await call())
        except RepositoryException as e:
            self._logger.debug(f"Returning failure for {e.operation}: {e}")
            return Result.from_exception(e)

    async def get_by_id(self, id: int) -> Result[Optional[T]]:
        return await self._capture(lambda: self._repository.get_by_id(id))

    async def get_all(self) -> Result[List[T]]:
        return await self._capture(self._repository.get_all)

    async def create(self, entity: T) -> Result[T]:
        return await self._capture(lambda: self._repository.create(entity))

    async def update(self, entity: T) -> Result[T]:
        return await self._capture(lambda: self._repository.update(entity))

    async def delete(self, identifier: Any) -> Result[bool]:
        return await self._capture(lambda: self._repository.delete(identifier))

    async def call(self, method: str, *args: Any, **kwargs: Any) -> Result[Any]:
        """Invoke an entity-specific repository coroutine (e.g. "get_by_key") as a Result."""
        func = getattr(self._repository, method, None)
        if func is None or method.startswith("_"):
            raise AttributeError(
                f"{type(self._repository).__name__} has no public method '{method}'"
            )
        return await self._capture(lambda: func(*args, **kwargs))
