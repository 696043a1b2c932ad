import logging
import time
from datetime import timedelta
from logging import LoggerAdapter
from typing import Awaitable, Callable, Optional, TypeVar, Union

from pixmap_persistence.base.exceptions import DatabaseError, InvalidStateError
from pixmap_persistence.config import DEFAULT_CACHE_TTL, PersistenceSettings
from pixmap_persistence.repositories.camera_body_repository import CameraBodyRepository
from pixmap_persistence.repositories.location_repository import LocationRepository
from pixmap_persistence.repositories.setting_repository import SettingRepository
from pixmap_persistence.repositories.subscription_repository import SubscriptionRepository
from pixmap_persistence.repositories.tip_repository import TipRepository
from pixmap_persistence.repositories.tip_type_repository import TipTypeRepository
from pixmap_persistence.repositories.weather_repository import WeatherRepository
from pixmap_persistence.sqlite.context import DatabaseContext

T = TypeVar("T")


class UnitOfWork:
    """
    Groups the entity repositories behind one database context.

    Repository writes go straight through the context, so there is no change
    buffer. `save_changes` only reports, and atomicity across repositories
    requires an explicit `begin_transaction`/`commit` pair or
    `execute_in_transaction`.

    Used as an async context manager, the unit of work rolls back a
    transaction it opened and never committed, then marks itself disposed.
    It does not commit on exit.
    """

    def __init__(
        self,
        context: DatabaseContext,
        *,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        self._context = context
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.locations = LocationRepository(context, logger=logger)
        self.settings = SettingRepository(context, cache_ttl=cache_ttl, clock=clock, logger=logger)
        self.tip_types = TipTypeRepository(context, logger=logger)
        self.tips = TipRepository(context, logger=logger)
        self.weather = WeatherRepository(context, logger=logger)
        self.subscriptions = SubscriptionRepository(context, logger=logger)
        self.camera_bodies = CameraBodyRepository(context, logger=logger)

        self._owns_open_transaction = False
        self._commits_since_save = 0
        self._disposed = False

    @classmethod
    async def open(
        cls,
        settings: Optional[PersistenceSettings] = None,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ) -> "UnitOfWork":
        """Open and initialize a database from `settings` and wire every repository to it."""
        settings = settings or PersistenceSettings()
        context = await DatabaseContext.open(settings, logger=logger)
        return cls(context, cache_ttl=settings.cache_ttl, logger=logger)

    @property
    def context(self) -> DatabaseContext:
        return self._context

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _check_usable(self) -> None:
        if self._disposed:
            raise InvalidStateError("This unit of work has already been disposed.")

    # --- Transaction Delegation ---

    async def begin_transaction(self) -> None:
        self._check_usable()
        await self._context.begin_transaction()
        self._owns_open_transaction = True

    async def commit(self) -> None:
        self._check_usable()
        try:
            await self._context.commit_transaction()
            self._commits_since_save += 1
        finally:
            self._owns_open_transaction = False

    async def rollback(self) -> None:
        self._check_usable()
        try:
            await self._context.rollback_transaction()
        finally:
            self._owns_open_transaction = False

    async def execute_in_transaction(self, operation: Callable[[], Awaitable[T]]) -> T:
        self._check_usable()
        return await self._context.execute_in_transaction(operation)

    async def save_changes(self) -> int:
        """
        Confirm the work done so far.

        Writes are already applied when the repository call returns, so this
        never writes anything. Returns the number of explicit commits made
        through this unit of work since the previous call.
        """
        self._check_usable()
        if self._owns_open_transaction:
            self._logger.warning("save_changes called while a transaction is still open; it is not committed.")
        saved, self._commits_since_save = self._commits_since_save, 0
        self._logger.debug(f"save_changes: {saved} commits since last call")
        return saved

    # --- Lifetime ---

    async def dispose(self) -> None:
        if self._disposed:
            return
        if self._owns_open_transaction and self._context.owns_transaction:
            self._logger.error("Unit of work disposed with an open transaction; rolling back.")
            try:
                await self._context.rollback_transaction()
            except DatabaseError as e:
                self._logger.warning(f"Rollback during dispose failed: {e}")
        self._owns_open_transaction = False
        self._disposed = True

    async def close(self) -> None:
        """Dispose the unit of work and close the underlying connection."""
        await self.dispose()
        await self._context.close()

    async def __aenter__(self) -> "UnitOfWork":
        self._check_usable()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()
