from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CACHE_TTL = timedelta(minutes=15)
DEFAULT_BATCH_SIZE = 100
DEFAULT_BUSY_TIMEOUT_MS = 3000
DEFAULT_CACHE_SIZE_PAGES = 10000


class PersistenceSettings(BaseModel):
    """
    Constructor-supplied configuration for the persistence core.

    Nothing here is read from the environment; the host application builds
    an instance and hands it to `DatabaseContext.open` / `UnitOfWork.open`.
    """

    model_config = ConfigDict(frozen=True)

    database_path: str = "locations.db"
    cache_ttl: timedelta = DEFAULT_CACHE_TTL
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    busy_timeout_ms: int = Field(default=DEFAULT_BUSY_TIMEOUT_MS, ge=0)
    cache_size_pages: int = DEFAULT_CACHE_SIZE_PAGES

    @field_validator("cache_ttl")
    @classmethod
    def _positive_ttl(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("cache_ttl must be positive")
        return value

    @field_validator("database_path")
    @classmethod
    def _non_blank_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("database_path cannot be blank")
        return value
