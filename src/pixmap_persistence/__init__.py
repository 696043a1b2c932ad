# src/pixmap_persistence/__init__.py

"""
PixMap Persistence Library Initialization.

This package provides the asynchronous persistence core of the PixMap photo
location app: a transactional SQLite database context, a unit of work,
per-entity repositories and the TTL cache used by the settings repository.

It initializes a logger with a NullHandler and makes the core components
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False  # Prevent log messages from propagating to the root logger

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import Repository
from .base.exceptions import (
    DatabaseError,
    ErrorCode,
    InfrastructureException,
    InvalidStateError,
    KeyAlreadyExistsException,
    ObjectNotFoundException,
    ObjectValidationException,
    RepositoryException,
)
from .base.result import Result
from .base.cache import TTLCache
from .config import PersistenceSettings

# --------------------------------------------------------------------------
# Database Context and Unit of Work Exports
# --------------------------------------------------------------------------
from .sqlite.context import DatabaseContext
from .unit_of_work import UnitOfWork

# --------------------------------------------------------------------------
# Domain Exports
# --------------------------------------------------------------------------
from .domain.values import Address, Coordinate, WindInfo
from .domain.location import Location
from .domain.setting import Setting
from .domain.tip import Tip, TipType
from .domain.weather import HourlyForecast, Weather, WeatherForecast
from .domain.subscription import Subscription, SubscriptionStatus
from .domain.camera import CameraBody, MountType
from .domain.paging import PagedList

# --------------------------------------------------------------------------
# Repository Exports
# --------------------------------------------------------------------------
from .repositories.location_repository import LocationRepository
from .repositories.setting_repository import SettingRepository
from .repositories.tip_repository import TipRepository
from .repositories.tip_type_repository import TipTypeRepository
from .repositories.weather_repository import WeatherRepository
from .repositories.subscription_repository import SubscriptionRepository
from .repositories.camera_body_repository import CameraBodyRepository
from .repositories.adapters import RepositoryAdapter

# --------------------------------------------------------------------------
# Public API Definition (`__all__`)
# --------------------------------------------------------------------------
__all__ = [
    # Core
    "Repository",
    "DatabaseContext",
    "UnitOfWork",
    "PersistenceSettings",
    "TTLCache",
    "Result",
    "RepositoryAdapter",
    # Exceptions
    "ErrorCode",
    "DatabaseError",
    "InvalidStateError",
    "RepositoryException",
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    "ObjectValidationException",
    "InfrastructureException",
    # Domain
    "Address",
    "Coordinate",
    "WindInfo",
    "Location",
    "Setting",
    "Tip",
    "TipType",
    "Weather",
    "WeatherForecast",
    "HourlyForecast",
    "Subscription",
    "SubscriptionStatus",
    "CameraBody",
    "MountType",
    "PagedList",
    # Repositories
    "LocationRepository",
    "SettingRepository",
    "TipRepository",
    "TipTypeRepository",
    "WeatherRepository",
    "SubscriptionRepository",
    "CameraBodyRepository",
]
