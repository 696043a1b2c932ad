from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pixmap_persistence.base.utils import normalize_datetime, utc_now
from pixmap_persistence.domain.base import DomainEntity
from pixmap_persistence.domain.values import Coordinate, WindInfo

MAX_DAILY_FORECASTS = 7
MAX_HOURLY_FORECASTS = 48


def _normalize_optional(value: Optional[datetime]) -> Optional[datetime]:
    return normalize_datetime(value) if value is not None else None


class WeatherForecast(BaseModel):
    """One day of a weather forecast."""

    model_config = ConfigDict(frozen=True)

    forecast_date: date
    sunrise: datetime
    sunset: datetime
    temperature: float
    min_temperature: float
    max_temperature: float
    description: str = ""
    icon: str = ""
    wind: WindInfo = Field(default_factory=WindInfo)
    humidity: int = Field(default=0, ge=0, le=100)
    pressure: int = 0
    clouds: int = Field(default=0, ge=0, le=100)
    uv_index: float = 0.0
    precipitation: Optional[float] = None
    moon_rise: Optional[datetime] = None
    moon_set: Optional[datetime] = None
    moon_phase: float = Field(default=0.0, ge=0, le=1)

    @field_validator("sunrise", "sunset", "moon_rise", "moon_set")
    @classmethod
    def _normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_optional(value)

    @property
    def moon_phase_description(self) -> str:
        phase = self.moon_phase
        if phase < 0.03 or phase > 0.97:
            return "New Moon"
        if phase < 0.22:
            return "Waxing Crescent"
        if phase < 0.28:
            return "First Quarter"
        if phase < 0.47:
            return "Waxing Gibbous"
        if phase < 0.53:
            return "Full Moon"
        if phase < 0.72:
            return "Waning Gibbous"
        if phase < 0.78:
            return "Last Quarter"
        return "Waning Crescent"


class HourlyForecast(BaseModel):
    """One hour of a weather forecast."""

    model_config = ConfigDict(frozen=True)

    date_time: datetime
    temperature: float
    feels_like: float
    description: str = ""
    icon: str = ""
    wind: WindInfo = Field(default_factory=WindInfo)
    humidity: int = Field(default=0, ge=0, le=100)
    pressure: int = 0
    clouds: int = Field(default=0, ge=0, le=100)
    uv_index: float = 0.0
    probability_of_precipitation: float = Field(default=0.0, ge=0, le=1)
    visibility: int = 0
    dew_point: float = 0.0

    @field_validator("date_time")
    @classmethod
    def _normalize_time(cls, value: datetime) -> datetime:
        return normalize_datetime(value)


class Weather(DomainEntity):
    """
    Cached weather for a location, with up to 7 daily and 48 hourly forecasts.

    Forecast lists are stored as child rows and replaced wholesale on update.
    """

    location_id: int = Field(gt=0)
    coordinate: Coordinate
    timezone: str = ""
    timezone_offset: int = 0
    last_update: datetime = Field(default_factory=utc_now)
    forecasts: List[WeatherForecast] = Field(default_factory=list, max_length=MAX_DAILY_FORECASTS)
    hourly_forecasts: List[HourlyForecast] = Field(
        default_factory=list, max_length=MAX_HOURLY_FORECASTS
    )

    @field_validator("last_update")
    @classmethod
    def _normalize_last_update(cls, value: datetime) -> datetime:
        return normalize_datetime(value)

    @classmethod
    def create(
        cls,
        location_id: int,
        coordinate: Coordinate,
        timezone: str = "",
        timezone_offset: int = 0,
    ) -> "Weather":
        return cls(
            location_id=location_id,
            coordinate=coordinate,
            timezone=timezone,
            timezone_offset=timezone_offset,
        )

    def update_forecasts(self, forecasts: List[WeatherForecast]) -> "Weather":
        """Replace the daily forecasts, keeping at most the first seven."""
        return self._changed(
            forecasts=list(forecasts)[:MAX_DAILY_FORECASTS], last_update=utc_now()
        )

    def update_hourly_forecasts(self, hourly_forecasts: List[HourlyForecast]) -> "Weather":
        return self._changed(
            hourly_forecasts=list(hourly_forecasts)[:MAX_HOURLY_FORECASTS],
            last_update=utc_now(),
        )

    def forecast_for_date(self, day: date) -> Optional[WeatherForecast]:
        return next((f for f in self.forecasts if f.forecast_date == day), None)

    def hourly_forecasts_between(self, start: datetime, end: datetime) -> List[HourlyForecast]:
        start, end = normalize_datetime(start), normalize_datetime(end)
        return [h for h in self.hourly_forecasts if start <= h.date_time <= end]
