from datetime import date, datetime, timedelta, timezone

import pytest

from pixmap_persistence.base.exceptions import (ErrorCode,
                                                ObjectNotFoundException,
                                                RepositoryException)
from pixmap_persistence.base.utils import utc_now
from pixmap_persistence.domain.values import Coordinate, WindInfo
from pixmap_persistence.domain.weather import HourlyForecast, Weather, WeatherForecast

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_forecast(day: int, **overrides) -> WeatherForecast:
    values = dict(
        forecast_date=date(2024, 6, day),
        sunrise=BASE_TIME.replace(day=day, hour=5, minute=12),
        sunset=BASE_TIME.replace(day=day, hour=21, minute=3),
        temperature=18.5,
        min_temperature=12.0,
        max_temperature=22.25,
        description="Partly cloudy",
        icon="02d",
        wind=WindInfo(speed=3.5, direction=225, gust=7.0),
        humidity=60,
        pressure=1015,
        clouds=40,
        uv_index=5.5,
        moon_phase=0.5,
    )
    values.update(overrides)
    return WeatherForecast(**values)


def make_hourly(hour: int) -> HourlyForecast:
    return HourlyForecast(
        date_time=BASE_TIME + timedelta(hours=hour),
        temperature=15.0 + hour,
        feels_like=14.0 + hour,
        wind=WindInfo(speed=2.0, direction=90),
        humidity=55,
        probability_of_precipitation=0.2,
        visibility=10000,
        dew_point=9.5,
    )


def make_weather(location, **overrides) -> Weather:
    return Weather(
        location_id=location.id,
        coordinate=location.coordinate,
        timezone="America/Los_Angeles",
        timezone_offset=-25200,
        **overrides,
    )


async def test_create_and_load_with_children(weather_repository, saved_location):
    """Daily and hourly forecasts are stored as child rows and loaded back in order."""
    weather = make_weather(saved_location).update_forecasts(
        [make_forecast(2, precipitation=1.25, moon_rise=BASE_TIME), make_forecast(1)]
    ).update_hourly_forecasts([make_hourly(h) for h in range(3)])

    created = await weather_repository.create(weather)
    fetched = await weather_repository.get_by_id(created.id)

    assert [f.forecast_date.day for f in fetched.forecasts] == [1, 2]
    assert fetched.forecasts[1].model_dump() == weather.forecasts[0].model_dump()
    assert [h.model_dump() for h in fetched.hourly_forecasts] == [
        h.model_dump() for h in weather.hourly_forecasts
    ]
    assert fetched.forecasts[0].wind.cardinal_direction == "SW"
    assert fetched.forecast_for_date(date(2024, 6, 2)).precipitation == 1.25


async def test_get_by_location_id_returns_latest(weather_repository, saved_location):
    old = make_weather(saved_location, last_update=utc_now() - timedelta(hours=5))
    await weather_repository.create(old)
    latest = await weather_repository.create(make_weather(saved_location))

    fetched = await weather_repository.get_by_location_id(saved_location.id)
    assert fetched.id == latest.id
    assert await weather_repository.get_by_location_id(9999) is None


async def test_update_replaces_children(weather_repository, saved_location):
    created = await weather_repository.create(
        make_weather(saved_location).update_forecasts([make_forecast(d) for d in range(1, 4)])
    )

    await weather_repository.update(created.update_forecasts([make_forecast(10)]))

    fetched = await weather_repository.get_by_id(created.id)
    assert [f.forecast_date.day for f in fetched.forecasts] == [10]


async def test_update_missing_weather(weather_repository, saved_location):
    ghost = make_weather(saved_location).with_id(777)
    with pytest.raises(ObjectNotFoundException):
        await weather_repository.update(ghost)


async def test_delete_removes_children(weather_repository, saved_location, db_context):
    created = await weather_repository.create(
        make_weather(saved_location)
        .update_forecasts([make_forecast(1)])
        .update_hourly_forecasts([make_hourly(0)])
    )

    assert await weather_repository.delete(created.id) is True
    assert await weather_repository.delete(created.id) is False
    assert await db_context.count("SELECT COUNT(*) FROM weather_forecasts") == 0
    assert await db_context.count("SELECT COUNT(*) FROM hourly_forecasts") == 0


async def test_weather_for_missing_location_is_constraint_violation(weather_repository):
    orphan = Weather.create(4242, Coordinate(latitude=1, longitude=1))
    with pytest.raises(RepositoryException) as exc_info:
        await weather_repository.create(orphan)
    assert exc_info.value.code == ErrorCode.CONSTRAINT_VIOLATION


async def test_recent_and_expired(weather_repository, saved_location):
    stale = await weather_repository.create(
        make_weather(saved_location, last_update=utc_now() - timedelta(hours=3))
    )
    fresh = await weather_repository.create(make_weather(saved_location))

    recent = await weather_repository.get_recent(1)
    assert [w.id for w in recent] == [fresh.id]

    expired = await weather_repository.get_expired(timedelta(hours=1))
    assert [w.id for w in expired] == [stale.id]

    assert await weather_repository.delete_expired(timedelta(hours=1)) == 1
    assert await weather_repository.get_by_id(stale.id) is None
    assert await weather_repository.get_by_id(fresh.id) is not None
    assert await weather_repository.delete_expired(timedelta(hours=1)) == 0


def test_forecast_lists_are_truncated():
    weather = Weather.create(1, Coordinate(latitude=0, longitude=0))
    days = [make_forecast(1) for _ in range(10)]
    hours = [make_hourly(h) for h in range(60)]

    updated = weather.update_forecasts(days).update_hourly_forecasts(hours)

    assert len(updated.forecasts) == 7
    assert len(updated.hourly_forecasts) == 48
    window = updated.hourly_forecasts_between(BASE_TIME, BASE_TIME + timedelta(hours=2))
    assert len(window) == 3
