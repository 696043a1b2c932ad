import logging
from datetime import date, datetime, timedelta
from logging import LoggerAdapter
from typing import List, Optional, Union

import aiosqlite

from pixmap_persistence.base.exceptions import ObjectNotFoundException
from pixmap_persistence.base.utils import (chunked, from_epoch_millis,
                                           placeholders, utc_now)
from pixmap_persistence.domain.values import Coordinate, WindInfo
from pixmap_persistence.domain.weather import HourlyForecast, Weather, WeatherForecast
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext

FORECAST_COLUMNS = (
    "forecast_date, sunrise, sunset, temperature, min_temperature, max_temperature, "
    "description, icon, wind_speed, wind_direction, wind_gust, humidity, pressure, "
    "clouds, uv_index, precipitation, moon_rise, moon_set, moon_phase"
)
HOURLY_COLUMNS = (
    "date_time, temperature, feels_like, description, icon, wind_speed, wind_direction, "
    "wind_gust, humidity, pressure, clouds, uv_index, probability_of_precipitation, "
    "visibility, dew_point"
)


def _optional_time(millis: Optional[int]) -> Optional[datetime]:
    return from_epoch_millis(millis) if millis is not None else None


def _map_wind(row: aiosqlite.Row) -> WindInfo:
    return WindInfo(speed=row["wind_speed"], direction=row["wind_direction"], gust=row["wind_gust"])


def _map_forecast(row: aiosqlite.Row) -> WeatherForecast:
    return WeatherForecast(
        forecast_date=date.fromisoformat(row["forecast_date"]),
        sunrise=from_epoch_millis(row["sunrise"]),
        sunset=from_epoch_millis(row["sunset"]),
        temperature=row["temperature"],
        min_temperature=row["min_temperature"],
        max_temperature=row["max_temperature"],
        description=row["description"],
        icon=row["icon"],
        wind=_map_wind(row),
        humidity=row["humidity"],
        pressure=row["pressure"],
        clouds=row["clouds"],
        uv_index=row["uv_index"],
        precipitation=row["precipitation"],
        moon_rise=_optional_time(row["moon_rise"]),
        moon_set=_optional_time(row["moon_set"]),
        moon_phase=row["moon_phase"],
    )


def _map_hourly(row: aiosqlite.Row) -> HourlyForecast:
    return HourlyForecast(
        date_time=from_epoch_millis(row["date_time"]),
        temperature=row["temperature"],
        feels_like=row["feels_like"],
        description=row["description"],
        icon=row["icon"],
        wind=_map_wind(row),
        humidity=row["humidity"],
        pressure=row["pressure"],
        clouds=row["clouds"],
        uv_index=row["uv_index"],
        probability_of_precipitation=row["probability_of_precipitation"],
        visibility=row["visibility"],
        dew_point=row["dew_point"],
    )


class WeatherRepository(SqliteRepositoryBase[Weather]):
    """
    Weather snapshots per location.

    A Weather row owns its daily and hourly forecast rows. Writes touching
    both run in one transaction; updates replace the children wholesale.
    """

    table_name = "weather"
    columns = "id, location_id, latitude, longitude, timezone, timezone_offset, last_update, timestamp"
    default_order = "last_update DESC, id DESC"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, Weather, logger)

    def _map_row(self, row: aiosqlite.Row) -> Weather:
        return Weather(
            id=row["id"],
            location_id=row["location_id"],
            coordinate=Coordinate(latitude=row["latitude"], longitude=row["longitude"]),
            timezone=row["timezone"],
            timezone_offset=row["timezone_offset"],
            last_update=from_epoch_millis(row["last_update"]),
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    async def _with_children(self, weather: Optional[Weather]) -> Optional[Weather]:
        if weather is None:
            return None
        forecasts = await self._context.execute_query(
            f"SELECT {FORECAST_COLUMNS} FROM weather_forecasts WHERE weather_id = ? ORDER BY forecast_date",
            (weather.id,),
            _map_forecast,
        )
        hourly = await self._context.execute_query(
            f"SELECT {HOURLY_COLUMNS} FROM hourly_forecasts WHERE weather_id = ? ORDER BY date_time",
            (weather.id,),
            _map_hourly,
        )
        return weather.model_copy(update={"forecasts": forecasts, "hourly_forecasts": hourly})

    # --- Row Writers ---

    async def _insert_row(self, weather: Weather) -> None:
        await self._context.execute_non_query(
            """INSERT INTO weather
               (location_id, latitude, longitude, timezone, timezone_offset, last_update, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                weather.location_id,
                weather.coordinate.latitude,
                weather.coordinate.longitude,
                weather.timezone,
                weather.timezone_offset,
                weather.last_update,
                weather.timestamp,
            ),
        )

    async def _update_row(self, weather: Weather) -> None:
        await self._context.execute_non_query(
            """UPDATE weather
               SET location_id = ?, latitude = ?, longitude = ?, timezone = ?,
                   timezone_offset = ?, last_update = ?, timestamp = ?
               WHERE id = ?""",
            (
                weather.location_id,
                weather.coordinate.latitude,
                weather.coordinate.longitude,
                weather.timezone,
                weather.timezone_offset,
                weather.last_update,
                weather.timestamp,
                weather.id,
            ),
        )

    async def _insert_children(self, weather_id: int, weather: Weather) -> None:
        for f in weather.forecasts:
            await self._context.execute_non_query(
                f"INSERT INTO weather_forecasts (weather_id, {FORECAST_COLUMNS}) "
                f"VALUES ({placeholders(20)})",
                (
                    weather_id, f.forecast_date.isoformat(), f.sunrise, f.sunset,
                    f.temperature, f.min_temperature, f.max_temperature, f.description,
                    f.icon, f.wind.speed, f.wind.direction, f.wind.gust, f.humidity,
                    f.pressure, f.clouds, f.uv_index, f.precipitation, f.moon_rise,
                    f.moon_set, f.moon_phase,
                ),
            )
        for h in weather.hourly_forecasts:
            await self._context.execute_non_query(
                f"INSERT INTO hourly_forecasts (weather_id, {HOURLY_COLUMNS}) "
                f"VALUES ({placeholders(16)})",
                (
                    weather_id, h.date_time, h.temperature, h.feels_like, h.description,
                    h.icon, h.wind.speed, h.wind.direction, h.wind.gust, h.humidity,
                    h.pressure, h.clouds, h.uv_index, h.probability_of_precipitation,
                    h.visibility, h.dew_point,
                ),
            )

    async def _delete_children(self, weather_ids: List[int]) -> None:
        for batch in chunked(weather_ids, self._context.batch_size):
            marks = placeholders(len(batch))
            await self._context.execute_non_query(
                f"DELETE FROM weather_forecasts WHERE weather_id IN ({marks})", batch
            )
            await self._context.execute_non_query(
                f"DELETE FROM hourly_forecasts WHERE weather_id IN ({marks})", batch
            )

    # --- CRUD ---

    async def get_by_id(self, id: int) -> Optional[Weather]:
        try:
            weather = await self._context.execute_query_single(
                self._select("id = ?"), (id,), self._map_row
            )
            return await self._with_children(weather)
        except Exception as e:
            self._handle_error(e, "GetById")

    async def get_by_location_id(self, location_id: int) -> Optional[Weather]:
        """The most recently updated weather for the location, with its forecasts."""
        try:
            weather = await self._context.execute_query_single(
                self._select("location_id = ?", suffix="LIMIT 1"), (location_id,), self._map_row
            )
            return await self._with_children(weather)
        except Exception as e:
            self._handle_error(e, "GetByLocationId")

    async def create(self, weather: Weather) -> Weather:
        async def _create() -> int:
            new_id = await self._context.insert(weather, self._insert_row)
            await self._insert_children(new_id, weather)
            return new_id

        try:
            self.validate_entity(weather)
            new_id = await self._context.execute_in_transaction(_create)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(
            f"Created weather {new_id} for location {weather.location_id} "
            f"({len(weather.forecasts)} daily, {len(weather.hourly_forecasts)} hourly)"
        )
        return weather.with_id(new_id)

    async def update(self, weather: Weather) -> Weather:
        async def _update() -> None:
            rows = await self._context.update(weather, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Weather with id {weather.id} not found",
                    operation="Update",
                    entity=self.entity_name,
                )
            await self._delete_children([weather.id])
            await self._insert_children(weather.id, weather)

        try:
            self.validate_entity(weather)
            await self._context.execute_in_transaction(_update)
        except Exception as e:
            self._handle_error(e, "Update")
        return weather

    async def delete(self, id: int) -> bool:
        async def _delete() -> int:
            await self._delete_children([id])
            return await self._context.execute_non_query("DELETE FROM weather WHERE id = ?", (id,))

        try:
            rows = await self._context.execute_in_transaction(_delete)
        except Exception as e:
            self._handle_error(e, "Delete")
        return rows > 0

    # --- Queries ---

    async def get_recent(self, count: int = 10) -> List[Weather]:
        """The `count` most recently updated snapshots, without forecasts."""
        try:
            return await self._context.execute_query(
                self._select(suffix="LIMIT ?"), (count,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetRecent")

    async def get_expired(self, max_age: timedelta) -> List[Weather]:
        """Snapshots whose last update is older than `max_age`, without forecasts."""
        cutoff = utc_now() - max_age
        try:
            return await self._context.execute_query(
                self._select("last_update < ?"), (cutoff,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetExpired")

    async def delete_expired(self, max_age: timedelta) -> int:
        """Delete snapshots older than `max_age` together with their forecasts."""
        cutoff = utc_now() - max_age

        async def _delete_expired() -> int:
            ids = await self._context.execute_query(
                "SELECT id FROM weather WHERE last_update < ?", (cutoff,), lambda row: row["id"]
            )
            if not ids:
                return 0
            await self._delete_children(ids)
            deleted = 0
            for batch in chunked(ids, self._context.batch_size):
                deleted += await self._context.execute_non_query(
                    f"DELETE FROM weather WHERE id IN ({placeholders(len(batch))})", batch
                )
            return deleted

        try:
            deleted = await self._context.execute_in_transaction(_delete_expired)
        except Exception as e:
            self._handle_error(e, "DeleteExpired")
        self._logger.info(f"Deleted {deleted} expired weather snapshots")
        return deleted
