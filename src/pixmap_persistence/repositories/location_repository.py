import logging
from logging import LoggerAdapter
from typing import Any, List, Optional, Tuple, Union

import aiosqlite

from pixmap_persistence.base.exceptions import ObjectNotFoundException
from pixmap_persistence.base.utils import from_epoch_millis, utc_now
from pixmap_persistence.domain.location import Location
from pixmap_persistence.domain.paging import PagedList
from pixmap_persistence.domain.values import Address, Coordinate, haversine_km
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext

KM_PER_DEGREE_LATITUDE = 111.0


class LocationRepository(SqliteRepositoryBase[Location]):
    """Locations with soft delete. `delete` flags the row instead of removing it."""

    table_name = "locations"
    columns = (
        "id, title, description, latitude, longitude, city, state, "
        "photo_path, is_deleted, timestamp"
    )
    default_order = "timestamp DESC, id DESC"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, Location, logger)

    def _map_row(self, row: aiosqlite.Row) -> Location:
        return Location(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            coordinate=Coordinate(latitude=row["latitude"], longitude=row["longitude"]),
            address=Address(city=row["city"], state=row["state"]),
            photo_path=row["photo_path"],
            is_deleted=bool(row["is_deleted"]),
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    @staticmethod
    def _row_values(location: Location) -> Tuple[Any, ...]:
        return (
            location.title,
            location.description,
            location.coordinate.latitude,
            location.coordinate.longitude,
            location.address.city,
            location.address.state,
            location.photo_path,
            location.is_deleted,
            location.timestamp,
        )

    async def _insert_row(self, location: Location) -> None:
        await self._context.execute_non_query(
            """INSERT INTO locations
               (title, description, latitude, longitude, city, state, photo_path, is_deleted, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            self._row_values(location),
        )

    async def _update_row(self, location: Location) -> None:
        await self._context.execute_non_query(
            """UPDATE locations
               SET title = ?, description = ?, latitude = ?, longitude = ?, city = ?,
                   state = ?, photo_path = ?, is_deleted = ?, timestamp = ?
               WHERE id = ?""",
            self._row_values(location) + (location.id,),
        )

    # --- CRUD ---

    async def create(self, location: Location) -> Location:
        try:
            self.validate_entity(location)
            new_id = await self._context.insert(location, self._insert_row)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(f"Created location '{location.title}' with id {new_id}")
        return location.with_id(new_id)

    async def update(self, location: Location) -> Location:
        try:
            self.validate_entity(location)
            rows = await self._context.update(location, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Location with id {location.id} not found",
                    operation="Update",
                    entity=self.entity_name,
                )
        except Exception as e:
            self._handle_error(e, "Update")
        self._logger.info(f"Updated location {location.id}")
        return location

    async def _set_deleted(self, id: int, deleted: bool, operation: str) -> bool:
        try:
            rows = await self._context.execute_non_query(
                "UPDATE locations SET is_deleted = ?, timestamp = ? WHERE id = ?",
                (deleted, utc_now(), id),
            )
        except Exception as e:
            self._handle_error(e, operation)
        if rows == 0:
            self._logger.warning(f"{operation}: no location with id {id}")
        return rows > 0

    async def delete(self, id: int) -> bool:
        """Soft-delete the location; returns False if no row has that id."""
        return await self._set_deleted(id, True, "Delete")

    async def restore(self, id: int) -> bool:
        return await self._set_deleted(id, False, "Restore")

    # --- Queries ---

    async def get_active(self) -> List[Location]:
        try:
            return await self._context.execute_query(
                self._select("is_deleted = 0"), (), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetActive")

    async def get_by_title(self, title: str) -> Optional[Location]:
        try:
            return await self._context.execute_query_single(
                self._select("title = ? AND is_deleted = 0", suffix="LIMIT 1"),
                (title,),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetByTitle")

    async def get_nearby(
        self, latitude: float, longitude: float, distance_km: float
    ) -> List[Location]:
        """
        Active locations within `distance_km` of the point, nearest first.

        A latitude band narrows the candidates in SQL; the exact haversine
        distance is applied afterwards.
        """
        try:
            center = Coordinate(latitude=latitude, longitude=longitude)
            if distance_km < 0:
                raise ValueError("distance_km cannot be negative")
            band = distance_km / KM_PER_DEGREE_LATITUDE
            candidates = await self._context.execute_query(
                self._select("is_deleted = 0 AND latitude BETWEEN ? AND ?"),
                (center.latitude - band, center.latitude + band),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetNearby")

        with_distance = [
            (haversine_km(latitude, longitude, loc.coordinate.latitude, loc.coordinate.longitude), loc)
            for loc in candidates
        ]
        return [loc for distance, loc in sorted(with_distance, key=lambda p: p[0]) if distance <= distance_km]

    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        search_term: Optional[str] = None,
        include_deleted: bool = False,
    ) -> PagedList[Location]:
        """
        One page of locations, newest first.

        `search_term` matches title or description as a substring.
        """
        try:
            if page_number < 1 or page_size < 1:
                raise ValueError("page_number and page_size must be at least 1")

            conditions: List[str] = []
            params: List[Any] = []
            if not include_deleted:
                conditions.append("is_deleted = 0")
            if search_term and search_term.strip():
                conditions.append("(title LIKE ? OR description LIKE ?)")
                pattern = f"%{search_term.strip()}%"
                params.extend([pattern, pattern])
            where = " AND ".join(conditions)

            count_sql = "SELECT COUNT(*) FROM locations" + (f" WHERE {where}" if where else "")
            total = await self._context.count(count_sql, params)
            items = await self._context.execute_query(
                self._select(where, suffix="LIMIT ? OFFSET ?"),
                params + [page_size, (page_number - 1) * page_size],
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetPaged")
        return PagedList(items=items, page_number=page_number, page_size=page_size, total_count=total)

    async def count(self) -> int:
        """Number of active (not soft-deleted) locations."""
        try:
            return await self._context.count("SELECT COUNT(*) FROM locations WHERE is_deleted = 0")
        except Exception as e:
            self._handle_error(e, "Count")
