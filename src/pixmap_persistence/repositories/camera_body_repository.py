import logging
from logging import LoggerAdapter
from typing import Any, List, Optional, Sequence, Tuple, Union

import aiosqlite

from pixmap_persistence.base.exceptions import (KeyAlreadyExistsException,
                                                ObjectNotFoundException)
from pixmap_persistence.base.utils import from_epoch_millis
from pixmap_persistence.domain.camera import CameraBody, MountType
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext


class CameraBodyRepository(SqliteRepositoryBase[CameraBody]):
    """
    Camera bodies, both the built-in catalogue (`is_user_created = False`)
    and bodies added by the user. Names are unique; listings are ordered by
    name.
    """

    table_name = "camera_bodies"
    columns = (
        "id, name, sensor_type, sensor_width, sensor_height, mount_type, "
        "is_user_created, manufacturer, model, crop_factor, timestamp"
    )
    default_order = "name"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, CameraBody, logger)

    def _map_row(self, row: aiosqlite.Row) -> CameraBody:
        return CameraBody(
            id=row["id"],
            name=row["name"],
            sensor_type=row["sensor_type"],
            sensor_width=row["sensor_width"],
            sensor_height=row["sensor_height"],
            mount_type=MountType(row["mount_type"]),
            is_user_created=bool(row["is_user_created"]),
            manufacturer=row["manufacturer"],
            model=row["model"],
            crop_factor=row["crop_factor"],
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    @staticmethod
    def _row_values(camera: CameraBody) -> Tuple[Any, ...]:
        return (
            camera.name,
            camera.sensor_type,
            camera.sensor_width,
            camera.sensor_height,
            camera.mount_type,
            camera.is_user_created,
            camera.manufacturer,
            camera.model,
            camera.crop_factor,
            camera.timestamp,
        )

    async def _insert_row(self, camera: CameraBody) -> None:
        await self._context.execute_non_query(
            """INSERT INTO camera_bodies
               (name, sensor_type, sensor_width, sensor_height, mount_type,
                is_user_created, manufacturer, model, crop_factor, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            self._row_values(camera),
        )

    async def _update_row(self, camera: CameraBody) -> None:
        await self._context.execute_non_query(
            """UPDATE camera_bodies
               SET name = ?, sensor_type = ?, sensor_width = ?, sensor_height = ?,
                   mount_type = ?, is_user_created = ?, manufacturer = ?, model = ?,
                   crop_factor = ?, timestamp = ?
               WHERE id = ?""",
            self._row_values(camera) + (camera.id,),
        )

    async def _name_taken(self, name: str) -> bool:
        return bool(
            await self._context.execute_scalar(
                "SELECT EXISTS(SELECT 1 FROM camera_bodies WHERE name = ?)", (name,)
            )
        )

    async def _create_one(self, camera: CameraBody) -> CameraBody:
        self.validate_entity(camera)

        async def _create() -> int:
            if await self._name_taken(camera.name):
                raise KeyAlreadyExistsException(
                    f"Camera body with name '{camera.name}' already exists",
                    operation="Create",
                    entity=self.entity_name,
                )
            return await self._context.insert(camera, self._insert_row)

        new_id = await self._context.execute_in_transaction(_create)
        return camera.with_id(new_id)

    # --- CRUD ---

    async def create(self, camera: CameraBody) -> CameraBody:
        """
        Insert a new camera body.

        Raises:
            KeyAlreadyExistsException: If another camera body has the same name.
        """
        try:
            created = await self._create_one(camera)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(f"Created camera body '{created.name}' with id {created.id}")
        return created

    async def update(self, camera: CameraBody) -> CameraBody:
        """
        Raises:
            ObjectNotFoundException: If no camera body has `camera.id`.
            KeyAlreadyExistsException: If the new name belongs to another camera body.
        """
        try:
            self.validate_entity(camera)
            rows = await self._context.update(camera, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Camera body with id {camera.id} not found",
                    operation="Update",
                    entity=self.entity_name,
                )
        except Exception as e:
            self._handle_error(e, "Update")
        self._logger.info(f"Updated camera body with id {camera.id}")
        return camera

    async def delete(self, id: int) -> bool:
        return await self._delete_by_id(id)

    async def create_bulk(self, cameras: Sequence[CameraBody]) -> List[CameraBody]:
        """
        Insert every camera body inside one transaction, in batches.

        A duplicate name anywhere in the input rolls the whole batch back.
        """
        created: List[CameraBody] = []

        async def _insert(camera: CameraBody) -> None:
            created.append(await self._create_one(camera))

        try:
            await self._context.bulk_insert(list(cameras), _insert)
        except Exception as e:
            self._handle_error(e, "CreateBulk")
        return created

    # --- Queries ---

    async def get_by_name(self, name: str) -> Optional[CameraBody]:
        try:
            return await self._context.execute_query_single(
                self._select("name = ?"), (name,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByName")

    async def exists_by_name(self, name: str) -> bool:
        try:
            return await self._name_taken(name)
        except Exception as e:
            self._handle_error(e, "ExistsByName")

    async def _get_where(self, where: str, params: Sequence[Any], operation: str) -> List[CameraBody]:
        try:
            return await self._context.execute_query(self._select(where), params, self._map_row)
        except Exception as e:
            self._handle_error(e, operation)

    async def get_by_mount_type(self, mount_type: MountType) -> List[CameraBody]:
        return await self._get_where("mount_type = ?", (mount_type,), "GetByMountType")

    async def get_by_sensor_type(self, sensor_type: str) -> List[CameraBody]:
        return await self._get_where("sensor_type = ?", (sensor_type,), "GetBySensorType")

    async def get_by_manufacturer(self, manufacturer: str) -> List[CameraBody]:
        return await self._get_where("manufacturer = ?", (manufacturer,), "GetByManufacturer")

    async def get_user_created(self) -> List[CameraBody]:
        return await self._get_where("is_user_created = 1", (), "GetUserCreated")

    async def get_system_created(self) -> List[CameraBody]:
        return await self._get_where("is_user_created = 0", (), "GetSystemCreated")
