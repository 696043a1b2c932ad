import logging
from logging import LoggerAdapter
from typing import Optional, Union

import aiosqlite

from pixmap_persistence.base.exceptions import (KeyAlreadyExistsException,
                                                ObjectNotFoundException)
from pixmap_persistence.base.utils import from_epoch_millis
from pixmap_persistence.domain.tip import TipType
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext


class TipTypeRepository(SqliteRepositoryBase[TipType]):
    table_name = "tip_types"
    columns = "id, name, i8n, timestamp"
    default_order = "name"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, TipType, logger)

    def _map_row(self, row: aiosqlite.Row) -> TipType:
        return TipType(
            id=row["id"],
            name=row["name"],
            i8n=row["i8n"],
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    async def _insert_row(self, tip_type: TipType) -> None:
        await self._context.execute_non_query(
            "INSERT INTO tip_types (name, i8n, timestamp) VALUES (?, ?, ?)",
            (tip_type.name, tip_type.i8n, tip_type.timestamp),
        )

    async def _update_row(self, tip_type: TipType) -> None:
        await self._context.execute_non_query(
            "UPDATE tip_types SET name = ?, i8n = ?, timestamp = ? WHERE id = ?",
            (tip_type.name, tip_type.i8n, tip_type.timestamp, tip_type.id),
        )

    async def get_by_name(self, name: str) -> Optional[TipType]:
        try:
            return await self._context.execute_query_single(
                self._select("name = ?"), (name,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByName")

    async def create(self, tip_type: TipType) -> TipType:
        async def _create() -> int:
            taken = await self._context.execute_scalar(
                "SELECT EXISTS(SELECT 1 FROM tip_types WHERE name = ?)", (tip_type.name,)
            )
            if taken:
                raise KeyAlreadyExistsException(
                    f"Tip type '{tip_type.name}' already exists",
                    operation="Create",
                    entity=self.entity_name,
                )
            return await self._context.insert(tip_type, self._insert_row)

        try:
            self.validate_entity(tip_type)
            new_id = await self._context.execute_in_transaction(_create)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(f"Created tip type '{tip_type.name}' with id {new_id}")
        return tip_type.with_id(new_id)

    async def update(self, tip_type: TipType) -> TipType:
        try:
            self.validate_entity(tip_type)
            rows = await self._context.update(tip_type, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Tip type with id {tip_type.id} not found",
                    operation="Update",
                    entity=self.entity_name,
                )
        except Exception as e:
            self._handle_error(e, "Update")
        return tip_type

    async def delete(self, id: int) -> bool:
        """Delete the tip type and, through the foreign key cascade, its tips."""
        return await self._delete_by_id(id)
