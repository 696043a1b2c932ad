import logging
from logging import LoggerAdapter
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

import aiosqlite

from pixmap_persistence.base.exceptions import ObjectNotFoundException
from pixmap_persistence.base.utils import chunked, from_epoch_millis, placeholders
from pixmap_persistence.domain.tip import Tip
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext


class TipRepository(SqliteRepositoryBase[Tip]):
    """
    Photography tips. Every tip references a tip type; inserting a tip for a
    missing type fails with a CONSTRAINT_VIOLATION error.
    """

    table_name = "tips"
    columns = "id, tip_type_id, title, content, fstop, shutter_speed, iso, i8n, timestamp"
    default_order = "title"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, Tip, logger)

    def _map_row(self, row: aiosqlite.Row) -> Tip:
        return Tip(
            id=row["id"],
            tip_type_id=row["tip_type_id"],
            title=row["title"],
            content=row["content"],
            fstop=row["fstop"],
            shutter_speed=row["shutter_speed"],
            iso=row["iso"],
            i8n=row["i8n"],
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    @staticmethod
    def _row_values(tip: Tip) -> Tuple[Any, ...]:
        return (
            tip.tip_type_id,
            tip.title,
            tip.content,
            tip.fstop,
            tip.shutter_speed,
            tip.iso,
            tip.i8n,
            tip.timestamp,
        )

    async def _insert_row(self, tip: Tip) -> None:
        await self._context.execute_non_query(
            """INSERT INTO tips
               (tip_type_id, title, content, fstop, shutter_speed, iso, i8n, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            self._row_values(tip),
        )

    async def _update_row(self, tip: Tip) -> None:
        await self._context.execute_non_query(
            """UPDATE tips
               SET tip_type_id = ?, title = ?, content = ?, fstop = ?, shutter_speed = ?,
                   iso = ?, i8n = ?, timestamp = ?
               WHERE id = ?""",
            self._row_values(tip) + (tip.id,),
        )

    async def _update_existing(self, tip: Tip) -> None:
        rows = await self._context.update(tip, self._update_row)
        if rows == 0:
            raise ObjectNotFoundException(
                f"Tip with id {tip.id} not found", operation="Update", entity=self.entity_name
            )

    # --- CRUD ---

    async def create(self, tip: Tip) -> Tip:
        try:
            self.validate_entity(tip)
            new_id = await self._context.insert(tip, self._insert_row)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(f"Created tip '{tip.title}' with id {new_id}")
        return tip.with_id(new_id)

    async def update(self, tip: Tip) -> Tip:
        try:
            self.validate_entity(tip)
            await self._update_existing(tip)
        except Exception as e:
            self._handle_error(e, "Update")
        return tip

    async def delete(self, id: int) -> bool:
        return await self._delete_by_id(id)

    # --- Bulk ---

    async def create_bulk(self, tips: Sequence[Tip]) -> List[Tip]:
        """Insert all tips in one transaction; nothing is kept if any insert fails."""
        created: List[Tip] = []

        async def _insert(tip: Tip) -> None:
            self.validate_entity(tip)
            new_id = await self._context.insert(tip, self._insert_row)
            created.append(tip.with_id(new_id))

        try:
            await self._context.bulk_insert(list(tips), _insert)
        except Exception as e:
            self._handle_error(e, "CreateBulk")
        return created

    async def update_bulk(self, tips: Sequence[Tip]) -> int:
        """Update all tips in one transaction; a missing id rolls the whole batch back."""
        try:
            return await self._context.bulk_update(list(tips), self._update_existing)
        except Exception as e:
            self._handle_error(e, "UpdateBulk")

    async def delete_bulk(self, ids: Iterable[int]) -> int:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return 0

        async def _delete_batches() -> int:
            deleted = 0
            for batch in chunked(unique_ids, self._context.batch_size):
                deleted += await self._context.execute_non_query(
                    f"DELETE FROM tips WHERE id IN ({placeholders(len(batch))})", batch
                )
            return deleted

        try:
            return await self._context.execute_in_transaction(_delete_batches)
        except Exception as e:
            self._handle_error(e, "DeleteBulk")

    # --- Queries ---

    async def get_by_tip_type_id(self, tip_type_id: int) -> List[Tip]:
        try:
            return await self._context.execute_query(
                self._select("tip_type_id = ?"), (tip_type_id,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByTipTypeId")

    async def get_by_title(self, title: str) -> Optional[Tip]:
        try:
            return await self._context.execute_query_single(
                self._select("title = ?", suffix="LIMIT 1"), (title,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByTitle")

    async def get_random_by_type(self, tip_type_id: int) -> Optional[Tip]:
        try:
            return await self._context.execute_query_single(
                self._select("tip_type_id = ?", order_by="RANDOM()", suffix="LIMIT 1"),
                (tip_type_id,),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetRandomByType")

    async def count_by_tip_type(self, tip_type_id: int) -> int:
        try:
            return await self._context.count(
                "SELECT COUNT(*) FROM tips WHERE tip_type_id = ?", (tip_type_id,)
            )
        except Exception as e:
            self._handle_error(e, "CountByTipType")

    async def search_by_content(self, term: str) -> List[Tip]:
        """Tips whose title or content contains `term`."""
        pattern = f"%{term}%"
        try:
            return await self._context.execute_query(
                self._select("title LIKE ? OR content LIKE ?"), (pattern, pattern), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "SearchByContent")
