import logging
import time
from datetime import timedelta
from functools import partial
from logging import LoggerAdapter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import aiosqlite

from pixmap_persistence.base.cache import TTLCache
from pixmap_persistence.base.exceptions import (KeyAlreadyExistsException,
                                                ObjectNotFoundException)
from pixmap_persistence.base.utils import (chunked, from_epoch_millis,
                                           placeholders, utc_now)
from pixmap_persistence.config import DEFAULT_CACHE_TTL
from pixmap_persistence.domain.setting import Setting
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext


class SettingRepository(SqliteRepositoryBase[Setting]):
    """
    Settings repository with a read-through TTL cache keyed by setting key.

    Cache contract:
        - Entries (including "not found" results) live for `cache_ttl` from
          the moment they are written and are never served after expiry.
        - The cache lock is only held for map access; database calls happen
          outside it.
        - A write invalidates the key immediately. The new value is cached
          once the write is durable: right away outside a transaction, or
          when the enclosing transaction commits. A rollback drops the key.
    """

    table_name = "settings"
    columns = "id, key, value, description, timestamp"
    default_order = "key"

    def __init__(
        self,
        context: DatabaseContext,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, Setting, logger)
        self._cache: TTLCache[str, Setting] = TTLCache(cache_ttl, clock=clock, name="settings")

    @property
    def cache(self) -> TTLCache[str, Setting]:
        return self._cache

    # --- Row Mapping ---

    def _map_row(self, row: aiosqlite.Row) -> Setting:
        return Setting(
            id=row["id"],
            key=row["key"],
            value=row["value"],
            description=row["description"] or "",
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    async def _insert_row(self, setting: Setting) -> None:
        await self._context.execute_non_query(
            "INSERT INTO settings (key, value, description, timestamp) VALUES (?, ?, ?, ?)",
            (setting.key, setting.value, setting.description, setting.timestamp),
        )

    async def _update_row(self, setting: Setting) -> None:
        await self._context.execute_non_query(
            "UPDATE settings SET value = ?, description = ?, timestamp = ? WHERE key = ?",
            (setting.value, setting.description, setting.timestamp, setting.key),
        )

    async def _delete_row(self, key: str) -> None:
        await self._context.execute_non_query("DELETE FROM settings WHERE key = ?", (key,))

    async def _key_exists(self, key: str) -> bool:
        return bool(
            await self._context.execute_scalar(
                "SELECT EXISTS(SELECT 1 FROM settings WHERE key = ?)", (key,)
            )
        )

    # --- Cache Bookkeeping ---

    async def _cache_written(self, key: str, setting: Setting) -> None:
        await self._cache.invalidate(key)
        await self._context.on_commit(partial(self._cache.put, key, setting))
        await self._context.on_rollback(partial(self._cache.invalidate, key))

    async def _cache_removed(self, keys: List[str]) -> None:
        await self._cache.invalidate_many(keys)
        if self._context.owns_transaction:
            await self._context.on_commit(partial(self._cache.invalidate_many, keys))
            await self._context.on_rollback(partial(self._cache.invalidate_many, keys))

    async def clear_cache(self) -> None:
        await self._cache.clear()

    # --- Single-Key Operations ---

    async def get_by_key(self, key: str) -> Optional[Setting]:
        """
        Return the setting for `key`, or None if it does not exist.

        Serves non-expired cache entries (including cached misses) without
        touching the database.
        """
        try:
            lookup = await self._cache.lookup(key)
            if lookup.hit:
                self._logger.debug(f"Cache hit for setting '{key}'")
                return lookup.value

            self._logger.debug(f"Cache miss for setting '{key}'")
            setting = await self._context.execute_query_single(
                self._select("key = ?"), (key,), self._map_row
            )
            await self._cache.put_if_unchanged(key, setting, lookup.version)
            return setting
        except Exception as e:
            self._handle_error(e, "GetByKey")

    async def create(self, setting: Setting) -> Setting:
        """
        Insert a new setting.

        Raises:
            KeyAlreadyExistsException: If a setting with the same key exists.
        """
        async def _create() -> Setting:
            if await self._key_exists(setting.key):
                raise KeyAlreadyExistsException(
                    f"Setting with key '{setting.key}' already exists",
                    operation="Create",
                    entity=self.entity_name,
                )
            new_id = await self._context.insert(setting, self._insert_row)
            return setting.with_id(new_id)

        try:
            self.validate_entity(setting)
            created = await self._context.execute_in_transaction(_create)
            await self._cache_written(created.key, created)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(f"Created setting '{created.key}' with id {created.id}")
        return created

    async def update(self, setting: Setting) -> Setting:
        """
        Update the setting with `setting.key`.

        The returned setting carries the id of the stored row, whatever id
        the caller passed in.

        Raises:
            ObjectNotFoundException: If no setting has that key.
        """
        async def _update() -> Setting:
            rows = await self._context.update(setting, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Setting with key '{setting.key}' not found",
                    operation="Update",
                    entity=self.entity_name,
                )
            # The row is matched by key; its stored id wins over the caller's.
            row_id = await self._context.execute_scalar(
                "SELECT id FROM settings WHERE key = ?", (setting.key,)
            )
            return setting.with_id(int(row_id))

        try:
            self.validate_entity(setting)
            updated = await self._context.execute_in_transaction(_update)
            await self._cache_written(updated.key, updated)
        except Exception as e:
            self._handle_error(e, "Update")
        self._logger.info(f"Updated setting '{updated.key}'")
        return updated

    async def delete(self, key: str) -> bool:
        """
        Delete the setting with `key`.

        The cache entry is only dropped when a row was actually removed.

        Returns:
            True if a row was deleted.
        """
        try:
            rows = await self._context.delete(key, self._delete_row)
            if rows > 0:
                await self._cache_removed([key])
        except Exception as e:
            self._handle_error(e, "Delete")
        if rows == 0:
            self._logger.warning(f"Delete: no setting with key '{key}'")
            return False
        self._logger.info(f"Deleted setting '{key}'")
        return True

    async def upsert(self, key: str, value: str, description: Optional[str] = None) -> Setting:
        """
        Insert or update `key` atomically.

        The existence check and the write share one transaction, so two
        concurrent upserts of a new key produce one insert and one update.
        `description` is left unchanged on update when None.
        """
        async def _upsert() -> Tuple[Setting, bool]:
            existing = await self._context.execute_query_single(
                self._select("key = ?"), (key,), self._map_row
            )
            if existing is not None:
                if description is None:
                    changed = existing.update_value(value)
                else:
                    changed = existing.update_value_and_description(value, description)
                await self._context.update(changed, self._update_row)
                return changed, False
            created = Setting.create(key, value, description or "")
            new_id = await self._context.insert(created, self._insert_row)
            return created.with_id(new_id), True

        try:
            setting, inserted = await self._context.execute_in_transaction(_upsert)
            await self._cache_written(key, setting)
        except Exception as e:
            self._handle_error(e, "Upsert")
        self._logger.info(f"Upserted setting '{key}' ({'inserted' if inserted else 'updated'})")
        return setting

    # --- Batch Operations ---

    async def get_by_keys(self, keys: Iterable[str]) -> List[Setting]:
        """
        Return the settings found for `keys`, in request order.

        Cache misses are resolved with one IN query per batch and every
        requested key is cached exactly once, found or not.
        """
        try:
            unique_keys = list(dict.fromkeys(keys))
            if not unique_keys:
                return []

            partition = await self._cache.lookup_many(unique_keys)
            resolved: Dict[str, Optional[Setting]] = dict(partition.hits)
            if partition.misses:
                found: Dict[str, Setting] = {}
                for batch in chunked(partition.misses, self._context.batch_size):
                    rows = await self._context.execute_query(
                        self._select(f"key IN ({placeholders(len(batch))})"),
                        batch,
                        self._map_row,
                    )
                    found.update((s.key, s) for s in rows)
                fills = {key: found.get(key) for key in partition.misses}
                await self._cache.put_many_if_unchanged(fills, partition.versions)
                resolved.update(fills)

            self._logger.debug(
                f"GetByKeys: {len(partition.hits)} cache hits, {len(partition.misses)} misses"
            )
            return [resolved[key] for key in unique_keys if resolved.get(key) is not None]
        except Exception as e:
            self._handle_error(e, "GetByKeys")

    async def bulk_delete(self, keys: Iterable[str]) -> int:
        """
        Delete `keys` in batches inside one transaction.

        Cache entries for every key are invalidated after the batch completes.

        Returns:
            The number of rows deleted.
        """
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return 0

        async def _delete_batches() -> int:
            deleted = 0
            for batch in chunked(unique_keys, self._context.batch_size):
                deleted += await self._context.execute_non_query(
                    f"DELETE FROM settings WHERE key IN ({placeholders(len(batch))})", batch
                )
            return deleted

        try:
            deleted = await self._context.execute_in_transaction(_delete_batches)
            await self._cache_removed(unique_keys)
        except Exception as e:
            self._handle_error(e, "BulkDelete")
        self._logger.info(f"Bulk deleted {deleted} settings")
        return deleted

    async def bulk_upsert(self, values: Mapping[str, str]) -> int:
        """
        Insert or update every key/value pair inside one transaction.

        Existing keys are looked up one batch at a time. Cache entries for all
        keys are invalidated once the whole batch has been written.

        Returns:
            The number of keys written.
        """
        items = dict(values)
        if not items:
            return 0

        async def _upsert_batches() -> int:
            written = 0
            now = utc_now()
            for batch in chunked(list(items), self._context.batch_size):
                existing = set(
                    await self._context.execute_query(
                        f"SELECT key FROM settings WHERE key IN ({placeholders(len(batch))})",
                        batch,
                        lambda row: row["key"],
                    )
                )
                for key in batch:
                    if key in existing:
                        await self._context.execute_non_query(
                            "UPDATE settings SET value = ?, timestamp = ? WHERE key = ?",
                            (items[key], now, key),
                        )
                    else:
                        await self._insert_row(Setting.create(key, items[key]))
                    written += 1
            return written

        try:
            written = await self._context.execute_in_transaction(_upsert_batches)
            await self._cache_removed(list(items))
        except Exception as e:
            self._handle_error(e, "BulkUpsert")
        self._logger.info(f"Bulk upserted {written} settings")
        return written

    # --- Queries ---

    async def get_by_prefix(self, prefix: str) -> List[Setting]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        try:
            return await self._context.execute_query(
                self._select("key LIKE ? ESCAPE '\\'"), (f"{escaped}%",), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByPrefix")

    async def get_recently_modified(self, limit: int = 10) -> List[Setting]:
        try:
            return await self._context.execute_query(
                self._select(order_by="timestamp DESC, id DESC", suffix="LIMIT ?"),
                (limit,),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetRecentlyModified")

    async def get_all_as_dict(self) -> Dict[str, str]:
        return {setting.key: setting.value for setting in await self.get_all()}
