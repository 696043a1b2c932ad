import logging
from logging import LoggerAdapter
from typing import Any, Generic, List, NoReturn, Optional, Type, TypeVar, Union

import aiosqlite

from pixmap_persistence.base.exceptions import ErrorCode
from pixmap_persistence.base.interfaces import Repository
from pixmap_persistence.sqlite.context import DatabaseContext
from pixmap_persistence.sqlite.errors import map_repository_error

T = TypeVar("T")

# Failures that point at the engine or the environment rather than at the caller's input.
_SEVERE_CODES = {
    ErrorCode.DATABASE_ERROR,
    ErrorCode.INFRASTRUCTURE_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.AUTHORIZATION_ERROR,
}


class SqliteRepositoryBase(Repository[T], Generic[T]):
    """
    Shared plumbing for the SQLite entity repositories.

    Subclasses set `table_name`, `columns` and `default_order` and implement
    `_map_row`. Every public operation wraps its body in try/except and hands
    failures to `_handle_error`, which raises the classified
    RepositoryException tagged with the operation name. Cancellation is a
    BaseException and passes through untouched.
    """

    table_name: str = ""
    columns: str = "*"
    default_order: str = "id"

    def __init__(
        self,
        context: DatabaseContext,
        entity_type: Type[T],
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        if not isinstance(context, DatabaseContext):
            raise TypeError("context must be an instance of DatabaseContext")
        self._context = context
        self._entity_type = entity_type
        self._logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{entity_type.__name__}]"
        )

    @property
    def entity_type(self) -> Type[T]:
        return self._entity_type

    @property
    def context(self) -> DatabaseContext:
        return self._context

    def _map_row(self, row: aiosqlite.Row) -> T:
        raise NotImplementedError

    def _select(self, where: str = "", order_by: Optional[str] = None, suffix: str = "") -> str:
        sql = f"SELECT {self.columns} FROM {self.table_name}"
        if where:
            sql += f" WHERE {where}"
        sql += f" ORDER BY {order_by or self.default_order}"
        if suffix:
            sql += f" {suffix}"
        return sql

    def _handle_error(self, error: Exception, operation: str) -> NoReturn:
        """Log `error` and raise it as a RepositoryException tagged with `operation`."""
        mapped = map_repository_error(error, operation, self.entity_name)
        if mapped.code in _SEVERE_CODES:
            self._logger.error(f"{operation} failed: {error}", exc_info=True)
        else:
            self._logger.warning(f"{operation} failed ({mapped.code.value}): {error}")
        if mapped is error:
            raise mapped
        raise mapped from error

    # --- Shared Reads ---

    async def get_by_id(self, id: int) -> Optional[T]:
        try:
            return await self._context.execute_query_single(
                self._select("id = ?"), (id,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetById")

    async def get_all(self) -> List[T]:
        try:
            return await self._context.execute_query(self._select(), (), self._map_row)
        except Exception as e:
            self._handle_error(e, "GetAll")

    async def exists(self, id: int) -> bool:
        try:
            return bool(
                await self._context.execute_scalar(
                    f"SELECT EXISTS(SELECT 1 FROM {self.table_name} WHERE id = ?)", (id,)
                )
            )
        except Exception as e:
            self._handle_error(e, "Exists")

    async def _delete_by_id(self, id: int, operation: str = "Delete") -> bool:
        async def _delete_row(row_id: Any) -> None:
            await self._context.execute_non_query(
                f"DELETE FROM {self.table_name} WHERE id = ?", (row_id,)
            )

        try:
            rows = await self._context.delete(id, _delete_row)
        except Exception as e:
            self._handle_error(e, operation)
        if rows == 0:
            self._logger.warning(f"{operation}: no {self.entity_name} with id {id}")
            return False
        self._logger.info(f"Deleted {self.entity_name} with id {id}")
        return True
