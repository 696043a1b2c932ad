import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from logging import LoggerAdapter
from typing import (Any, AsyncGenerator, Awaitable, Callable, List, Optional,
                    Sequence, Tuple, TypeVar, Union)

# --- aiosqlite Driver Import ---
import aiosqlite

# --- Framework Imports ---
from pixmap_persistence.base.exceptions import DatabaseError, InvalidStateError
from pixmap_persistence.base.utils import bind_params, chunked
from pixmap_persistence.config import (DEFAULT_BATCH_SIZE,
                                       DEFAULT_BUSY_TIMEOUT_MS,
                                       DEFAULT_CACHE_SIZE_PAGES,
                                       PersistenceSettings)
from pixmap_persistence.sqlite.errors import ENGINE_ERRORS, classify_engine_error
from pixmap_persistence.sqlite.schema import schema_statements

# --- Type Variables ---
T = TypeVar("T")
E = TypeVar("E")
Hook = Callable[[], Awaitable[Any]]
RowMapper = Callable[[aiosqlite.Row], T]

base_logger = logging.getLogger(__name__)

# (id(context), transaction serial) pairs opened by the current task. Child
# tasks inherit a copy, so work spawned inside a transaction joins it.
_owned_transactions: ContextVar[Tuple[Tuple[int, int], ...]] = ContextVar(
    "pixmap_persistence_owned_transactions", default=()
)


class DatabaseContext:
    """
    Single choke point for SQL execution and transaction demarcation.

    Wraps one `aiosqlite.Connection` opened in autocommit mode
    (`isolation_level=None`); transactions are opened explicitly with BEGIN.
    At most one transaction is active per context. The state moves
    Idle -> InTransaction -> Idle and is guarded by an asyncio.Lock.

    Calling conventions:
        - `begin_transaction` fails fast with InvalidStateError when a
          transaction is already active; it never waits.
        - `execute_in_transaction` / `transaction()` run inline when the calling
          task already owns the active transaction (nesting is flattened, no
          nested BEGIN). A task that does not own it waits until the context
          is idle and then opens its own transaction.
        - Plain statements from a task that does not own the active
          transaction wait for it to finish instead of running inside it.
        - Only the owning task may commit or roll back; any other task gets
          InvalidStateError. `close()` rolls back whatever is left open.
        - Engine exceptions are wrapped into DatabaseError carrying the SQL
          text and a classified ErrorCode. Cancellation is never wrapped.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        cache_size_pages: int = DEFAULT_CACHE_SIZE_PAGES,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        """
        Initialize the context around an already opened connection.

        Args:
            connection: An aiosqlite.Connection opened with isolation_level=None.
            batch_size: Default chunk size for bulk operations.
            busy_timeout_ms: Value applied with PRAGMA busy_timeout.
            cache_size_pages: Value applied with PRAGMA cache_size.
            logger: Optional logger or LoggerAdapter; defaults to a module logger.
        """
        if not isinstance(connection, aiosqlite.Connection):
            raise TypeError("connection must be an instance of aiosqlite.Connection")
        if connection.isolation_level is not None:
            raise ValueError(
                "connection must be opened with isolation_level=None so that "
                "transactions are controlled explicitly"
            )
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self._conn = connection
        self._conn.row_factory = aiosqlite.Row
        self._batch_size = batch_size
        self._busy_timeout_ms = int(busy_timeout_ms)
        self._cache_size_pages = int(cache_size_pages)

        self._initialized = False
        self._init_lock = asyncio.Lock()

        self._state_lock = asyncio.Lock()
        self._in_transaction = False
        self._serial = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._commit_hooks: List[Hook] = []
        self._rollback_hooks: List[Hook] = []

        self._logger = logger or logging.getLogger(
            f"{base_logger.name}.{self.__class__.__name__}"
        )

    @classmethod
    async def open(
        cls,
        settings: Optional[PersistenceSettings] = None,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ) -> "DatabaseContext":
        """Connect to `settings.database_path` and return an initialized context."""
        settings = settings or PersistenceSettings()
        connection = await aiosqlite.connect(
            settings.database_path,
            isolation_level=None,
            timeout=settings.busy_timeout_ms / 1000,
        )
        context = cls(
            connection,
            batch_size=settings.batch_size,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_size_pages=settings.cache_size_pages,
            logger=logger,
        )
        try:
            await context.initialize()
        except BaseException:
            await connection.close()
            raise
        return context

    # --- Properties ---

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def owns_transaction(self) -> bool:
        """True when the calling task runs inside the transaction it opened."""
        return self._owns_transaction()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # --- Initialization ---

    def _pragmas(self) -> List[str]:
        return [
            "PRAGMA foreign_keys = ON",
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            "PRAGMA temp_store = MEMORY",
            f"PRAGMA cache_size = {self._cache_size_pages}",
            f"PRAGMA busy_timeout = {self._busy_timeout_ms}",
            "PRAGMA mmap_size = 268435456",
        ]

    async def initialize(self) -> None:
        """
        Apply the connection pragmas and create the schema.

        Idempotent: only the first call does any work. Raises DatabaseError if
        the engine rejects a pragma or a DDL statement.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            self._logger.info("Initializing database context...")
            for pragma in self._pragmas():
                await self._run_internal(pragma)

            foreign_keys = await self._scalar_internal("PRAGMA foreign_keys")
            if foreign_keys != 1:
                raise DatabaseError(
                    "The SQLite engine refused to enable foreign key enforcement.",
                    sql="PRAGMA foreign_keys = ON",
                )

            for statement in schema_statements():
                await self._run_internal(statement)

            # Refresh planner statistics
            await self._run_internal("PRAGMA optimize")
            self._initialized = True
            self._logger.info("Database context initialized.")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def close(self) -> None:
        """Roll back a transaction left open and close the connection."""
        if self._in_transaction:
            self._logger.error(
                "Closing database context while a transaction is still active; rolling back."
            )
            await self._rollback_quietly()
            _, rollback_hooks = await self._release()
            await self._run_hooks(rollback_hooks, "rollback")
        await self._conn.close()
        self._logger.info("Database connection closed.")

    # --- Statement Execution ---

    @asynccontextmanager
    async def _cursor(
        self, sql: str, params: Sequence[Any] = (), internal: bool = False
    ) -> AsyncGenerator[aiosqlite.Cursor, None]:
        """
        Execute `sql` and yield its cursor, wrapping engine failures.

        Non-internal statements wait for a transaction owned by another task
        to finish. There must be no await between that wait and handing the
        statement to the driver, otherwise a BEGIN issued by another task
        could be queued ahead of it.
        """
        if not internal:
            await self._ensure_initialized()
            while self._in_transaction and not self._owns_transaction():
                await self._idle.wait()
        bound = bind_params(params)
        self._logger.debug(f"Executing SQL: {sql} | params: {bound}")
        try:
            async with self._conn.execute(sql, bound) as cursor:
                yield cursor
        except ENGINE_ERRORS as e:
            kind = classify_engine_error(e)
            self._logger.warning(f"SQL failed ({kind.value}): {e} | SQL: {sql}")
            raise DatabaseError(
                f"Failed to execute SQL: {e}", sql=sql, params=bound, kind=kind
            ) from e

    async def _run_internal(self, sql: str) -> None:
        async with self._cursor(sql, internal=True):
            pass

    async def _scalar_internal(self, sql: str) -> Any:
        async with self._cursor(sql, internal=True) as cursor:
            row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def execute_non_query(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        async with self._cursor(sql, params) as cursor:
            return cursor.rowcount

    async def execute_scalar(
        self,
        sql: str,
        params: Sequence[Any] = (),
        mapper: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """Return the first column of the first row (mapped if `mapper` is given), or None."""
        async with self._cursor(sql, params) as cursor:
            row = await cursor.fetchone()
        if row is None or row[0] is None:
            return None
        return mapper(row[0]) if mapper is not None else row[0]

    async def execute_query(
        self, sql: str, params: Sequence[Any], row_mapper: RowMapper[T]
    ) -> List[T]:
        async with self._cursor(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [row_mapper(row) for row in rows]

    async def execute_query_single(
        self, sql: str, params: Sequence[Any], row_mapper: RowMapper[T]
    ) -> Optional[T]:
        async with self._cursor(sql, params) as cursor:
            row = await cursor.fetchone()
        return row_mapper(row) if row is not None else None

    async def count(self, sql: str, params: Sequence[Any] = ()) -> int:
        return int(await self.execute_scalar(sql, params) or 0)

    # --- Entity Helpers ---

    async def insert(self, entity: E, fn: Callable[[E], Awaitable[Any]]) -> int:
        """Run `fn(entity)` and return the rowid it inserted."""

        async def _insert() -> int:
            await fn(entity)
            return int(await self.execute_scalar("SELECT last_insert_rowid()") or 0)

        return await self.execute_in_transaction(_insert)

    async def update(self, entity: E, fn: Callable[[E], Awaitable[Any]]) -> int:
        """Run `fn(entity)` and return the number of rows its last statement changed."""
        return await self._run_and_count_changes(entity, fn)

    async def delete(self, entity: E, fn: Callable[[E], Awaitable[Any]]) -> int:
        return await self._run_and_count_changes(entity, fn)

    async def _run_and_count_changes(
        self, entity: E, fn: Callable[[E], Awaitable[Any]]
    ) -> int:
        async def _run() -> int:
            await fn(entity)
            return int(await self.execute_scalar("SELECT changes()") or 0)

        return await self.execute_in_transaction(_run)

    async def bulk_insert(
        self,
        entities: Sequence[E],
        fn: Callable[[E], Awaitable[Any]],
        batch_size: Optional[int] = None,
    ) -> int:
        """
        Insert `entities` in chunks of `batch_size` inside one transaction.

        Either every chunk is committed or, if any `fn` call fails, everything
        applied so far is rolled back and the error is re-raised.

        Returns:
            The number of entities processed.
        """
        return await self._bulk("insert", entities, fn, batch_size)

    async def bulk_update(
        self,
        entities: Sequence[E],
        fn: Callable[[E], Awaitable[Any]],
        batch_size: Optional[int] = None,
    ) -> int:
        return await self._bulk("update", entities, fn, batch_size)

    async def _bulk(
        self,
        label: str,
        entities: Sequence[E],
        fn: Callable[[E], Awaitable[Any]],
        batch_size: Optional[int],
    ) -> int:
        size = batch_size if batch_size is not None else self._batch_size
        batches = chunked(entities, size)
        if not batches:
            return 0

        async def _apply_batches() -> int:
            processed = 0
            for number, batch in enumerate(batches, start=1):
                for entity in batch:
                    await fn(entity)
                processed += len(batch)
                self._logger.debug(
                    f"Bulk {label}: batch {number}/{len(batches)} applied ({processed} rows so far)"
                )
            return processed

        processed = await self.execute_in_transaction(_apply_batches)
        self._logger.info(f"Bulk {label} processed {processed} entities in {len(batches)} batches.")
        return processed

    # --- Transaction Management ---

    def _owns_transaction(self) -> bool:
        return self._in_transaction and (id(self), self._serial) in _owned_transactions.get()

    def _claim(self) -> None:
        # Caller holds the state lock.
        self._in_transaction = True
        self._idle.clear()
        self._serial += 1
        key = id(self)
        owned = tuple(t for t in _owned_transactions.get() if t[0] != key)
        _owned_transactions.set(owned + ((key, self._serial),))

    async def _release(self) -> Tuple[List[Hook], List[Hook]]:
        async with self._state_lock:
            self._in_transaction = False
            commit_hooks, rollback_hooks = self._commit_hooks, self._rollback_hooks
            self._commit_hooks, self._rollback_hooks = [], []
            self._idle.set()
        return commit_hooks, rollback_hooks

    async def _require_active(self, action: str) -> None:
        async with self._state_lock:
            if not self._in_transaction:
                raise InvalidStateError(f"Cannot {action}: no transaction is active.")
            if not self._owns_transaction():
                raise InvalidStateError(
                    f"Cannot {action}: the active transaction belongs to another task."
                )

    async def _run_control(self, sql: str) -> None:
        """
        Run BEGIN, COMMIT or ROLLBACK so that cancelling the caller cannot abandon it.

        The statement keeps running when the caller is cancelled and the caller
        waits for its outcome. A CancelledError raised here therefore means the
        statement succeeded; a DatabaseError means it failed.
        """
        statement = asyncio.ensure_future(self._run_internal(sql))
        try:
            await asyncio.shield(statement)
        except asyncio.CancelledError:
            while not statement.done():
                try:
                    await asyncio.wait([statement])
                except asyncio.CancelledError:
                    continue
            statement.result()
            raise

    async def _issue_begin(self) -> None:
        try:
            await self._run_control("BEGIN")
        except asyncio.CancelledError:
            # BEGIN reached the engine before the cancellation took effect.
            try:
                await self._rollback_quietly()
            finally:
                await self._release()
            raise
        except BaseException:
            await self._release()
            raise
        self._logger.debug(f"Transaction {self._serial} started.")

    async def begin_transaction(self) -> None:
        """
        Open a transaction owned by the calling task.

        Raises:
            InvalidStateError: If a transaction is already active. The active
                transaction is left untouched.
            DatabaseError: If the engine rejects BEGIN; the context is idle again.
        """
        await self._ensure_initialized()
        async with self._state_lock:
            if self._in_transaction:
                raise InvalidStateError("A transaction is already active on this database context.")
            self._claim()
        await self._issue_begin()

    async def commit_transaction(self) -> None:
        """
        Commit the active transaction.

        The context returns to Idle whether or not COMMIT succeeds. If COMMIT
        fails, a ROLLBACK is attempted so the connection is not left inside
        an open engine transaction.
        """
        await self._require_active("commit")
        try:
            await self._run_control("COMMIT")
        except asyncio.CancelledError:
            commit_hooks, _ = await self._release()
            self._logger.debug("Transaction committed while the caller was being cancelled.")
            await self._run_hooks(commit_hooks, "commit")
            raise
        except BaseException:
            await self._rollback_quietly()
            _, rollback_hooks = await self._release()
            await self._run_hooks(rollback_hooks, "rollback")
            raise
        commit_hooks, _ = await self._release()
        self._logger.debug("Transaction committed.")
        await self._run_hooks(commit_hooks, "commit")

    async def rollback_transaction(self) -> None:
        await self._require_active("rollback")
        try:
            await self._run_control("ROLLBACK")
            self._logger.debug("Transaction rolled back.")
        finally:
            _, rollback_hooks = await self._release()
            await self._run_hooks(rollback_hooks, "rollback")

    async def _rollback_quietly(self) -> None:
        try:
            await self._run_control("ROLLBACK")
        except DatabaseError as e:
            self._logger.warning(f"Quiet ROLLBACK failed: {e}")

    async def _rollback_safely(self) -> None:
        try:
            await self.rollback_transaction()
        except DatabaseError as e:
            self._logger.warning(f"Rollback failed while unwinding an error: {e}")

    async def _acquire(self) -> None:
        while True:
            async with self._state_lock:
                if not self._in_transaction:
                    self._claim()
                    break
            await self._idle.wait()
        await self._issue_begin()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator["DatabaseContext", None]:
        """
        Async context manager form of `execute_in_transaction`.

        Commits when the block exits normally and rolls back on any
        exception, cancellation included, before re-raising it unchanged.
        """
        if self._owns_transaction():
            yield self
            return

        await self._ensure_initialized()
        await self._acquire()
        try:
            yield self
        except BaseException:
            if self._owns_transaction():
                await self._rollback_safely()
            raise
        if self._owns_transaction():
            await self.commit_transaction()

    async def execute_in_transaction(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` inside a transaction and return its result.

        Runs inline when the calling task already owns the active transaction.
        Otherwise opens one, commits on success, and rolls back and re-raises
        the original exception on failure.
        """
        async with self.transaction():
            return await operation()

    # --- Commit / Rollback Callbacks ---

    async def on_commit(self, callback: Hook) -> None:
        """Run `callback` once the caller's transaction commits, or now if there is none."""
        if self._owns_transaction():
            self._commit_hooks.append(callback)
        else:
            await callback()

    async def on_rollback(self, callback: Hook) -> None:
        """Run `callback` if the caller's transaction rolls back. No-op outside a transaction."""
        if self._owns_transaction():
            self._rollback_hooks.append(callback)

    async def _run_hooks(self, hooks: List[Hook], phase: str) -> None:
        for hook in hooks:
            try:
                await hook()
            except Exception:
                # The transaction outcome is final; report the callback failure only.
                self._logger.error(f"Post-{phase} callback failed", exc_info=True)
