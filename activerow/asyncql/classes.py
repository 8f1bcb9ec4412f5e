from __future__ import annotations
from activerow.classes import (
    ActiveQuery,
    SqliteSchema,
    build_delete,
    build_insert,
    build_update,
)
from activerow.config import get_connection_string
from activerow.errors import InvalidConfigError, tert, tressa
from activerow.interfaces import RecordProtocol
from activerow.quoter import Quoter
from activerow.schema import TableSchema, schema_cache
from activerow.asyncql.interfaces import AsyncCursorProtocol
from types import TracebackType
from typing import Any, Optional, Type
import aiosqlite
import logging


logger = logging.getLogger(__name__)


class AsyncSqliteContext:
    """Async context manager for a cursor on a shared aiosqlite
        connection.
    """
    db: AsyncSqliteConnection
    cursor: aiosqlite.Cursor

    def __init__(self, db: AsyncSqliteConnection) -> None:
        self.db = db

    async def __aenter__(self) -> AsyncCursorProtocol:
        """Enter the context block and return the cursor."""
        connection = await self.db.connect()
        self.cursor = await connection.cursor()
        return self.cursor

    async def __aexit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        """Exit the context block. Commit or rollback as appropriate
            unless a transaction is in progress, then close the cursor.
        """
        if not self.db.in_transaction:
            if exc_type is not None:
                await self.db.connection.rollback()
            else:
                await self.db.connection.commit()

        await self.cursor.close()


class AsyncSqliteTransaction:
    """A transaction on an AsyncSqliteConnection. Usable as an async
        context manager: commits on normal exit and rolls back if an
        exception escapes.
    """
    db: AsyncSqliteConnection
    is_active: bool

    def __init__(self, db: AsyncSqliteConnection) -> None:
        tressa(not db.in_transaction, 'a transaction is already active')
        self.db = db
        self.is_active = True
        db.transaction = self
        logger.debug('transaction started')

    async def __aenter__(self) -> AsyncSqliteTransaction:
        return self

    async def __aexit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        if not self.is_active:
            return
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()

    async def commit(self) -> None:
        tressa(self.is_active, 'transaction is not active')
        await self.db.connection.commit()
        self._end()
        logger.debug('transaction committed')

    async def rollback(self) -> None:
        tressa(self.is_active, 'transaction is not active')
        await self.db.connection.rollback()
        self._end()
        logger.warning('transaction rolled back')

    def _end(self) -> None:
        self.is_active = False
        self.db.transaction = None


class AsyncSqliteSchema:
    """Schema provider for aiosqlite. Loading is async; the synchronous
        lookup used by records only reads the process-wide cache.
    """
    db: AsyncSqliteConnection

    def __init__(self, db: AsyncSqliteConnection) -> None:
        self.db = db

    def get_table_schema(self, name: str) -> Optional[TableSchema]:
        """Return the cached schema. Raises InvalidConfigError if it has
            not been loaded yet.
        """
        tert(type(name) is str, 'name must be str')
        if not schema_cache.has(self.db.cache_key, name):
            raise InvalidConfigError(
                f'schema for table {name} has not been loaded; await load_table_schema first'
            )
        return schema_cache.get(self.db.cache_key, name)

    async def load_table_schema(self, name: str) -> Optional[TableSchema]:
        """Return the schema, querying the database on a cache miss."""
        tert(type(name) is str, 'name must be str')
        if not schema_cache.has(self.db.cache_key, name):
            sql = f'PRAGMA table_info({self.db.quoter.quote_table_name(name)})'
            async with self.db.cursor() as cursor:
                await cursor.execute(sql)
                rows = await cursor.fetchall()
            schema_cache.set(self.db.cache_key, name, SqliteSchema.parse_table_info(name, rows))
        return schema_cache.get(self.db.cache_key, name)


class AsyncSqliteCommand:
    """Executes write statements against an AsyncSqliteConnection."""
    db: AsyncSqliteConnection

    def __init__(self, db: AsyncSqliteConnection) -> None:
        self.db = db

    async def execute(self, sql: str, params: list = []) -> int:
        """Execute a statement and return the number of affected rows."""
        tert(type(sql) is str, 'sql must be str')
        logger.debug('%s %s', sql, params)
        async with self.db.cursor() as cursor:
            await cursor.execute(sql, params)
            return cursor.rowcount

    async def insert_returning_keys(self, table: str, values: dict[str, Any]
                                    ) -> Optional[dict[str, Any]]:
        """Insert a row and return the raw primary key values stored.
            Returns None if no row was inserted. Keyless tables return
            an empty dict on success.
        """
        schema = await self.db.get_schema().load_table_schema(table)
        primary_key = schema.primary_key() if schema is not None else []
        sql, params = build_insert(table, values, self.db.quoter, primary_key)
        logger.debug('%s %s', sql, params)

        async with self.db.cursor() as cursor:
            await cursor.execute(sql, params)
            if not primary_key:
                return {} if cursor.rowcount > 0 else None
            rows = await cursor.fetchall()

        if not rows:
            return None
        return {name: value for name, value in zip(primary_key, rows[0])}

    async def update(self, table: str, values: dict[str, Any],
                     condition: dict[str, Any]) -> int:
        if not values:
            return 0
        return await self.execute(*build_update(table, values, condition, self.db.quoter))

    async def update_counters(self, table: str, counters: dict[str, int|float],
                              condition: dict[str, Any]) -> int:
        if not counters:
            return 0
        return await self.execute(*build_update(
            table, counters, condition, self.db.quoter, counters=True
        ))

    async def delete(self, table: str, condition: dict[str, Any]) -> int:
        return await self.execute(*build_delete(table, condition, self.db.quoter))


class AsyncSqliteConnection:
    """An aiosqlite database binding. The connection is opened on first
        use and must be closed with `await close()`.
    """
    connection_info: str = ''
    quoter: Quoter
    transaction: Optional[AsyncSqliteTransaction]
    connection: Optional[aiosqlite.Connection]

    def __init__(self, connection_info: str = '', table_prefix: str = '') -> None:
        """Initialize the instance. Falls back to the class attribute
            and then the CONNECTION_STRING setting when connection_info
            is empty. Raises TypeError for non-str connection_info or
            UsageError if none can be found.
        """
        if not connection_info and self.__class__.connection_info:
            connection_info = self.__class__.connection_info
        if not connection_info:
            connection_info = get_connection_string()
        tert(type(connection_info) in (str, bytes),
            'connection_info must be str or bytes')
        tressa(len(connection_info) > 0, 'cannot use with empty connection_info')
        self.connection_info = connection_info
        self.quoter = Quoter(table_prefix=table_prefix)
        self.transaction = None
        self.connection = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(connection_info='{self.connection_info}')"

    async def connect(self) -> aiosqlite.Connection:
        if self.connection is None:
            self.connection = await aiosqlite.connect(self.connection_info)
        return self.connection

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    @property
    def cache_key(self) -> str:
        if self.connection_info == ':memory:':
            return f':memory:#{id(self)}'
        return str(self.connection_info)

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None and self.transaction.is_active

    def cursor(self) -> AsyncSqliteContext:
        return AsyncSqliteContext(self)

    def get_schema(self) -> AsyncSqliteSchema:
        return AsyncSqliteSchema(self)

    def get_quoter(self) -> Quoter:
        return self.quoter

    def create_command(self) -> AsyncSqliteCommand:
        return AsyncSqliteCommand(self)

    async def begin_transaction(self) -> AsyncSqliteTransaction:
        await self.connect()
        return AsyncSqliteTransaction(self)

    async def execute_raw(self, sql: str, params: list = []) -> tuple[int, list[tuple[Any]]]:
        """Execute raw SQL against the database. Return rowcount and
            fetchall results.
        """
        tert(type(sql) is str, 'sql must be str')
        async with self.cursor() as cursor:
            await cursor.execute(sql, params)
            return (cursor.rowcount, await cursor.fetchall())


class AsyncActiveQuery(ActiveQuery):
    """Query builder for async records. Building is synchronous;
        fetching methods are coroutines.
    """
    connection: AsyncSqliteConnection

    async def _fetch(self, limit: Optional[int] = None) -> list[dict]:
        sql, params = self.to_sql(limit)
        logger.debug('%s %s', sql, params)
        async with self.connection.cursor() as cursor:
            await cursor.execute(sql, params)
            names = [d[0] for d in cursor.description]
            rows = await cursor.fetchall()
        return [dict(zip(names, row)) for row in rows]

    async def populate(self, rows: list[dict]) -> list:
        """Turn raw rows into records, or leave them as dicts. Loads the
            model's table schema first so values can be typecast.
        """
        if self.return_dicts:
            return rows
        await self.model.load_table_schema(self.connection)
        records = []
        for row in rows:
            record = self.model(connection=self.connection)
            record.populate_record(row)
            records.append(record)
        return records

    async def one(self) -> Optional[RecordProtocol|dict]:
        rows = await self._fetch(limit=1)
        if not rows:
            return None
        return (await self.populate(rows))[0]

    async def all(self) -> list[RecordProtocol|dict]:
        return await self.populate(await self._fetch())

    async def count(self) -> int:
        sql = f'SELECT COUNT(*) FROM {self._from_sql()}'
        where, params = self._where_sql()
        if where:
            sql += f' WHERE {where}'
        logger.debug('%s %s', sql, params)
        async with self.connection.cursor() as cursor:
            await cursor.execute(sql, params)
            return (await cursor.fetchone())[0]

    async def exists(self) -> bool:
        return (await self.count()) > 0
