from __future__ import annotations
from activerow.errors import InvalidConfigError, StaleRecordError, tert, vert, tressa
from activerow.interfaces import TableSchemaProtocol
from activerow.record import BaseActiveRecord
from activerow.transactions import OP_DELETE, OP_INSERT, OP_UPDATE, async_transactional
from activerow.asyncql.classes import AsyncActiveQuery
from activerow.asyncql.interfaces import AsyncConnectionProtocol
from typing import Any, Iterable, Optional, Type
import logging


logger = logging.getLogger(__name__)


class AsyncActiveRecord(BaseActiveRecord):
    """Record bound to an async connection, e.g. AsyncSqliteConnection.
        Attribute access is synchronous and needs the table schema in
        the cache: await `load_table_schema()` (or build instances with
        `create`) before calling `set` on a fresh instance.
    """
    query_class: Type[AsyncActiveQuery] = AsyncActiveQuery

    @classmethod
    async def load_table_schema(cls, connection: AsyncConnectionProtocol = None
                                ) -> TableSchemaProtocol:
        """Load the table schema into the cache and return it. Raises
            InvalidConfigError if the table does not exist.
        """
        db = connection if connection is not None else cls.connection
        tressa(db is not None, f'no connection configured for {cls.__name__}')
        schema = await db.get_schema().load_table_schema(cls.table_name())
        if schema is None:
            raise InvalidConfigError(f'The table does not exist: {cls.table_name()}')
        return schema

    @classmethod
    async def create(cls, data: dict = None, /, *,
                     connection: AsyncConnectionProtocol = None) -> AsyncActiveRecord:
        """Load the schema, then return a new instance with data set."""
        await cls.load_table_schema(connection)
        return cls(data, connection=connection)

    # finders
    @classmethod
    def find(cls, connection: AsyncConnectionProtocol = None) -> AsyncActiveQuery:
        """Returns a query for the class."""
        return cls.query_class(cls, connection)

    @classmethod
    async def find_by_condition(cls, condition: Any,
                                connection: AsyncConnectionProtocol = None) -> AsyncActiveQuery:
        """Returns a query restricted by condition: a primary key value,
            a list of them, or a condition mapping that is filtered
            against the table columns.
        """
        query = cls.find(connection)
        prototype = await cls.create(connection=query.connection)
        return query.where(prototype._find_condition(condition, query))

    @classmethod
    async def find_one(cls, condition: Any,
                       connection: AsyncConnectionProtocol = None) -> Optional[AsyncActiveRecord]:
        return await (await cls.find_by_condition(condition, connection)).one()

    @classmethod
    async def find_all(cls, condition: Any,
                       connection: AsyncConnectionProtocol = None) -> list[AsyncActiveRecord]:
        return await (await cls.find_by_condition(condition, connection)).all()

    @classmethod
    async def update_all(cls, values: dict, condition: dict = None,
                         connection: AsyncConnectionProtocol = None) -> int:
        """Update every row matching the filtered condition and return
            the number updated. Raises ValueError for non-column values.
        """
        tert(isinstance(values, dict), 'values must be dict')
        prototype = await cls.create(connection=connection)
        columns = prototype.attributes()
        for key in values:
            vert(key in columns, f'unrecognized column: {key}')
        condition = prototype.filter_condition(condition or {})
        return await prototype.db.create_command().update(cls.table_name(), values, condition)

    @classmethod
    async def update_all_counters(cls, counters: dict, condition: dict = None,
                                  connection: AsyncConnectionProtocol = None) -> int:
        tert(isinstance(counters, dict), 'counters must be dict')
        prototype = await cls.create(connection=connection)
        columns = prototype.attributes()
        for key in counters:
            vert(key in columns, f'unrecognized column: {key}')
        condition = prototype.filter_condition(condition or {})
        return await prototype.db.create_command().update_counters(
            cls.table_name(), counters, condition
        )

    @classmethod
    async def delete_all(cls, condition: dict = None,
                         connection: AsyncConnectionProtocol = None) -> int:
        prototype = await cls.create(connection=connection)
        condition = prototype.filter_condition(condition or {})
        return await prototype.db.create_command().delete(cls.table_name(), condition)

    def instantiate_query(self) -> AsyncActiveQuery:
        return self.query_class(self.__class__, self.db)

    # persistence
    async def insert(self, names: Iterable[str] = None, /, *,
                     suppress_events: bool = False) -> bool:
        """Insert the dirty attributes (limited to names if given) as a
            new row. Return False if the database did not accept it, in
            which case the record is unchanged.
        """
        await self.load_table_schema(self.db)
        if not suppress_events:
            self.invoke_hooks('before_insert', self, names)
        if self.is_transactional(OP_INSERT):
            result = await async_transactional(self.db, lambda: self._insert_internal(names))
        else:
            result = await self._insert_internal(names)
        if not suppress_events:
            self.invoke_hooks('after_insert', self, result)
        return result

    async def _insert_internal(self, names: Iterable[str] = None) -> bool:
        values = self.dirty_attributes(names)
        primary_keys = await self.db.create_command().insert_returning_keys(
            self.table_name(), values
        )

        if primary_keys is None:
            logger.debug('insert into %s was not accepted', self.table_name())
            return False

        for name, value in self._committed_keys(primary_keys).items():
            self.set(name, value)
            values[name] = value

        self.store.commit(values)
        return True

    async def update(self, names: Iterable[str] = None, /, *,
                     suppress_events: bool = False) -> int:
        """Write the dirty attributes to the row and return the number
            of rows affected. Raises StaleRecordError on an optimistic
            lock conflict and UsageError for new records.
        """
        await self.load_table_schema(self.db)
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        if not suppress_events:
            self.invoke_hooks('before_update', self, names)
        if self.is_transactional(OP_UPDATE):
            result = await async_transactional(self.db, lambda: self._update_internal(names))
        else:
            result = await self._update_internal(names)
        if not suppress_events:
            self.invoke_hooks('after_update', self, result)
        return result

    async def _update_internal(self, names: Iterable[str] = None) -> int:
        values = self.dirty_attributes(names)
        if not values:
            return 0

        condition = self.get_old_primary_key(True)
        lock = self._lock_condition(condition)
        if lock is not None:
            values[lock] = (self.get(lock) or 0) + 1

        rows = await self.db.create_command().update(self.table_name(), values, condition)

        if lock is not None and not rows:
            logger.warning('optimistic lock conflict on %s %s', self.table_name(), condition)
            raise StaleRecordError('The object being updated is outdated.')

        for name, value in values.items():
            self.set(name, value)
            self.store.set_old(name, value)
        return rows

    async def save(self, names: Iterable[str] = None, /, *,
                   suppress_events: bool = False) -> bool:
        """Insert if new, else update."""
        await self.load_table_schema(self.db)
        if self.is_new():
            return await self.insert(names, suppress_events=suppress_events)
        await self.update(names, suppress_events=suppress_events)
        return True

    async def update_attributes(self, values: dict[str, Any]) -> int:
        """Set the given values and write only those to the row."""
        tert(isinstance(values, dict), 'values must be dict')
        await self.load_table_schema(self.db)
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        self.set_attributes(values)
        dirty = self.dirty_attributes(values.keys())
        if not dirty:
            return 0
        rows = await self.db.create_command().update(
            self.table_name(), dirty, self.get_old_primary_key(True)
        )
        for name, value in dirty.items():
            self.store.set_old(name, value)
        return rows

    async def update_counters(self, counters: dict[str, int|float]) -> bool:
        """Atomically add each counter to its column in the row, then to
            the in-memory value. Return False if the row was not found.
        """
        tert(isinstance(counters, dict), 'counters must be dict')
        await self.load_table_schema(self.db)
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        rows = await self.db.create_command().update_counters(
            self.table_name(), counters, self.get_old_primary_key(True)
        )
        if not rows:
            return False
        for name, value in counters.items():
            value += self.get(name) or 0
            self.set(name, value)
            self.store.set_old(name, value)
        return True

    async def delete(self, /, *, suppress_events: bool = False) -> int:
        """Delete the row and mark the record new. Return the number of
            rows deleted.
        """
        await self.load_table_schema(self.db)
        tressa(not self.is_new(), 'cannot delete a record that has not been inserted')
        self._require_primary_key()
        if not suppress_events:
            self.invoke_hooks('before_delete', self)
        if self.is_transactional(OP_DELETE):
            result = await async_transactional(self.db, self._delete_internal)
        else:
            result = await self._delete_internal()
        if not suppress_events:
            self.invoke_hooks('after_delete', self, result)
        return result

    async def _delete_internal(self) -> int:
        condition = self.get_old_primary_key(True)
        lock = self._lock_condition(condition)
        result = await self.db.create_command().delete(self.table_name(), condition)

        if lock is not None and not result:
            logger.warning('optimistic lock conflict on %s %s', self.table_name(), condition)
            raise StaleRecordError('The object being deleted is outdated.')

        self.store.commit(None)
        return result

    async def refresh(self, /, *, suppress_events: bool = False) -> bool:
        """Reload the attributes from the row with the current primary
            key. Return False, leaving the record untouched, if the row
            does not exist.
        """
        await self.load_table_schema(self.db)
        self._require_primary_key()
        query = self.instantiate_query()
        table = query.primary_table()
        condition = {}

        # qualify the columns in case the query joins other tables
        for name, value in self.get_primary_key(True).items():
            if value is None:
                return False
            condition[f'{table}.{name}'] = value

        query.where(condition)
        record = await query.one()
        if record is None:
            logger.debug('refresh of %s found no row', self.table_name())
            return False

        self.store.reset(
            {name: record.get(name) for name in self.attributes()},
            record.get_old_attributes(),
        )
        if not suppress_events:
            self.invoke_hooks('after_refresh', self)
        return True
