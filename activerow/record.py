from __future__ import annotations
from .attributes import AttributeStore
from .classes import ActiveQuery
from .conditions import ConditionFilter
from .errors import InvalidConfigError, StaleRecordError, tert, vert, tressa
from .interfaces import ConnectionProtocol, QueryProtocol, TableSchemaProtocol
from .relations import has_many, has_one
from .transactions import OP_DELETE, OP_INSERT, OP_UPDATE, transactional
from typing import Any, Callable, Iterable, Optional, Type
import logging
import packify
import re


logger = logging.getLogger(__name__)


def _pascalcase_to_snake_case(name: str) -> str:
    """Simple function to turn PascalCase to snake_case.
        Borrowed from https://stackoverflow.com/a/1176023
    """
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


class BaseActiveRecord:
    """Maps one table row to an in-memory object. Holds the attribute
        state and everything that does not touch the database directly;
        ActiveRecord and AsyncActiveRecord add the I/O.
    """
    table: str = ''
    connection: Optional[ConnectionProtocol] = None
    query_class: Type[QueryProtocol] = None
    optimistic_lock: Optional[str] = None
    transactional_operations: int = 0
    db: ConnectionProtocol
    _store: Optional[AttributeStore]
    _event_hooks: dict[str, list[Callable]] = {}

    def __init__(self, data: dict = None, /, *,
                 connection: ConnectionProtocol = None) -> None:
        """Initialize the instance, setting any supplied data. Raises
            UsageError if no connection is configured, AttributeError
            for data keys that are not columns.
        """
        self.db = connection if connection is not None else self.__class__.connection
        tressa(self.db is not None, f'no connection configured for {self.__class__.__name__}')
        self._store = None

        if data:
            tert(isinstance(data, dict), 'data must be dict')
            for name, value in data.items():
                self.set(name, value)

    def __repr__(self) -> str:
        """Pretty str representation."""
        store = self._store
        return f"{self.__class__.__name__}(table='{self.table_name()}', " + \
            f"attributes={dict(store.current) if store else {}}, " + \
            f"is_new={store.is_new() if store else True})"

    @classmethod
    def table_name(cls) -> str:
        """The table name, resolved once per class: the table class
            attribute, or the snake_case class name.
        """
        if '_table_name' not in cls.__dict__:
            cls._table_name = cls.table or _pascalcase_to_snake_case(cls.__name__)
        return cls.__dict__['_table_name']

    # hooks
    @classmethod
    def add_hook(cls, event: str, hook: Callable):
        """Add the hook for the event."""
        if '_event_hooks' not in cls.__dict__:
            cls._event_hooks = {} # give each class its own event hooks dict
        if event not in cls._event_hooks:
            cls._event_hooks[event] = []
        if hook not in cls._event_hooks[event]:
            cls._event_hooks[event].append(hook)

    @classmethod
    def remove_hook(cls, event: str, hook: Callable):
        """Remove the hook for the event."""
        if '_event_hooks' not in cls.__dict__:
            return
        if hook in cls._event_hooks.get(event, []):
            cls._event_hooks[event].remove(hook)

    @classmethod
    def clear_hooks(cls, event: str = None):
        """Remove all hooks for an event. If no event is specified,
            clear all hooks for all events.
        """
        if '_event_hooks' not in cls.__dict__:
            return
        if event is None:
            return cls._event_hooks.clear()
        cls._event_hooks.pop(event, None)

    @classmethod
    def invoke_hooks(cls, event: str, *args, **kwargs):
        """Invoke the hooks for the event, passing cls, *args, and
            **kwargs.
        """
        for hook in cls._event_hooks.get(event, []):
            hook(cls, *args, **kwargs)

    # schema
    def get_table_schema(self) -> TableSchemaProtocol:
        """Returns the schema of the table. Raises InvalidConfigError if
            the table does not exist.
        """
        schema = self.db.get_schema().get_table_schema(self.table_name())
        if schema is None:
            raise InvalidConfigError(f'The table does not exist: {self.table_name()}')
        return schema

    def attributes(self) -> list[str]:
        return self.get_table_schema().column_names()

    def primary_key(self) -> list[str]:
        return self.get_table_schema().primary_key()

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes()

    @property
    def store(self) -> AttributeStore:
        if self._store is None:
            self._store = AttributeStore(self.attributes())
        return self._store

    # attributes
    def get(self, name: str) -> Any:
        return self.store.get(name)

    def set(self, name: str, value: Any) -> None:
        """Set the attribute. Raises AttributeError if name is not a
            column of the table.
        """
        self.store.set(name, value)

    def has(self, name: str) -> bool:
        return self.store.has(name)

    def get_old(self, name: str) -> Any:
        return self.store.get_old(name)

    def get_attributes(self, names: Iterable[str] = None,
                       exclude: Iterable[str] = ()) -> dict[str, Any]:
        """Return the current values of names (default all columns),
            with unset ones as None.
        """
        names = self.attributes() if names is None else names
        return {n: self.get(n) for n in names if n not in exclude}

    def set_attributes(self, values: dict[str, Any]) -> None:
        tert(isinstance(values, dict), 'values must be dict')
        for name, value in values.items():
            self.set(name, value)

    def get_old_attributes(self) -> Optional[dict[str, Any]]:
        old = self.store.old
        return None if old is None else dict(old)

    def is_new(self) -> bool:
        return self.store.is_new()

    def set_new(self, value: bool) -> None:
        """Mark the record as new (never persisted) or as persisted with
            its current values.
        """
        self.store.commit(None if value else dict(self.store.current))

    def dirty_attributes(self, names: Iterable[str] = None) -> dict[str, Any]:
        return self.store.dirty(names)

    def is_attribute_changed(self, name: str, identical: bool = True) -> bool:
        return self.store.is_changed(name, identical)

    def mark_attribute_dirty(self, name: str) -> None:
        self.store.mark_dirty(name)

    def get_primary_key(self, as_dict: bool = False) -> Any:
        """Current primary key value. A scalar for single-column keys
            unless as_dict is True.
        """
        keys = self.primary_key()
        if not as_dict and len(keys) == 1:
            return self.get(keys[0])
        return {k: self.get(k) for k in keys}

    def get_old_primary_key(self, as_dict: bool = False) -> Any:
        """Primary key value as last persisted."""
        keys = self.primary_key()
        if not as_dict and len(keys) == 1:
            return self.get_old(keys[0])
        return {k: self.get_old(k) for k in keys}

    def load_default_values(self, skip_if_set: bool = True) -> BaseActiveRecord:
        """Set schema default values. With skip_if_set, only attributes
            that are None are filled. Return self in monad pattern.
        """
        for name, column in self.get_table_schema().columns().items():
            if column.default_value is not None and (not skip_if_set or self.get(name) is None):
                self.set(name, column.default_value)
        return self

    def populate_record(self, row: dict) -> None:
        """Hydrate from a raw database row. Values of known columns are
            typecast; unknown keys pass through. The record becomes
            clean and not new.
        """
        tert(isinstance(row, dict), 'row must be dict')
        columns = self.get_table_schema().columns()
        self.store.populate({
            name: columns[name].type_cast(value) if name in columns else value
            for name, value in row.items()
        })
        self.invoke_hooks('after_populate', self)

    # conditions
    def filter_condition(self, condition: dict, aliases: Iterable[str] = ()) -> dict:
        """Validate a caller-supplied condition against the columns of
            the table and its aliases. Raises InvalidArgumentError for
            any str key that is not a column name.
        """
        return ConditionFilter(
            self.table_name(), self.attributes(), self.db.get_quoter()
        ).filter(condition, aliases)

    def filter_valid_aliases(self, query: QueryProtocol) -> list[str]:
        return ConditionFilter.valid_aliases(query)

    def _find_condition(self, condition: Any, query: QueryProtocol) -> dict:
        """Turn a find argument into a condition mapping. Scalars and
            lists are primary key values; dicts are filtered.
        """
        if isinstance(condition, dict):
            return self.filter_condition(condition, self.filter_valid_aliases(query))
        primary_key = self.primary_key()
        if not primary_key:
            raise InvalidConfigError(f'{self.__class__.__name__} must have a primary key.')
        column = primary_key[0]
        if getattr(query, 'joins', None):
            column = f'{query.primary_table()}.{column}'
        if isinstance(condition, (list, tuple, set)):
            return {column: list(condition)}
        return {column: condition}

    def _require_primary_key(self) -> None:
        tressa(len(self.primary_key()) > 0,
               f'{self.__class__.__name__} must have a primary key')

    def _committed_keys(self, primary_keys: dict[str, Any]) -> dict[str, Any]:
        columns = self.get_table_schema().columns()
        return {
            name: columns[name].type_cast(value) if name in columns else value
            for name, value in primary_keys.items()
        }

    def _lock_condition(self, condition: dict) -> Optional[str]:
        lock = self.optimistic_lock
        if lock is not None:
            condition[lock] = self.get(lock)
        return lock

    def is_transactional(self, operation: int) -> bool:
        return bool(self.transactional_operations & operation)

    # relations
    def has_one(self, related_class: Type[BaseActiveRecord], link: dict[str, str]) -> QueryProtocol:
        return has_one(self, related_class, link)

    def has_many(self, related_class: Type[BaseActiveRecord], link: dict[str, str]) -> QueryProtocol:
        return has_many(self, related_class, link)

    # identity
    @staticmethod
    def encode_value(val: Any) -> str:
        """Encode a value for hashing. Uses the pack function from
            packify.
        """
        return packify.pack(val).hex()

    def equals(self, other: Any) -> bool:
        """True if both records are persisted rows of the same table
            with the same persisted primary key.
        """
        if not isinstance(other, BaseActiveRecord):
            return False
        if self.is_new() or other.is_new():
            return False
        return self.table_name() == other.table_name() and \
            self.get_old_primary_key(True) == other.get_old_primary_key(True)

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        return self.equals(other)

    def __hash__(self) -> int:
        """New records hash by identity; persisted ones by table and
            primary key. Raises TypeError for unencodable key values.
        """
        if self.is_new():
            return object.__hash__(self)
        data = self.encode_value([self.table_name(), self.get_old_primary_key(True)])
        return hash(bytes(data, 'utf-8'))


class ActiveRecord(BaseActiveRecord):
    """Record bound to a synchronous connection, e.g. SqliteConnection."""
    query_class: Type[ActiveQuery] = ActiveQuery

    # finders
    @classmethod
    def find(cls, connection: ConnectionProtocol = None) -> ActiveQuery:
        """Returns a query for the class."""
        return cls.query_class(cls, connection)

    @classmethod
    def find_by_condition(cls, condition: Any, connection: ConnectionProtocol = None) -> ActiveQuery:
        """Returns a query restricted by condition: a primary key value,
            a list of them, or a condition mapping that is filtered
            against the table columns.
        """
        query = cls.find(connection)
        prototype = cls(connection=query.connection)
        return query.where(prototype._find_condition(condition, query))

    @classmethod
    def find_one(cls, condition: Any, connection: ConnectionProtocol = None) -> Optional[ActiveRecord]:
        return cls.find_by_condition(condition, connection).one()

    @classmethod
    def find_all(cls, condition: Any, connection: ConnectionProtocol = None) -> list[ActiveRecord]:
        return cls.find_by_condition(condition, connection).all()

    @classmethod
    def update_all(cls, values: dict, condition: dict = None,
                   connection: ConnectionProtocol = None) -> int:
        """Update every row matching the filtered condition and return
            the number updated. Raises ValueError for non-column values.
        """
        tert(isinstance(values, dict), 'values must be dict')
        prototype = cls(connection=connection)
        columns = prototype.attributes()
        for key in values:
            vert(key in columns, f'unrecognized column: {key}')
        condition = prototype.filter_condition(condition or {})
        return prototype.db.create_command().update(cls.table_name(), values, condition)

    @classmethod
    def update_all_counters(cls, counters: dict, condition: dict = None,
                            connection: ConnectionProtocol = None) -> int:
        """Add each counter to its column on every matching row."""
        tert(isinstance(counters, dict), 'counters must be dict')
        prototype = cls(connection=connection)
        columns = prototype.attributes()
        for key in counters:
            vert(key in columns, f'unrecognized column: {key}')
        condition = prototype.filter_condition(condition or {})
        return prototype.db.create_command().update_counters(cls.table_name(), counters, condition)

    @classmethod
    def delete_all(cls, condition: dict = None, connection: ConnectionProtocol = None) -> int:
        """Delete every row matching the filtered condition."""
        prototype = cls(connection=connection)
        condition = prototype.filter_condition(condition or {})
        return prototype.db.create_command().delete(cls.table_name(), condition)

    def instantiate_query(self) -> ActiveQuery:
        return self.query_class(self.__class__, self.db)

    # persistence
    def insert(self, names: Iterable[str] = None, /, *, suppress_events: bool = False) -> bool:
        """Insert the dirty attributes (limited to names if given) as a
            new row. Return False if the database did not accept it, in
            which case the record is unchanged.
        """
        if not suppress_events:
            self.invoke_hooks('before_insert', self, names)
        if self.is_transactional(OP_INSERT):
            result = transactional(self.db, lambda: self._insert_internal(names))
        else:
            result = self._insert_internal(names)
        if not suppress_events:
            self.invoke_hooks('after_insert', self, result)
        return result

    def _insert_internal(self, names: Iterable[str] = None) -> bool:
        values = self.dirty_attributes(names)
        primary_keys = self.db.create_command().insert_returning_keys(self.table_name(), values)

        if primary_keys is None:
            logger.debug('insert into %s was not accepted', self.table_name())
            return False

        for name, value in self._committed_keys(primary_keys).items():
            self.set(name, value)
            values[name] = value

        self.store.commit(values)
        return True

    def update(self, names: Iterable[str] = None, /, *, suppress_events: bool = False) -> int:
        """Write the dirty attributes (limited to names if given) to the
            row and return the number of rows affected. Raises
            StaleRecordError on an optimistic lock conflict and
            UsageError for new records.
        """
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        if not suppress_events:
            self.invoke_hooks('before_update', self, names)
        if self.is_transactional(OP_UPDATE):
            result = transactional(self.db, lambda: self._update_internal(names))
        else:
            result = self._update_internal(names)
        if not suppress_events:
            self.invoke_hooks('after_update', self, result)
        return result

    def _update_internal(self, names: Iterable[str] = None) -> int:
        values = self.dirty_attributes(names)
        if not values:
            return 0

        condition = self.get_old_primary_key(True)
        lock = self._lock_condition(condition)
        if lock is not None:
            values[lock] = (self.get(lock) or 0) + 1

        rows = self.db.create_command().update(self.table_name(), values, condition)

        if lock is not None and not rows:
            logger.warning('optimistic lock conflict on %s %s', self.table_name(), condition)
            raise StaleRecordError('The object being updated is outdated.')

        for name, value in values.items():
            self.set(name, value)
            self.store.set_old(name, value)
        return rows

    def save(self, names: Iterable[str] = None, /, *, suppress_events: bool = False) -> bool:
        """Insert if new, else update. Return whether the row was
            written (an update with nothing dirty counts as written).
        """
        if self.is_new():
            return self.insert(names, suppress_events=suppress_events)
        self.update(names, suppress_events=suppress_events)
        return True

    def update_attributes(self, values: dict[str, Any]) -> int:
        """Set the given values and write only those to the row. Return
            the number of rows affected.
        """
        tert(isinstance(values, dict), 'values must be dict')
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        self.set_attributes(values)
        dirty = self.dirty_attributes(values.keys())
        if not dirty:
            return 0
        rows = self.db.create_command().update(
            self.table_name(), dirty, self.get_old_primary_key(True)
        )
        for name, value in dirty.items():
            self.store.set_old(name, value)
        return rows

    def update_counters(self, counters: dict[str, int|float]) -> bool:
        """Atomically add each counter to its column in the row, then to
            the in-memory value. Return False if the row was not found.
        """
        tert(isinstance(counters, dict), 'counters must be dict')
        tressa(not self.is_new(), 'cannot update a record that has not been inserted')
        self._require_primary_key()
        rows = self.db.create_command().update_counters(
            self.table_name(), counters, self.get_old_primary_key(True)
        )
        if not rows:
            return False
        for name, value in counters.items():
            value += self.get(name) or 0
            self.set(name, value)
            self.store.set_old(name, value)
        return True

    def delete(self, /, *, suppress_events: bool = False) -> int:
        """Delete the row and mark the record new. Return the number of
            rows deleted. Raises StaleRecordError on an optimistic lock
            conflict and UsageError for new records.
        """
        tressa(not self.is_new(), 'cannot delete a record that has not been inserted')
        self._require_primary_key()
        if not suppress_events:
            self.invoke_hooks('before_delete', self)
        if self.is_transactional(OP_DELETE):
            result = transactional(self.db, self._delete_internal)
        else:
            result = self._delete_internal()
        if not suppress_events:
            self.invoke_hooks('after_delete', self, result)
        return result

    def _delete_internal(self) -> int:
        condition = self.get_old_primary_key(True)
        lock = self._lock_condition(condition)
        result = self.db.create_command().delete(self.table_name(), condition)

        if lock is not None and not result:
            logger.warning('optimistic lock conflict on %s %s', self.table_name(), condition)
            raise StaleRecordError('The object being deleted is outdated.')

        self.store.commit(None)
        return result

    def refresh(self, /, *, suppress_events: bool = False) -> bool:
        """Reload the attributes from the row with the current primary
            key, discarding unsaved changes. Return False, leaving the
            record untouched, if the row does not exist.
        """
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
        result = self._refresh_internal(query.one())
        if result and not suppress_events:
            self.invoke_hooks('after_refresh', self)
        return result

    def _refresh_internal(self, record: Optional[BaseActiveRecord]) -> bool:
        if record is None:
            logger.debug('refresh of %s found no row', self.table_name())
            return False
        self.store.reset(
            {name: record.get(name) for name in self.attributes()},
            record.get_old_attributes(),
        )
        return True
