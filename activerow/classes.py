from __future__ import annotations
from .config import get_connection_string
from .conditions import normalize_value, plain_key
from .errors import tert, vert, tressa
from .interfaces import (
    CursorProtocol,
    QuoterProtocol,
    RecordProtocol,
)
from .quoter import Quoter
from .schema import ColumnSchema, TableSchema, python_type_for, schema_cache
from types import TracebackType
from typing import Any, Optional, Type
import logging
import re
import sqlite3


logger = logging.getLogger(__name__)


def build_condition(condition: dict, quoter: QuoterProtocol) -> tuple[str, list]:
    """Render a condition mapping as a SQL boolean expression joined
        with AND, returning the expression and its params. Non-str keys
        are positional: their values are SQL fragments used verbatim
        after placeholder quoting.
    """
    tert(isinstance(condition, dict), 'condition must be dict')
    parts, params = [], []

    for key, value in condition.items():
        if not isinstance(key, str):
            tert(type(value) is str, 'positional condition entries must be str')
            parts.append(f'({quoter.quote_sql(value)})')
            continue

        key = plain_key(key)
        column = quoter.quote_column_name(quoter.quote_sql(key))
        value = normalize_value(value)
        if value is None:
            parts.append(f'{column} IS NULL')
        elif type(value) is list:
            if len(value) == 0:
                parts.append('0=1')
            else:
                parts.append(f'{column} IN ({",".join(["?" for _ in value])})')
                params.extend(value)
        else:
            parts.append(f'{column} = ?')
            params.append(value)

    return (' AND '.join(parts), params)

def build_insert(table: str, values: dict, quoter: QuoterProtocol,
                 returning: list[str] = ()) -> tuple[str, list]:
    """Render an INSERT statement, optionally with a RETURNING clause."""
    tert(isinstance(values, dict), 'values must be dict')
    sql = f'INSERT INTO {quoter.quote_table_name(table)}'
    if values:
        sql += f' ({",".join([quoter.quote_column_name(c) for c in values])})'
        sql += f' VALUES ({",".join(["?" for _ in values])})'
    else:
        sql += ' DEFAULT VALUES'
    if returning:
        sql += f' RETURNING {",".join([quoter.quote_column_name(c) for c in returning])}'
    return (sql, list(values.values()))

def build_update(table: str, values: dict, condition: dict,
                 quoter: QuoterProtocol, counters: bool = False) -> tuple[str, list]:
    """Render an UPDATE statement. With counters=True each value is
        added to the current column value instead of replacing it.
    """
    tert(isinstance(values, dict), 'values must be dict')
    vert(len(values) > 0, 'values cannot be empty')
    columns = [quoter.quote_column_name(c) for c in values]
    if counters:
        assignments = [f'{c} = {c} + ?' for c in columns]
    else:
        assignments = [f'{c} = ?' for c in columns]
    sql = f'UPDATE {quoter.quote_table_name(table)} SET {",".join(assignments)}'
    params = list(values.values())
    where, where_params = build_condition(condition or {}, quoter)
    if where:
        sql += f' WHERE {where}'
    return (sql, [*params, *where_params])

def build_delete(table: str, condition: dict, quoter: QuoterProtocol) -> tuple[str, list]:
    sql = f'DELETE FROM {quoter.quote_table_name(table)}'
    where, params = build_condition(condition or {}, quoter)
    if where:
        sql += f' WHERE {where}'
    return (sql, params)

def parse_default(raw: Optional[str], column: ColumnSchema) -> Any:
    """Turn a sqlite default value literal into a typecast value.
        Expressions such as CURRENT_TIMESTAMP are evaluated by the
        database, so they yield None.
    """
    if raw is None or raw.upper() == 'NULL':
        return None
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return column.type_cast(raw[1:-1].replace(raw[0]*2, raw[0]))
    if re.fullmatch(r'[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?', raw):
        return column.type_cast(raw)
    if raw.upper() in ('TRUE', 'FALSE'):
        return column.type_cast(raw.upper() == 'TRUE')
    return None

def parse_from(tables: str|list|dict) -> dict[str, str]:
    """Parse FROM entries into an alias => table mapping. Accepts
        'table', 'table alias', 'table AS alias', a list of those, or a
        dict of alias => table.
    """
    if isinstance(tables, dict):
        tert(all([type(k) is str and type(v) is str for k, v in tables.items()]),
             'tables must be dict[str, str]')
        return dict(tables)
    if type(tables) is str:
        tables = [t for t in tables.split(',') if t.strip()]
    tert(type(tables) in (list, tuple), 'tables must be str|list[str]|dict[str, str]')
    result = {}
    for entry in tables:
        tert(type(entry) is str, 'tables must be str|list[str]|dict[str, str]')
        parts = re.split(r'\s+(?:as\s+)?', entry.strip(), maxsplit=1, flags=re.IGNORECASE)
        if len(parts) == 2:
            result[parts[1]] = parts[0]
        else:
            result[parts[0]] = parts[0]
    return result


class SqliteContext:
    """Context manager for a sqlite cursor on a shared connection."""
    db: SqliteConnection
    cursor: sqlite3.Cursor

    def __init__(self, db: SqliteConnection) -> None:
        self.db = db

    def __enter__(self) -> CursorProtocol:
        """Enter the context block and return the cursor."""
        self.cursor = self.db.connection.cursor()
        return self.cursor

    def __exit__(self, __exc_type: Optional[Type[BaseException]],
                __exc_value: Optional[BaseException],
                __traceback: Optional[TracebackType]) -> None:
        """Exit the context block. Commit or rollback as appropriate
            unless a transaction is in progress, then close the cursor.
        """
        if not self.db.in_transaction:
            if __exc_type is not None:
                self.db.connection.rollback()
            else:
                self.db.connection.commit()

        self.cursor.close()


class SqliteTransaction:
    """A transaction on a SqliteConnection. Usable as a context manager:
        commits on normal exit and rolls back if an exception escapes.
    """
    db: SqliteConnection
    is_active: bool

    def __init__(self, db: SqliteConnection) -> None:
        tressa(not db.in_transaction, 'a transaction is already active')
        self.db = db
        self.is_active = True
        db.transaction = self
        logger.debug('transaction started')

    def __enter__(self) -> SqliteTransaction:
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        if not self.is_active:
            return
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()

    def commit(self) -> None:
        tressa(self.is_active, 'transaction is not active')
        self.db.connection.commit()
        self._end()
        logger.debug('transaction committed')

    def rollback(self) -> None:
        tressa(self.is_active, 'transaction is not active')
        self.db.connection.rollback()
        self._end()
        logger.warning('transaction rolled back')

    def _end(self) -> None:
        self.is_active = False
        self.db.transaction = None


class SqliteSchema:
    """Schema provider reading table metadata with PRAGMA table_info.
        Results go through the process-wide schema cache.
    """
    db: SqliteConnection

    def __init__(self, db: SqliteConnection) -> None:
        self.db = db

    def get_table_schema(self, name: str) -> Optional[TableSchema]:
        """Return the schema of the named table or None if it does not
            exist. Raises TypeError for non-str name.
        """
        tert(type(name) is str, 'name must be str')
        return schema_cache.get(self.db.cache_key, name, self.load_table_schema)

    def load_table_schema(self, name: str) -> Optional[TableSchema]:
        """Query the database for the table schema, bypassing the cache."""
        sql = f'PRAGMA table_info({self.db.quoter.quote_table_name(name)})'
        with self.db.cursor() as cursor:
            cursor.execute(sql)
            rows = cursor.fetchall()
        return self.parse_table_info(name, rows)

    @staticmethod
    def parse_table_info(name: str, rows: list[tuple]) -> Optional[TableSchema]:
        """Build a TableSchema from PRAGMA table_info rows of the form
            (cid, name, type, notnull, dflt_value, pk).
        """
        if not rows:
            return None

        pk_rows = sorted([r for r in rows if r[5]], key=lambda r: r[5])
        primary_key = [r[1] for r in pk_rows]
        columns = {}
        for _, column_name, db_type, notnull, default, pk in rows:
            column = ColumnSchema(
                name=column_name,
                db_type=db_type,
                python_type=python_type_for(db_type),
                allow_null=not notnull,
                is_primary_key=bool(pk),
                auto_increment=len(primary_key) == 1 and bool(pk) and
                    db_type.upper() == 'INTEGER',
            )
            column.default_value = parse_default(default, column)
            columns[column_name] = column

        return TableSchema(name=name, column_map=columns, primary_key_names=primary_key)


class SqliteCommand:
    """Executes write statements against a SqliteConnection."""
    db: SqliteConnection

    def __init__(self, db: SqliteConnection) -> None:
        self.db = db

    def execute(self, sql: str, params: list = []) -> int:
        """Execute a statement and return the number of affected rows."""
        tert(type(sql) is str, 'sql must be str')
        logger.debug('%s %s', sql, params)
        with self.db.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    def insert_returning_keys(self, table: str, values: dict[str, Any]
                              ) -> Optional[dict[str, Any]]:
        """Insert a row and return the raw primary key values stored,
            including database-generated ones. Returns None if no row
            was inserted. Keyless tables return an empty dict on
            success.
        """
        schema = self.db.get_schema().get_table_schema(table)
        primary_key = schema.primary_key() if schema is not None else []
        sql, params = build_insert(table, values, self.db.quoter, primary_key)
        logger.debug('%s %s', sql, params)

        with self.db.cursor() as cursor:
            cursor.execute(sql, params)
            if not primary_key:
                return {} if cursor.rowcount > 0 else None
            rows = cursor.fetchall()

        if not rows:
            return None
        return {name: value for name, value in zip(primary_key, rows[0])}

    def update(self, table: str, values: dict[str, Any],
               condition: dict[str, Any]) -> int:
        if not values:
            return 0
        return self.execute(*build_update(table, values, condition, self.db.quoter))

    def update_counters(self, table: str, counters: dict[str, int|float],
                        condition: dict[str, Any]) -> int:
        if not counters:
            return 0
        return self.execute(*build_update(
            table, counters, condition, self.db.quoter, counters=True
        ))

    def delete(self, table: str, condition: dict[str, Any]) -> int:
        return self.execute(*build_delete(table, condition, self.db.quoter))


class SqliteConnection:
    """A sqlite database binding: owns the sqlite3 connection and hands
        out the schema provider, quoter, command executor and
        transactions.
    """
    connection_info: str = ''
    quoter: Quoter
    transaction: Optional[SqliteTransaction]
    _connection: Optional[sqlite3.Connection]

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
        self._connection = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(connection_info='{self.connection_info}')"

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying sqlite3 connection, opened on first use."""
        if self._connection is None:
            self._connection = sqlite3.connect(self.connection_info)
        return self._connection

    @property
    def cache_key(self) -> str:
        """In-memory databases are private to a connection, so their key
            includes the instance identity.
        """
        if self.connection_info == ':memory:':
            return f':memory:#{id(self)}'
        return str(self.connection_info)

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None and self.transaction.is_active

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def cursor(self) -> SqliteContext:
        return SqliteContext(self)

    def get_schema(self) -> SqliteSchema:
        return SqliteSchema(self)

    def get_quoter(self) -> Quoter:
        return self.quoter

    def create_command(self) -> SqliteCommand:
        return SqliteCommand(self)

    def begin_transaction(self) -> SqliteTransaction:
        return SqliteTransaction(self)

    def execute_raw(self, sql: str, params: list = []) -> tuple[int, list[tuple[Any]]]:
        """Execute raw SQL against the database. Return rowcount and
            fetchall results.
        """
        tert(type(sql) is str, 'sql must be str')
        with self.cursor() as cursor:
            cursor.execute(sql, params)
            return (cursor.rowcount, cursor.fetchall())


class ActiveQuery:
    """Query builder bound to a record class. Results are hydrated into
        records unless `as_dict` is set.
    """
    model: Type[RecordProtocol]
    connection: SqliteConnection
    conditions: list[dict]
    joins: list[tuple[str, str, str]]
    columns: Optional[list[str]]
    order: list[tuple[str, str]]
    limit_value: Optional[int]
    offset_value: Optional[int]
    return_dicts: bool
    primary_model: Optional[RecordProtocol]
    link: Optional[dict[str, str]]
    multiple: bool
    _from: dict[str, str]
    _primary: str

    def __init__(self, model: Type[RecordProtocol], connection: SqliteConnection = None) -> None:
        """Initialize the instance. Uses the model's connection when none
            is supplied. Raises TypeError for invalid model.
        """
        tert(type(model) is type and hasattr(model, 'table_name'),
             'model must be a record class')
        self.model = model
        self.connection = connection if connection is not None else model.connection
        tressa(self.connection is not None, f'no connection configured for {model.__name__}')
        table = model.table_name()
        self._from = {table: table}
        self._primary = table
        self.conditions = []
        self.joins = []
        self.columns = None
        self.order = []
        self.limit_value = None
        self.offset_value = None
        self.return_dicts = False
        self.primary_model = None
        self.link = None
        self.multiple = True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model.__name__}, " + \
            f"sql={self.to_sql()!r})"

    def tables_used_in_from(self) -> dict[str, str]:
        return dict(self._from)

    def primary_table(self) -> str:
        """Alias or name of the primary FROM entry. This is tracked
            explicitly rather than inferred from mapping order.
        """
        return self._primary

    def from_(self, tables: str|list|dict) -> ActiveQuery:
        """Replace the FROM entries. The first entry becomes the primary
            table. Raises TypeError or ValueError for invalid tables.
        """
        parsed = parse_from(tables)
        vert(len(parsed) > 0, 'tables cannot be empty')
        self._from = parsed
        self._primary = next(iter(parsed))
        return self

    def alias(self, alias: str) -> ActiveQuery:
        """Reference the primary table under the given alias."""
        tert(type(alias) is str, 'alias must be str')
        vert(len(alias) > 0, 'alias cannot be empty')
        table = self._from.pop(self._primary)
        self._from = {alias: table, **self._from}
        self._primary = alias
        return self

    def where(self, condition: Optional[dict]) -> ActiveQuery:
        """Replace the condition. None clears it. Raises TypeError for
            invalid condition.
        """
        tert(condition is None or isinstance(condition, dict), 'condition must be dict or None')
        self.conditions = [] if not condition else [condition]
        return self

    def and_where(self, condition: dict) -> ActiveQuery:
        tert(isinstance(condition, dict), 'condition must be dict')
        if condition:
            self.conditions.append(condition)
        return self

    def join(self, table: str, on: str, kind: str = 'inner') -> ActiveQuery:
        """Add a JOIN. table may include an alias ('order o'); on is a
            SQL fragment in which placeholders are quoted.
        """
        tert(type(table) is str, 'table must be str')
        tert(type(on) is str, 'on must be str')
        vert(kind in ('inner', 'left', 'right', 'full', 'cross'),
             'kind must be in (inner, left, right, full, cross)')
        self.joins.append((kind, table, on))
        return self

    def select(self, columns: list[str]) -> ActiveQuery:
        tert(type(columns) in (list, tuple), 'select columns must be list[str]')
        tert(all([type(c) is str for c in columns]), 'select columns must be list[str]')
        self.columns = [*columns]
        return self

    def order_by(self, column: str, direction: str = 'asc') -> ActiveQuery:
        tert(type(column) is str, 'column must be str')
        vert(direction in ('asc', 'desc'), 'direction must be asc or desc')
        self.order.append((column, direction))
        return self

    def limit(self, limit: int) -> ActiveQuery:
        tert(type(limit) is int, 'limit must be positive int')
        vert(limit > 0, 'limit must be positive int')
        self.limit_value = limit
        return self

    def offset(self, offset: int) -> ActiveQuery:
        tert(type(offset) is int, 'offset must be positive int')
        vert(offset >= 0, 'offset must be positive int')
        self.offset_value = offset
        return self

    def as_dict(self, value: bool = True) -> ActiveQuery:
        """Return rows as dicts instead of records."""
        self.return_dicts = value
        return self

    def _from_sql(self) -> str:
        quoter = self.connection.get_quoter()
        entries = []
        for alias, table in self._from.items():
            entry = quoter.quote_table_name(table)
            if alias != table:
                entry += f' {quoter.quote_table_name(alias)}'
            entries.append(entry)
        sql = ', '.join(entries)
        for kind, table, on in self.joins:
            parts = parse_from(table)
            (alias, name), = parts.items()
            entry = quoter.quote_table_name(name)
            if alias != name:
                entry += f' {quoter.quote_table_name(alias)}'
            sql += f' {kind.upper()} JOIN {entry} ON {quoter.quote_sql(on)}'
        return sql

    def _where_sql(self) -> tuple[str, list]:
        quoter = self.connection.get_quoter()
        parts, params = [], []
        for condition in self.conditions:
            part, part_params = build_condition(condition, quoter)
            if part:
                parts.append(part if len(self.conditions) == 1 else f'({part})')
                params.extend(part_params)
        return (' AND '.join(parts), params)

    def to_sql(self, limit: Optional[int] = None) -> tuple[str, list]:
        """Return the SELECT statement and its params."""
        quoter = self.connection.get_quoter()
        if self.columns:
            columns = ','.join([quoter.quote_column_name(quoter.quote_sql(c)) for c in self.columns])
        else:
            columns = f'{quoter.quote_table_name(self._primary)}.*'
        sql = f'SELECT {columns} FROM {self._from_sql()}'

        where, params = self._where_sql()
        if where:
            sql += f' WHERE {where}'

        if self.order:
            sql += ' ORDER BY ' + ','.join([
                f'{quoter.quote_column_name(quoter.quote_sql(c))} {d.upper()}'
                for c, d in self.order
            ])

        limit = limit if limit is not None else self.limit_value
        if limit is not None:
            sql += f' LIMIT {limit}'
            if self.offset_value:
                sql += f' OFFSET {self.offset_value}'
        elif self.offset_value:
            sql += f' LIMIT -1 OFFSET {self.offset_value}'

        return (sql, params)

    def _fetch(self, limit: Optional[int] = None) -> list[dict]:
        sql, params = self.to_sql(limit)
        logger.debug('%s %s', sql, params)
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            names = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        return [dict(zip(names, row)) for row in rows]

    def populate(self, rows: list[dict]) -> list:
        """Turn raw rows into records, or leave them as dicts."""
        if self.return_dicts:
            return rows
        records = []
        for row in rows:
            record = self.model(connection=self.connection)
            record.populate_record(row)
            records.append(record)
        return records

    def one(self) -> Optional[RecordProtocol|dict]:
        """Return the first matching record or None."""
        rows = self._fetch(limit=1)
        if not rows:
            return None
        return self.populate(rows)[0]

    def all(self) -> list[RecordProtocol|dict]:
        return self.populate(self._fetch())

    def count(self) -> int:
        sql = f'SELECT COUNT(*) FROM {self._from_sql()}'
        where, params = self._where_sql()
        if where:
            sql += f' WHERE {where}'
        logger.debug('%s %s', sql, params)
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.fetchone()[0]

    def exists(self) -> bool:
        return self.count() > 0
