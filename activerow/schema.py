from __future__ import annotations
from .errors import tert
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
import logging


logger = logging.getLogger(__name__)


def python_type_for(declared_type: str) -> Optional[type]:
    """Map a declared SQL column type to a Python type using the sqlite
        affinity rules, with BOOL and DECIMAL singled out from NUMERIC.
        Returns None for columns without a declared type, whose values
        are not converted.
    """
    declared = (declared_type or '').upper()
    if not declared:
        return None
    if 'INT' in declared:
        return int
    if 'CHAR' in declared or 'CLOB' in declared or 'TEXT' in declared:
        return str
    if 'BLOB' in declared:
        return bytes
    if 'REAL' in declared or 'FLOA' in declared or 'DOUB' in declared:
        return float
    if 'BOOL' in declared:
        return bool
    if 'DEC' in declared or 'NUMERIC' in declared:
        return Decimal
    return str


@dataclass
class ColumnSchema:
    """Metadata for a single table column."""
    name: str
    db_type: str = ''
    python_type: Optional[type] = None
    allow_null: bool = True
    is_primary_key: bool = False
    auto_increment: bool = False
    default_value: Any = None

    def type_cast(self, value: Any) -> Any:
        """Convert a raw database value into the column's Python type.
            None passes through; an empty string becomes None for
            non-text columns. Values that cannot be converted, such as text
            that sqlite stored in an INTEGER column, are returned
            unchanged and a warning is logged.
        """
        if value is None or self.python_type is None:
            return value
        if isinstance(value, self.python_type) and \
            not (self.python_type is int and isinstance(value, bool)):
            return value
        if value == '' and self.python_type not in (str, bytes):
            return None

        try:
            if self.python_type is bool:
                if isinstance(value, str):
                    return value.strip().lower() not in ('0', 'false', 'f', 'no', '')
                return bool(value)
            if self.python_type is bytes:
                return value.encode('utf-8') if isinstance(value, str) else bytes(value)
            if self.python_type is Decimal:
                return Decimal(str(value))
            if self.python_type is int and isinstance(value, str):
                return int(value, 10)
            return self.python_type(value)
        except (ValueError, TypeError, InvalidOperation):
            logger.warning('could not cast %r to %s for column %s; keeping the stored value',
                value, self.python_type.__name__, self.name)
            return value


@dataclass
class TableSchema:
    """Metadata for a table: its columns in declaration order and its
        primary key.
    """
    name: str
    column_map: dict[str, ColumnSchema] = field(default_factory=dict)
    primary_key_names: list[str] = field(default_factory=list)

    def column_names(self) -> list[str]:
        return list(self.column_map.keys())

    def columns(self) -> dict[str, ColumnSchema]:
        return self.column_map

    def get_column(self, name: str) -> Optional[ColumnSchema]:
        return self.column_map.get(name)

    def primary_key(self) -> list[str]:
        return list(self.primary_key_names)


class SchemaCache:
    """Process-wide store of table schemas keyed by connection cache
        key and table name. Entries are filled lazily on first access
        and only removed by an explicit call to clear.
    """
    _tables: dict[tuple[str, str], Optional[TableSchema]]

    def __init__(self) -> None:
        self._tables = {}

    def has(self, key: str, table: str) -> bool:
        return (key, table) in self._tables

    def get(self, key: str, table: str,
            loader: Callable[[str], Optional[TableSchema]] = None) -> Optional[TableSchema]:
        """Return the cached schema, calling loader to fill the cache on
            a miss when one is supplied. Tables found not to exist are
            cached as None.
        """
        tert(type(key) is str, 'key must be str')
        tert(type(table) is str, 'table must be str')
        if (key, table) not in self._tables and loader is not None:
            self.set(key, table, loader(table))
        return self._tables.get((key, table))

    def set(self, key: str, table: str, schema: Optional[TableSchema]) -> None:
        logger.debug('caching schema for table %s (%s)', table,
                     'found' if schema is not None else 'missing')
        self._tables[(key, table)] = schema

    def clear(self, table: str = None, key: str = None) -> None:
        """Remove cached schemas. With no arguments, empties the cache;
            otherwise removes entries matching the table and/or key.
        """
        if table is None and key is None:
            self._tables.clear()
            return
        for k, t in list(self._tables):
            if (table is None or t == table) and (key is None or k == key):
                del self._tables[(k, t)]


schema_cache = SchemaCache()


def clear_schema_cache(table: str = None, key: str = None) -> None:
    """Invalidate the process-wide schema cache, e.g. after a migration."""
    schema_cache.clear(table, key)
