"""
    The interfaces used by the package. `CursorProtocol` and
    `DBContextProtocol` must be implemented to bind the library to a new
    SQL driver. `SchemaProtocol`, `TableSchemaProtocol`, `ColumnProtocol`,
    `QuoterProtocol`, `CommandProtocol` and `QueryProtocol` describe the
    collaborators a record relies on, and `ConnectionProtocol` bundles
    them. `RecordProtocol` describes the record itself.
"""


from __future__ import annotations
from types import TracebackType
from typing import (
    Any,
    Callable,
    Iterable,
    Optional,
    Protocol,
    Type,
    runtime_checkable,
)


@runtime_checkable
class CursorProtocol(Protocol):
    """Interface showing how a DB cursor should function."""
    @property
    def rowcount(self) -> int:
        """Number of rows affected by the previous statement."""
        ...

    def execute(self, sql: str, parameters: list[Any] = []) -> CursorProtocol:
        """Execute a single query with the given parameters."""
        ...

    def executemany(self, sql: str,
                    seq_of_parameters: Iterable[list[Any]] = []) -> CursorProtocol:
        """Execute a query once for each list of parameters."""
        ...

    def fetchone(self) -> Any:
        """Get one record returned by the previous query."""
        ...

    def fetchall(self) -> Any:
        """Get all records returned by the previous query."""
        ...


@runtime_checkable
class DBContextProtocol(Protocol):
    """Interface showing how a context manager for a cursor should
        behave.
    """
    def __enter__(self) -> CursorProtocol:
        """Enter the `with` block. Should return a cursor useful for
            making db calls.
        """
        ...

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        """Exit the `with` block. Should commit or rollback as
            appropriate unless a transaction is in progress.
        """
        ...


@runtime_checkable
class ColumnProtocol(Protocol):
    """Interface showing how column metadata should function."""
    @property
    def name(self) -> str:
        """Name of the column."""
        ...

    @property
    def default_value(self) -> Any:
        """Default value declared in the schema, already typecast."""
        ...

    def type_cast(self, value: Any) -> Any:
        """Convert a raw database value into the column's Python type."""
        ...


@runtime_checkable
class TableSchemaProtocol(Protocol):
    """Interface showing how table metadata should function."""
    @property
    def name(self) -> str:
        """Name of the table."""
        ...

    def column_names(self) -> list[str]:
        """Ordered list of column names."""
        ...

    def columns(self) -> dict[str, ColumnProtocol]:
        """Mapping of column name to column metadata."""
        ...

    def get_column(self, name: str) -> Optional[ColumnProtocol]:
        """Return the named column or None."""
        ...

    def primary_key(self) -> list[str]:
        """Ordered list of primary key column names."""
        ...


@runtime_checkable
class SchemaProtocol(Protocol):
    """Interface showing how a schema provider should function."""
    def get_table_schema(self, name: str) -> Optional[TableSchemaProtocol]:
        """Return the schema of the named table or None if it does not
            exist.
        """
        ...


@runtime_checkable
class QuoterProtocol(Protocol):
    """Interface showing how an identifier quoter should function."""
    def quote_table_name(self, name: str) -> str:
        """Quote a table name for use in a query."""
        ...

    def quote_column_name(self, name: str) -> str:
        """Quote a column name for use in a query. Prefixed names are
            quoted part by part.
        """
        ...

    def quote_sql(self, sql: str) -> str:
        """Replace `{{table}}` and `[[column]]` placeholders with quoted
            names.
        """
        ...


@runtime_checkable
class CommandProtocol(Protocol):
    """Interface showing how a command executor should function."""
    def insert_returning_keys(self, table: str, values: dict[str, Any]
                              ) -> Optional[dict[str, Any]]:
        """Insert a row and return the raw primary key values stored, or
            None if the database did not accept the row.
        """
        ...

    def update(self, table: str, values: dict[str, Any],
               condition: dict[str, Any]) -> int:
        """Update matching rows and return the number affected."""
        ...

    def delete(self, table: str, condition: dict[str, Any]) -> int:
        """Delete matching rows and return the number affected."""
        ...


@runtime_checkable
class TransactionProtocol(Protocol):
    """Interface showing how a transaction should function."""
    @property
    def is_active(self) -> bool:
        """Whether the transaction is still open."""
        ...

    def commit(self) -> None:
        """Commit the transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the transaction."""
        ...


@runtime_checkable
class QueryProtocol(Protocol):
    """Interface showing how a query object should function."""
    def tables_used_in_from(self) -> dict[str, str]:
        """Mapping of alias (or table name if not aliased) to table
            name for each FROM entry.
        """
        ...

    def primary_table(self) -> str:
        """Alias or name under which the primary table is referenced."""
        ...

    def where(self, condition: Optional[dict]) -> QueryProtocol:
        """Replace the query condition and return self."""
        ...

    def one(self) -> Any:
        """Return the first matching record or None."""
        ...

    def all(self) -> list:
        """Return all matching records."""
        ...


@runtime_checkable
class ConnectionProtocol(Protocol):
    """Interface showing how a database connection should function."""
    @property
    def cache_key(self) -> str:
        """Key identifying the database in the schema cache."""
        ...

    def get_schema(self) -> SchemaProtocol:
        """Return the schema provider."""
        ...

    def get_quoter(self) -> QuoterProtocol:
        """Return the identifier quoter."""
        ...

    def create_command(self) -> CommandProtocol:
        """Return a command executor."""
        ...

    def begin_transaction(self) -> TransactionProtocol:
        """Begin and return a transaction."""
        ...


@runtime_checkable
class RecordProtocol(Protocol):
    """Interface showing how a record should function."""
    @classmethod
    def table_name(cls) -> str:
        """Name of the table the class is bound to."""
        ...

    def get(self, name: str) -> Any:
        """Return the current value of the attribute or None."""
        ...

    def set(self, name: str, value: Any) -> None:
        """Set the attribute. Raises AttributeError for undeclared names."""
        ...

    def is_new(self) -> bool:
        """True until the record is first persisted or loaded."""
        ...

    def dirty_attributes(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Return the attributes changed since the last commit."""
        ...

    def populate_record(self, row: dict) -> None:
        """Hydrate the record from a raw database row."""
        ...

    @classmethod
    def add_hook(cls, event: str, hook: Callable):
        """Add the hook for the event."""
        ...

    @classmethod
    def invoke_hooks(cls, event: str, *args, **kwargs):
        """Invoke the hooks for the event."""
        ...
