"""
    The interfaces used by the package async features.
    `AsyncCursorProtocol` and `AsyncDBContextProtocol` must be
    implemented to bind the library to a new async SQL driver. The other
    protocols mirror their synchronous counterparts in
    `activerow.interfaces` with coroutine methods wherever the database
    is touched.
"""


from __future__ import annotations
from activerow.interfaces import QuoterProtocol, TableSchemaProtocol
from types import TracebackType
from typing import (
    Any,
    Iterable,
    Optional,
    Protocol,
    Type,
    runtime_checkable,
)


@runtime_checkable
class AsyncCursorProtocol(Protocol):
    """Interface showing how an async DB cursor should function."""
    @property
    def rowcount(self) -> int:
        """Number of rows affected by the previous statement."""
        ...

    async def execute(self, sql: str, parameters: list[Any] = []) -> AsyncCursorProtocol:
        """Execute a single query with the given parameters."""
        ...

    async def executemany(self, sql: str,
                    seq_of_parameters: Iterable[list[Any]] = []) -> AsyncCursorProtocol:
        """Execute a query once for each list of parameters."""
        ...

    async def fetchone(self) -> Any:
        """Get one record returned by the previous query."""
        ...

    async def fetchall(self) -> Any:
        """Get all records returned by the previous query."""
        ...


@runtime_checkable
class AsyncDBContextProtocol(Protocol):
    """Interface showing how an async context manager for a cursor
        should behave.
    """
    async def __aenter__(self) -> AsyncCursorProtocol:
        """Enter the `async with` block and return a cursor."""
        ...

    async def __aexit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        """Exit the `async with` block. Should commit or rollback as
            appropriate unless a transaction is in progress.
        """
        ...


@runtime_checkable
class AsyncSchemaProtocol(Protocol):
    """Interface showing how an async schema provider should function.
        The synchronous lookup only consults what has been loaded.
    """
    def get_table_schema(self, name: str) -> Optional[TableSchemaProtocol]:
        """Return the loaded schema of the named table, or None if the
            table is known not to exist.
        """
        ...

    async def load_table_schema(self, name: str) -> Optional[TableSchemaProtocol]:
        """Load the schema of the named table if not yet loaded and
            return it, or None if it does not exist.
        """
        ...


@runtime_checkable
class AsyncCommandProtocol(Protocol):
    """Interface showing how an async command executor should function."""
    async def insert_returning_keys(self, table: str, values: dict[str, Any]
                                    ) -> Optional[dict[str, Any]]:
        """Insert a row and return the raw primary key values stored, or
            None if the database did not accept the row.
        """
        ...

    async def update(self, table: str, values: dict[str, Any],
                     condition: dict[str, Any]) -> int:
        """Update matching rows and return the number affected."""
        ...

    async def delete(self, table: str, condition: dict[str, Any]) -> int:
        """Delete matching rows and return the number affected."""
        ...


@runtime_checkable
class AsyncTransactionProtocol(Protocol):
    """Interface showing how an async transaction should function."""
    @property
    def is_active(self) -> bool:
        """Whether the transaction is still open."""
        ...

    async def commit(self) -> None:
        """Commit the transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the transaction."""
        ...


@runtime_checkable
class AsyncQueryProtocol(Protocol):
    """Interface showing how an async query object should function."""
    def tables_used_in_from(self) -> dict[str, str]:
        """Mapping of alias (or table name) to table name."""
        ...

    def primary_table(self) -> str:
        """Alias or name under which the primary table is referenced."""
        ...

    def where(self, condition: Optional[dict]) -> AsyncQueryProtocol:
        """Replace the query condition and return self."""
        ...

    async def one(self) -> Any:
        """Return the first matching record or None."""
        ...

    async def all(self) -> list:
        """Return all matching records."""
        ...


@runtime_checkable
class AsyncConnectionProtocol(Protocol):
    """Interface showing how an async database connection should
        function.
    """
    @property
    def cache_key(self) -> str:
        """Key identifying the database in the schema cache."""
        ...

    def get_schema(self) -> AsyncSchemaProtocol:
        """Return the schema provider."""
        ...

    def get_quoter(self) -> QuoterProtocol:
        """Return the identifier quoter."""
        ...

    def create_command(self) -> AsyncCommandProtocol:
        """Return a command executor."""
        ...

    async def begin_transaction(self) -> AsyncTransactionProtocol:
        """Begin and return a transaction."""
        ...
