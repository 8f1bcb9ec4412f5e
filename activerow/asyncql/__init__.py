"""
    Async counterparts of the sqlite bindings and the record class,
    built on aiosqlite.
"""

from activerow.asyncql.classes import (
    AsyncActiveQuery,
    AsyncSqliteCommand,
    AsyncSqliteConnection,
    AsyncSqliteContext,
    AsyncSqliteSchema,
    AsyncSqliteTransaction,
)
from activerow.asyncql.interfaces import (
    AsyncCommandProtocol,
    AsyncConnectionProtocol,
    AsyncCursorProtocol,
    AsyncDBContextProtocol,
    AsyncQueryProtocol,
    AsyncSchemaProtocol,
    AsyncTransactionProtocol,
)
from activerow.asyncql.record import AsyncActiveRecord
