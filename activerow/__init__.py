"""
    Activerow is a package for binding in-memory records to single rows
    of a relational table: schema-driven attributes, dirty tracking,
    condition filtering against real column names, and the insert,
    update and refresh cycle that folds database-generated values back
    into the record. Sqlite bindings are included; async equivalents
    live in activerow.asyncql.
"""

from activerow.attributes import AttributeStore
from activerow.classes import (
    ActiveQuery,
    SqliteCommand,
    SqliteConnection,
    SqliteContext,
    SqliteSchema,
    SqliteTransaction,
)
from activerow.conditions import ConditionFilter
from activerow.errors import (
    InvalidArgumentError,
    InvalidConfigError,
    StaleRecordError,
)
from activerow.interfaces import (
    ColumnProtocol,
    CommandProtocol,
    ConnectionProtocol,
    CursorProtocol,
    DBContextProtocol,
    QueryProtocol,
    QuoterProtocol,
    RecordProtocol,
    SchemaProtocol,
    TableSchemaProtocol,
    TransactionProtocol,
)
from activerow.quoter import Quoter
from activerow.record import ActiveRecord, BaseActiveRecord
from activerow.relations import has_one, has_many
from activerow.schema import (
    ColumnSchema,
    SchemaCache,
    TableSchema,
    clear_schema_cache,
    schema_cache,
)
from activerow.transactions import (
    OP_ALL,
    OP_DELETE,
    OP_INSERT,
    OP_UPDATE,
    transactional,
    async_transactional,
)
from activerow.version import version
