"""
    Transaction wrapping for record operations. A record class opts in
    by setting `transactional_operations` to a combination of the OP_*
    flags; the matching operations then run through `transactional` or
    `async_transactional`, which commit on success and roll back when
    the operation returns False or raises.
"""

from __future__ import annotations
from .errors import tert
from .interfaces import ConnectionProtocol
from typing import Any, Awaitable, Callable


OP_INSERT = 0x01
OP_UPDATE = 0x02
OP_DELETE = 0x04
OP_ALL = OP_INSERT | OP_UPDATE | OP_DELETE


def transactional(db: ConnectionProtocol, operation: Callable[[], Any]) -> Any:
    """Run operation inside a new transaction on db and return its
        result. A False result rolls back; exceptions roll back and are
        re-raised. Raises TypeError for non-callable operation.
    """
    tert(callable(operation), 'operation must be callable')
    transaction = db.begin_transaction()
    try:
        result = operation()
    except BaseException:
        if transaction.is_active:
            transaction.rollback()
        raise

    if result is False:
        transaction.rollback()
    else:
        transaction.commit()
    return result

async def async_transactional(db: Any, operation: Callable[[], Awaitable[Any]]) -> Any:
    """Async counterpart of transactional for connections whose
        begin_transaction, commit and rollback are coroutines.
    """
    tert(callable(operation), 'operation must be callable')
    transaction = await db.begin_transaction()
    try:
        result = await operation()
    except BaseException:
        if transaction.is_active:
            await transaction.rollback()
        raise

    if result is False:
        await transaction.rollback()
    else:
        await transaction.commit()
    return result
