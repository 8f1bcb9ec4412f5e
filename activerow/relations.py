from __future__ import annotations
from .errors import tert, vert
from .interfaces import QueryProtocol, RecordProtocol
from typing import Type


def _relation_query(record: RecordProtocol, related_class: Type[RecordProtocol],
                    link: dict[str, str], multiple: bool) -> QueryProtocol:
    tert(type(related_class) is type and hasattr(related_class, 'query_class'),
         'related_class must be a record class')
    tert(isinstance(link, dict), 'link must be dict[str, str]')
    vert(len(link) > 0, 'link cannot be empty')
    tert(all([type(k) is str and type(v) is str for k, v in link.items()]),
         'link must be dict[str, str]')

    query = related_class.query_class(related_class, record.db)
    query.primary_model = record
    query.link = link
    query.multiple = multiple
    table = query.primary_table()
    query.where({
        f'{table}.{related_column}': record.get(own_column)
        for related_column, own_column in link.items()
    })
    return query

def has_one(record: RecordProtocol, related_class: Type[RecordProtocol],
            link: dict[str, str]) -> QueryProtocol:
    """Return a query for the single related record. link maps columns
        of the related table to columns of record, e.g.
        `{'customer_id': 'id'}`.
    """
    return _relation_query(record, related_class, link, False)

def has_many(record: RecordProtocol, related_class: Type[RecordProtocol],
             link: dict[str, str]) -> QueryProtocol:
    """Return a query for the related records. link maps columns of the
        related table to columns of record.
    """
    return _relation_query(record, related_class, link, True)
