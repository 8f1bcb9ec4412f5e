from __future__ import annotations
from .errors import InvalidArgumentError, tert
from .interfaces import QueryProtocol, QuoterProtocol
from typing import Any, Iterable
import re


_BRACES = re.compile(r'\{\{([\w]+)\}\}')


def normalize_value(value: Any) -> Any:
    """Reindex collection values into dense lists in iteration order.
        Scalars, str and bytes pass through.
    """
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return value

def plain_key(key: str) -> str:
    """Return a str subclass key (e.g. a str Enum member) as the plain
        str it wraps.
    """
    return str.__str__(key)


class ConditionFilter:
    """Validates caller-supplied condition mappings against the columns
        of one table so that untrusted keys cannot reach a WHERE clause.
    """
    table: str
    column_names: tuple[str]
    quoter: QuoterProtocol

    def __init__(self, table: str, column_names: Iterable[str],
                 quoter: QuoterProtocol) -> None:
        tert(type(table) is str, 'table must be str')
        tert(isinstance(quoter, QuoterProtocol), 'quoter must implement QuoterProtocol')
        self.table = table
        self.column_names = tuple(column_names)
        self.quoter = quoter

    def valid_column_names(self, aliases: Iterable[str] = ()) -> set[str]:
        """Every form under which a column may be named: bare, quoted,
            and prefixed by the table or any alias, quoted or not.
        """
        quote_sql = self.quoter.quote_sql
        quoted_table = self.quoter.quote_table_name(self.table)
        quoted_aliases = [(a, self.quoter.quote_table_name(a)) for a in aliases]
        names = set()

        for column in self.column_names:
            names.add(column)
            names.add(self.quoter.quote_column_name(column))
            names.add(f'{self.table}.{column}')
            names.add(quote_sql(f'{quoted_table}.[[{column}]]'))
            for alias, quoted_alias in quoted_aliases:
                names.add(f'{alias}.{column}')
                names.add(quote_sql(f'{quoted_alias}.[[{column}]]'))

        return names

    def filter(self, condition: dict, aliases: Iterable[str] = ()) -> dict:
        """Return a copy of condition with collection values reindexed.
            Raises InvalidArgumentError for any str key that is not a
            column name; non-str keys are positional and not checked.
        """
        tert(isinstance(condition, dict), 'condition must be dict')
        valid = self.valid_column_names(aliases)
        result = {}

        for key, value in condition.items():
            if isinstance(key, str):
                key = plain_key(key)
                if self.quoter.quote_sql(key) not in valid:
                    raise InvalidArgumentError(
                        f'Key "{key}" is not a column name and can not be used as a filter'
                    )
            result[key] = normalize_value(value)

        return result

    @staticmethod
    def valid_aliases(query: QueryProtocol) -> list[str]:
        """Aliases in the query's FROM clause: entries whose key is not
            also a table name. `{{name}}` braces are stripped.
        """
        tables = query.tables_used_in_from()
        table_names = set(tables.values())
        return [
            _BRACES.sub(r'\1', alias)
            for alias in tables
            if alias not in table_names
        ]
