from __future__ import annotations
from .errors import tert
import re


_PLACEHOLDER = re.compile(r'(\{\{(%?[\w\-. ]+%?)\}\}|\[\[([\w\-. ]+)\]\])')


class Quoter:
    """Quotes table and column names for embedding in SQL. Defaults to
        ANSI double quotes, which sqlite understands.
    """
    table_quote: tuple[str, str]
    column_quote: tuple[str, str]
    table_prefix: str

    def __init__(self, table_quote: str|tuple[str, str] = '"',
                 column_quote: str|tuple[str, str] = None,
                 table_prefix: str = '') -> None:
        """Initialize the instance. Quote characters may be a single str
            used on both sides or a (left, right) tuple. Raises TypeError
            for invalid arguments.
        """
        tert(type(table_quote) in (str, tuple), 'table_quote must be str or tuple[str, str]')
        tert(type(table_prefix) is str, 'table_prefix must be str')
        if column_quote is None:
            column_quote = table_quote
        tert(type(column_quote) in (str, tuple), 'column_quote must be str or tuple[str, str]')
        self.table_quote = (table_quote, table_quote) if type(table_quote) is str else table_quote
        self.column_quote = (column_quote, column_quote) if type(column_quote) is str else column_quote
        self.table_prefix = table_prefix

    def quote_simple_table_name(self, name: str) -> str:
        left, right = self.table_quote
        if name.startswith(left):
            return name
        return f'{left}{name}{right}'

    def quote_simple_column_name(self, name: str) -> str:
        left, right = self.column_quote
        if name == '*' or name.startswith(left):
            return name
        return f'{left}{name}{right}'

    def quote_table_name(self, name: str) -> str:
        """Quote a table name. Names containing parentheses or `{{` are
            returned unchanged; schema-prefixed names are quoted part by
            part.
        """
        tert(type(name) is str, 'name must be str')
        if '(' in name or '{{' in name:
            return name
        if '.' not in name:
            return self.quote_simple_table_name(name)
        return '.'.join(self.quote_simple_table_name(part) for part in name.split('.'))

    def quote_column_name(self, name: str) -> str:
        """Quote a column name, including any table prefix. Names
            containing parentheses or `[[` are returned unchanged.
        """
        tert(type(name) is str, 'name must be str')
        if '(' in name or '[[' in name:
            return name
        prefix = ''
        if '.' in name:
            table, _, name = name.rpartition('.')
            prefix = self.quote_table_name(table) + '.'
        return prefix + self.quote_simple_column_name(name)

    def quote_sql(self, sql: str) -> str:
        """Replace `{{table}}` and `[[column]]` placeholders with quoted
            names. A `%` inside a table placeholder is replaced by the
            table prefix.
        """
        tert(type(sql) is str, 'sql must be str')

        def replace(match: re.Match) -> str:
            if match.group(3) is not None:
                return self.quote_column_name(match.group(3))
            return self.quote_table_name(match.group(2)).replace('%', self.table_prefix)

        return _PLACEHOLDER.sub(replace, sql)

    def unquote_simple_table_name(self, name: str) -> str:
        left, right = self.table_quote
        if name.startswith(left) and name.endswith(right) and len(name) > 1:
            return name[len(left):-len(right)]
        return name

    def unquote_simple_column_name(self, name: str) -> str:
        left, right = self.column_quote
        if name.startswith(left) and name.endswith(right) and len(name) > 1:
            return name[len(left):-len(right)]
        return name
