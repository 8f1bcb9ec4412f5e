from context import classes, schema
from decimal import Decimal
import unittest


class TestSchema(unittest.TestCase):
    def setUp(self) -> None:
        schema.clear_schema_cache()
        self.db = classes.SqliteConnection(':memory:')
        self.db.execute_raw(
            'create table "order" (id integer primary key, total real not null default 0, ' +
            'note text default \'n/a\', paid boolean default false, amount decimal, ' +
            'data blob, created text default CURRENT_TIMESTAMP, misc)'
        )
        self.db.execute_raw(
            'create table order_item (order_id integer, item_id integer, qty integer, ' +
            'primary key (order_id, item_id))'
        )
        return super().setUp()

    def tearDown(self) -> None:
        self.db.close()
        schema.clear_schema_cache()
        return super().tearDown()

    def test_python_type_for(self):
        assert schema.python_type_for('INTEGER') is int
        assert schema.python_type_for('bigint') is int
        assert schema.python_type_for('varchar(255)') is str
        assert schema.python_type_for('BLOB') is bytes
        assert schema.python_type_for('double precision') is float
        assert schema.python_type_for('boolean') is bool
        assert schema.python_type_for('decimal(10,2)') is Decimal
        assert schema.python_type_for('datetime') is str
        assert schema.python_type_for('') is None

    def test_ColumnSchema_type_cast(self):
        int_column = schema.ColumnSchema('id', 'integer', int)
        assert int_column.type_cast('42') == 42
        assert int_column.type_cast(42) == 42
        assert int_column.type_cast(True) == 1 and type(int_column.type_cast(True)) is int
        assert int_column.type_cast(None) is None
        assert int_column.type_cast('') is None

        bool_column = schema.ColumnSchema('paid', 'boolean', bool)
        assert bool_column.type_cast(1) is True
        assert bool_column.type_cast('false') is False

        assert schema.ColumnSchema('n', 'text', str).type_cast(5) == '5'
        assert schema.ColumnSchema('n', 'text', str).type_cast('') == ''
        assert schema.ColumnSchema('d', 'blob', bytes).type_cast('ab') == b'ab'
        assert schema.ColumnSchema('a', 'decimal', Decimal).type_cast(1.5) == Decimal('1.5')
        assert schema.ColumnSchema('m', '', None).type_cast('raw') == 'raw'

    def test_ColumnSchema_type_cast_keeps_unconvertible_value_and_warns(self):
        int_column = schema.ColumnSchema('id', 'integer', int)
        with self.assertLogs('activerow.schema', level='WARNING') as logs:
            assert int_column.type_cast('abc') == 'abc'
        assert len(logs.records) == 1
        assert 'column id' in logs.output[0]

        with self.assertLogs('activerow.schema', level='WARNING'):
            assert schema.ColumnSchema('a', 'decimal', Decimal).type_cast('x') == 'x'

    def test_SqliteSchema_reads_columns_and_primary_key(self):
        table = self.db.get_schema().get_table_schema('order')
        assert isinstance(table, schema.TableSchema)
        assert table.column_names() == [
            'id', 'total', 'note', 'paid', 'amount', 'data', 'created', 'misc'
        ]
        assert table.primary_key() == ['id']
        assert table.get_column('id').auto_increment
        assert table.get_column('total').python_type is float
        assert not table.get_column('total').allow_null
        assert table.get_column('bogus') is None

    def test_SqliteSchema_parses_defaults(self):
        columns = self.db.get_schema().get_table_schema('order').columns()
        assert columns['total'].default_value == 0.0
        assert type(columns['total'].default_value) is float
        assert columns['note'].default_value == 'n/a'
        assert columns['paid'].default_value is False
        assert columns['created'].default_value is None
        assert columns['amount'].default_value is None

    def test_SqliteSchema_composite_primary_key(self):
        table = self.db.get_schema().get_table_schema('order_item')
        assert table.primary_key() == ['order_id', 'item_id']
        assert not table.get_column('order_id').auto_increment

    def test_SqliteSchema_returns_None_for_missing_table(self):
        assert self.db.get_schema().get_table_schema('missing') is None

    def test_schema_is_cached_until_cleared(self):
        provider = self.db.get_schema()
        first = provider.get_table_schema('order')
        self.db.execute_raw('alter table "order" add column extra text')
        assert provider.get_table_schema('order') is first
        assert 'extra' not in provider.get_table_schema('order').column_names()

        schema.clear_schema_cache('order')
        assert 'extra' in provider.get_table_schema('order').column_names()

    def test_SchemaCache_clear_by_key(self):
        cache = schema.SchemaCache()
        cache.set('a', 't', None)
        cache.set('b', 't', schema.TableSchema('t'))
        cache.clear(key='a')
        assert not cache.has('a', 't')
        assert cache.has('b', 't')
        cache.clear()
        assert not cache.has('b', 't')

    def test_SchemaCache_calls_loader_once(self):
        cache = schema.SchemaCache()
        calls = []
        def loader(name):
            calls.append(name)
            return None
        assert cache.get('k', 't', loader) is None
        assert cache.get('k', 't', loader) is None
        assert calls == ['t']


if __name__ == '__main__':
    unittest.main()
