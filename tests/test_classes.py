from context import classes, errors, interfaces, quoter, schema
from enum import Enum
import packify
import sqlite3
import unittest


class Order:
    """Minimal stand-in for a record class."""
    table = 'order'
    connection = None

    def __init__(self, connection=None) -> None:
        self.db = connection
        self.row = None

    @classmethod
    def table_name(cls) -> str:
        return cls.table

    def populate_record(self, row: dict) -> None:
        self.row = row


class TestClasses(unittest.TestCase):
    db: classes.SqliteConnection

    def setUp(self) -> None:
        """Set up the test database."""
        schema.clear_schema_cache()
        self.db = classes.SqliteConnection(':memory:')
        self.db.execute_raw('create table "order" (id integer primary key, ' +
            'customer_id integer, total real, status text)')
        self.db.execute_raw('create table customer (id integer primary key, name text)')
        self.db.execute_raw('create table tag (name text, color text)')
        self.db.execute_raw('create table code (code text primary key, label text)')
        Order.connection = self.db
        return super().setUp()

    def tearDown(self) -> None:
        """Close the connection and forget cached schemas."""
        Order.connection = None
        self.db.close()
        schema.clear_schema_cache()
        return super().tearDown()

    # general tests
    def test_classes_contains_correct_classes_and_functions(self):
        for name in ('SqliteContext', 'SqliteTransaction', 'SqliteSchema',
                     'SqliteCommand', 'SqliteConnection', 'ActiveQuery'):
            assert hasattr(classes, name), name
            assert type(getattr(classes, name)) is type, name
        for name in ('build_condition', 'build_insert', 'build_update',
                     'build_delete', 'parse_default', 'parse_from'):
            assert callable(getattr(classes, name)), name

    def test_protocols_are_implemented(self):
        assert isinstance(self.db, interfaces.ConnectionProtocol)
        assert isinstance(self.db.get_schema(), interfaces.SchemaProtocol)
        assert isinstance(self.db.get_quoter(), interfaces.QuoterProtocol)
        assert isinstance(self.db.create_command(), interfaces.CommandProtocol)
        assert isinstance(self.db.cursor(), interfaces.DBContextProtocol)
        assert isinstance(classes.ActiveQuery(Order), interfaces.QueryProtocol)
        table = self.db.get_schema().get_table_schema('order')
        assert isinstance(table, interfaces.TableSchemaProtocol)
        assert isinstance(table.get_column('id'), interfaces.ColumnProtocol)

    # condition rendering
    def test_build_condition(self):
        q = quoter.Quoter()
        sql, params = classes.build_condition({
            'id': 1, 'order.status': None, 'customer_id': [1, 2], 0: '[[total]] > 5',
        }, q)
        assert sql == '"id" = ? AND "order"."status" IS NULL AND ' + \
            '"customer_id" IN (?,?) AND ("total" > 5)', sql
        assert params == [1, 1, 2]

        sql, params = classes.build_condition({'id': []}, q)
        assert sql == '0=1' and params == []

        sql, _ = classes.build_condition({'{{o}}.[[id]]': 1}, q)
        assert sql == '"o"."id" = ?'

    def test_build_condition_quotes_str_subclass_keys_as_columns(self):
        class Column(str, Enum):
            STATUS = 'status'

        sql, params = classes.build_condition({Column.STATUS: '1=1'}, quoter.Quoter())
        assert sql == '"status" = ?', sql
        assert params == ['1=1']

    def test_build_condition_rejects_non_str_positional_values(self):
        with self.assertRaises(TypeError) as e:
            classes.build_condition({0: 123}, quoter.Quoter())
        assert str(e.exception) == 'positional condition entries must be str'

    def test_build_insert_and_update(self):
        q = quoter.Quoter()
        sql, params = classes.build_insert('order', {'total': 1.5}, q, ['id'])
        assert sql == 'INSERT INTO "order" ("total") VALUES (?) RETURNING "id"'
        assert params == [1.5]
        sql, _ = classes.build_insert('order', {}, q)
        assert sql == 'INSERT INTO "order" DEFAULT VALUES'

        sql, params = classes.build_update('order', {'total': 2}, {'id': 7}, q)
        assert sql == 'UPDATE "order" SET "total" = ? WHERE "id" = ?'
        assert params == [2, 7]
        sql, _ = classes.build_update('order', {'total': 2}, {}, q, counters=True)
        assert sql == 'UPDATE "order" SET "total" = "total" + ?'

        with self.assertRaises(ValueError) as e:
            classes.build_update('order', {}, {}, q)
        assert str(e.exception) == 'values cannot be empty'

    def test_parse_from(self):
        assert classes.parse_from('order') == {'order': 'order'}
        assert classes.parse_from('order o') == {'o': 'order'}
        assert classes.parse_from('order AS o, customer') == {'o': 'order', 'customer': 'customer'}
        assert classes.parse_from(['order o']) == {'o': 'order'}
        assert classes.parse_from({'o': 'order'}) == {'o': 'order'}

    # connection tests
    def test_SqliteConnection_raises_errors_for_invalid_use(self):
        with self.assertRaises(TypeError) as e:
            classes.SqliteConnection({'a': 1})
        assert str(e.exception) == 'connection_info must be str or bytes'

    def test_SqliteConnection_uses_class_attribute(self):
        class Configured(classes.SqliteConnection):
            connection_info = ':memory:'
        assert Configured().connection_info == ':memory:'

    def test_SqliteConnection_memory_cache_keys_differ(self):
        other = classes.SqliteConnection(':memory:')
        assert other.cache_key != self.db.cache_key
        assert classes.SqliteConnection('a.db').cache_key == 'a.db'

    def test_SqliteContext_rolls_back_on_error(self):
        with self.assertRaises(sqlite3.OperationalError):
            with self.db.cursor() as cursor:
                cursor.execute('insert into customer (name) values (?)', ['a'])
                cursor.execute('insert into missing values (1)')
        assert self.db.execute_raw('select count(*) from customer')[1] == [(0,)]

    # transaction tests
    def test_SqliteTransaction_commit_and_rollback(self):
        with self.db.begin_transaction() as transaction:
            assert self.db.in_transaction
            self.db.execute_raw('insert into customer (name) values (?)', ['a'])
        assert not transaction.is_active
        assert not self.db.in_transaction

        transaction = self.db.begin_transaction()
        self.db.execute_raw('insert into customer (name) values (?)', ['b'])
        transaction.rollback()
        rows = self.db.execute_raw('select name from customer')[1]
        assert rows == [('a',)]

    def test_SqliteTransaction_rolls_back_on_exception(self):
        with self.assertRaises(RuntimeError):
            with self.db.begin_transaction():
                self.db.execute_raw('insert into customer (name) values (?)', ['a'])
                raise RuntimeError('boom')
        assert self.db.execute_raw('select count(*) from customer')[1] == [(0,)]

    def test_SqliteTransaction_cannot_nest_or_finish_twice(self):
        transaction = self.db.begin_transaction()
        with self.assertRaises(packify.UsageError) as e:
            self.db.begin_transaction()
        assert str(e.exception) == 'a transaction is already active'
        transaction.commit()
        with self.assertRaises(packify.UsageError) as e:
            transaction.commit()
        assert str(e.exception) == 'transaction is not active'

    # command tests
    def test_SqliteCommand_insert_returns_generated_key(self):
        command = self.db.create_command()
        keys = command.insert_returning_keys('order', {'total': 9.5})
        assert keys == {'id': 1}
        keys = command.insert_returning_keys('order', {'id': 40, 'total': 1})
        assert keys == {'id': 40}
        assert command.insert_returning_keys('order', {}) == {'id': 41}

    def test_SqliteCommand_insert_returns_supplied_text_key(self):
        keys = self.db.create_command().insert_returning_keys('code', {'code': 'x1'})
        assert keys == {'code': 'x1'}

    def test_SqliteCommand_insert_keyless_table(self):
        assert self.db.create_command().insert_returning_keys('tag', {'name': 'a'}) == {}

    def test_SqliteCommand_insert_rejected_returns_None(self):
        self.db.execute_raw('create trigger reject_order before insert on "order" ' +
            'when new.total < 0 begin select raise(ignore); end')
        self.db.execute_raw('create trigger reject_tag before insert on tag ' +
            'when new.name is null begin select raise(ignore); end')
        command = self.db.create_command()
        assert command.insert_returning_keys('order', {'total': -1}) is None
        assert command.insert_returning_keys('tag', {'color': 'red'}) is None
        assert self.db.execute_raw('select count(*) from "order"')[1] == [(0,)]

    def test_SqliteCommand_update_and_delete(self):
        command = self.db.create_command()
        command.insert_returning_keys('order', {'total': 1, 'status': 'new'})
        command.insert_returning_keys('order', {'total': 2, 'status': 'new'})
        assert command.update('order', {'status': 'paid'}, {'id': 1}) == 1
        assert command.update('order', {}, {'id': 1}) == 0
        assert command.update_counters('order', {'total': 10}, {'status': 'new'}) == 1
        rows = self.db.execute_raw('select id, total, status from "order" order by id')[1]
        assert rows == [(1, 1.0, 'paid'), (2, 12.0, 'new')]
        assert command.delete('order', {'id': [1, 2]}) == 2

    # query tests
    def test_ActiveQuery_requires_connection(self):
        Order.connection = None
        with self.assertRaises(packify.UsageError) as e:
            classes.ActiveQuery(Order)
        assert str(e.exception) == 'no connection configured for Order'

    def test_ActiveQuery_from_and_alias(self):
        query = classes.ActiveQuery(Order)
        assert query.tables_used_in_from() == {'order': 'order'}
        assert query.primary_table() == 'order'
        query.alias('o')
        assert query.tables_used_in_from() == {'o': 'order'}
        assert query.primary_table() == 'o'
        query.from_('customer c, order o')
        assert query.primary_table() == 'c'

    def test_ActiveQuery_to_sql(self):
        query = classes.ActiveQuery(Order).alias('o').where({'o.id': 1}) \
            .and_where({'status': ['a', 'b']}) \
            .join('customer c', '[[c.id]] = [[o.customer_id]]', 'left') \
            .order_by('o.id', 'desc').limit(5).offset(10)
        sql, params = query.to_sql()
        assert sql == 'SELECT "o".* FROM "order" "o" LEFT JOIN "customer" "c" ' + \
            'ON "c"."id" = "o"."customer_id" WHERE ("o"."id" = ?) AND ' + \
            '("status" IN (?,?)) ORDER BY "o"."id" DESC LIMIT 5 OFFSET 10', sql
        assert params == [1, 'a', 'b']

    def test_ActiveQuery_validates_input(self):
        query = classes.ActiveQuery(Order)
        with self.assertRaises(TypeError) as e:
            query.where('id = 1')
        assert str(e.exception) == 'condition must be dict or None'
        with self.assertRaises(ValueError) as e:
            query.order_by('id', 'sideways')
        assert str(e.exception) == 'direction must be asc or desc'
        with self.assertRaises(ValueError) as e:
            query.limit(0)
        assert str(e.exception) == 'limit must be positive int'

    def test_ActiveQuery_fetches_and_populates(self):
        command = self.db.create_command()
        for total in (1.0, 2.0, 3.0):
            command.insert_returning_keys('order', {'total': total, 'status': 'new'})

        query = classes.ActiveQuery(Order).where({'status': 'new'}).order_by('total', 'desc')
        first = query.one()
        assert isinstance(first, Order)
        assert first.row == {'id': 3, 'customer_id': None, 'total': 3.0, 'status': 'new'}
        assert first.db is self.db
        assert len(query.all()) == 3
        assert query.count() == 3
        assert query.exists()

        rows = classes.ActiveQuery(Order).where({'id': 2}).as_dict().all()
        assert rows == [{'id': 2, 'customer_id': None, 'total': 2.0, 'status': 'new'}]
        assert classes.ActiveQuery(Order).where({'id': 99}).one() is None
        assert not classes.ActiveQuery(Order).where({'id': []}).exists()

    def test_ActiveQuery_select_and_offset_without_limit(self):
        command = self.db.create_command()
        for total in (1.0, 2.0, 3.0):
            command.insert_returning_keys('order', {'total': total})
        rows = classes.ActiveQuery(Order).select(['id']).order_by('id').offset(1).as_dict().all()
        assert rows == [{'id': 2}, {'id': 3}]


if __name__ == '__main__':
    unittest.main()
