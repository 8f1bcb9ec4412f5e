from context import quoter, interfaces
import unittest


class TestQuoter(unittest.TestCase):
    def setUp(self) -> None:
        self.quoter = quoter.Quoter()
        return super().setUp()

    def test_Quoter_implements_QuoterProtocol(self):
        assert isinstance(self.quoter, interfaces.QuoterProtocol)

    def test_quote_table_name(self):
        assert self.quoter.quote_table_name('order') == '"order"'
        assert self.quoter.quote_table_name('"order"') == '"order"'
        assert self.quoter.quote_table_name('main.order') == '"main"."order"'
        assert self.quoter.quote_table_name('{{order}}') == '{{order}}'
        assert self.quoter.quote_table_name('(select 1)') == '(select 1)'

    def test_quote_column_name(self):
        assert self.quoter.quote_column_name('id') == '"id"'
        assert self.quoter.quote_column_name('*') == '*'
        assert self.quoter.quote_column_name('order.id') == '"order"."id"'
        assert self.quoter.quote_column_name('"order"."id"') == '"order"."id"'
        assert self.quoter.quote_column_name('[[id]]') == '[[id]]'
        assert self.quoter.quote_column_name('count(id)') == 'count(id)'

    def test_quote_sql_replaces_placeholders(self):
        sql = 'select [[id]] from {{order}} where {{order}}.[[name]] = ?'
        expected = 'select "id" from "order" where "order"."name" = ?'
        assert self.quoter.quote_sql(sql) == expected
        assert self.quoter.quote_sql('"t".[[id]]') == '"t"."id"'
        assert self.quoter.quote_sql('plain') == 'plain'

    def test_quote_sql_applies_table_prefix(self):
        prefixed = quoter.Quoter(table_prefix='app_')
        assert prefixed.quote_sql('{{%order}}') == '"app_order"'

    def test_custom_quote_characters(self):
        mysql = quoter.Quoter('`')
        assert mysql.quote_column_name('t.id') == '`t`.`id`'
        mssql = quoter.Quoter(('[', ']'))
        assert mssql.quote_table_name('order') == '[order]'
        assert mssql.unquote_simple_table_name('[order]') == 'order'

    def test_unquote(self):
        assert self.quoter.unquote_simple_table_name('"order"') == 'order'
        assert self.quoter.unquote_simple_column_name('"id"') == 'id'
        assert self.quoter.unquote_simple_column_name('id') == 'id'

    def test_raises_TypeError_for_invalid_input(self):
        with self.assertRaises(TypeError) as e:
            self.quoter.quote_table_name(1)
        assert str(e.exception) == 'name must be str'
        with self.assertRaises(TypeError) as e:
            quoter.Quoter(table_prefix=None)
        assert str(e.exception) == 'table_prefix must be str'


if __name__ == '__main__':
    unittest.main()
