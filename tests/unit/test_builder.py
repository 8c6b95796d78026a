"""
Unit tests for SQLBuilder statement rendering.
"""
import pytest
from activemodel.builder import SQLBuilder
from activemodel.exceptions import BuilderError
from activemodel.strategy import get_strategy


@pytest.fixture
def sqlite_builder():
    return SQLBuilder(get_strategy('sqlite'), 'orders')


@pytest.fixture
def pg_builder():
    return SQLBuilder(get_strategy('postgresql'), 'orders')


@pytest.fixture
def oracle_builder():
    return SQLBuilder(get_strategy('oracle'), 'orders')


class TestSelect:
    """SELECT rendering."""

    def test_defaults(self, sqlite_builder):
        sql, values = sqlite_builder.build()
        assert sql == 'SELECT * FROM "orders"'
        assert values == []

    def test_all_clauses(self, sqlite_builder):
        sql, values = (sqlite_builder
                       .select(['state', 'COUNT(*) AS n'])
                       .joins('JOIN people p ON p.person_id = orders.id')
                       .where({'paid': True})
                       .group('state')
                       .having('COUNT(*) > 1')
                       .order('state')
                       .limit(10)
                       .offset(20)
                       .build())
        assert sql == ('SELECT state, COUNT(*) AS n FROM "orders" '
                       'JOIN people p ON p.person_id = orders.id '
                       'WHERE "paid" = ? GROUP BY state HAVING COUNT(*) > 1 '
                       'ORDER BY state LIMIT 10 OFFSET 20')
        assert values == [True]

    def test_from_replaces_table(self, sqlite_builder):
        sql, _ = sqlite_builder.from_('orders o').build()
        assert sql == 'SELECT * FROM orders o'

    def test_where_shorthand_is_one_condition(self, sqlite_builder):
        sql, values = sqlite_builder.where('amount > ? AND state IN (?)', 5, ['open', 'paid']).build()
        assert sql == 'SELECT * FROM "orders" WHERE amount > ? AND state IN (?, ?)'
        assert values == [5, 'open', 'paid']

    def test_several_sources_parenthesized(self, sqlite_builder):
        sql, values = sqlite_builder.where({'state': 'open'}, ['amount > ?', 5]).build()
        assert sql == 'SELECT * FROM "orders" WHERE ("state" = ?) AND (amount > ?)'
        assert values == ['open', 5]

    def test_alias_map_on_conditions(self):
        builder = SQLBuilder(get_strategy('sqlite'), 'orders', alias_map={'total': 'amount'})
        sql, _ = builder.where({'total': 5}).build()
        assert sql == 'SELECT * FROM "orders" WHERE "amount" = ?'

    def test_offset_only_sqlite(self, sqlite_builder):
        sql, _ = sqlite_builder.offset(5).build()
        assert sql == 'SELECT * FROM "orders" LIMIT -1 OFFSET 5'

    def test_offset_only_postgres(self, pg_builder):
        sql, _ = pg_builder.offset(5).build()
        assert sql == 'SELECT * FROM "orders" LIMIT ALL OFFSET 5'

    def test_oracle_row_number_wrap(self, oracle_builder):
        sql, _ = oracle_builder.order('id').limit(2).offset(1).build()
        assert sql == ('SELECT * FROM (SELECT t.*, ROWNUM rnum__ FROM '
                       '(SELECT * FROM orders ORDER BY id) t) p '
                       'WHERE p.rnum__ <= 3 AND p.rnum__ > 1')

    def test_bad_condition_raises_before_execution(self, sqlite_builder):
        with pytest.raises(BuilderError):
            sqlite_builder.where(['id = ? AND state = ?', 1]).build()

    def test_str_renders_sql(self, sqlite_builder):
        assert str(sqlite_builder.limit(1)) == 'SELECT * FROM "orders" LIMIT 1'


class TestInsert:
    """INSERT rendering."""

    def test_columns_in_data_order(self, sqlite_builder):
        sql, values = sqlite_builder.insert({'state': 'open', 'amount': 3}).build()
        assert sql == 'INSERT INTO "orders"("state", "amount") VALUES(?, ?)'
        assert values == ['open', 3]

    def test_sequence_fills_pk(self, pg_builder):
        sql, values = pg_builder.insert({'state': 'open'}, pk='id', sequence='orders_id_seq').build()
        assert sql == ('INSERT INTO "orders"("id", "state") '
                       "VALUES(nextval('orders_id_seq'), ?)")
        assert values == ['open']

    def test_oracle_sequence(self, oracle_builder):
        sql, _ = oracle_builder.insert({'state': 'open'}, pk='id', sequence='orders_seq').build()
        assert sql == 'INSERT INTO orders(id, state) VALUES(orders_seq.nextval, ?)'

    def test_sequence_ignored_without_sequence_support(self, sqlite_builder):
        sql, _ = sqlite_builder.insert({'state': 'open'}, pk='id', sequence='orders_id_seq').build()
        assert sql == 'INSERT INTO "orders"("state") VALUES(?)'

    def test_explicit_pk_and_sequence(self, pg_builder):
        with pytest.raises(BuilderError):
            pg_builder.insert({'id': 1}, pk='id', sequence='orders_id_seq').build()

    def test_requires_mapping(self, sqlite_builder):
        with pytest.raises(BuilderError):
            sqlite_builder.insert(['state'])

    def test_requires_columns(self, sqlite_builder):
        with pytest.raises(BuilderError):
            sqlite_builder.insert({}).build()


class TestUpdate:
    """UPDATE rendering."""

    def test_set_values_precede_where_values(self, sqlite_builder):
        sql, values = sqlite_builder.update({'state': 'shipped', 'paid': True}).where({'id': 3}).build()
        assert sql == 'UPDATE "orders" SET "state" = ?, "paid" = ? WHERE "id" = ?'
        assert values == ['shipped', True, 3]

    def test_raw_set_expression(self, sqlite_builder):
        sql, values = sqlite_builder.update('amount = amount * 2').where(['state = ?', 'open']).build()
        assert sql == 'UPDATE "orders" SET amount = amount * 2 WHERE state = ?'
        assert values == ['open']

    def test_empty_data(self, sqlite_builder):
        with pytest.raises(BuilderError):
            sqlite_builder.update({})

    def test_limited_update_postgres(self, pg_builder):
        sql, values = pg_builder.update({'paid': True}).where({'state': 'open'}).order('id').limit(1).build()
        assert sql == ('UPDATE "orders" SET "paid" = ? WHERE ctid IN '
                       '(SELECT ctid FROM "orders" WHERE "state" = ? ORDER BY id LIMIT 1)')
        assert values == [True, 'open']


class TestDelete:
    """DELETE rendering."""

    def test_plain(self, sqlite_builder):
        sql, values = sqlite_builder.delete({'id': [1, 2]}).build()
        assert sql == 'DELETE FROM "orders" WHERE "id" IN (?, ?)'
        assert values == [1, 2]

    def test_unconditional(self, sqlite_builder):
        assert sqlite_builder.delete().build() == ('DELETE FROM "orders"', [])

    def test_limited_delete_sqlite(self, sqlite_builder):
        sql, values = sqlite_builder.delete({'state': 'open'}).order('id DESC').limit(2).build()
        assert sql == ('DELETE FROM "orders" WHERE rowid IN '
                       '(SELECT rowid FROM "orders" WHERE "state" = ? ORDER BY id DESC LIMIT 2)')
        assert values == ['open']

    def test_limited_delete_oracle(self, oracle_builder):
        with pytest.raises(BuilderError, match='oracle'):
            oracle_builder.delete({'state': 'open'}).limit(2).build()

    def test_unlimited_delete_oracle(self, oracle_builder):
        sql, _ = oracle_builder.delete({'state': 'open'}).build()
        assert sql == 'DELETE FROM orders WHERE state = ?'


def test_reverse_order_reexported():
    from activemodel.builder import reverse_order
    assert reverse_order('id') == 'id DESC'
