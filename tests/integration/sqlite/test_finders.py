"""
Finders, counts and dynamic finders against the seeded SQLite database.
"""
import decimal

import pytest
from activemodel.exceptions import BuilderError, RecordNotFound
from activemodel.exceptions import UnknownOptionError
from activemodel.strategy import RowNumberPagination, SQLiteStrategy


class TestFindByPk:

    def test_single(self, shop):
        order = shop.Order.find(1)
        assert order.id == 1
        assert order.state == 'open'
        assert order.amount == decimal.Decimal('10.5')
        assert order.paid is False
        assert order.created_at is None
        assert not order.is_new_record()
        assert not order.is_dirty()

    def test_several(self, shop):
        orders = shop.Order.find(3, 1)
        assert [o.id for o in orders] == [1, 3]

    def test_nested_ids_are_flattened(self, shop):
        orders = shop.Order.find([1, [2, 3]])
        assert [o.id for o in orders] == [1, 2, 3]

    def test_missing(self, shop):
        with pytest.raises(RecordNotFound) as exc_info:
            shop.Order.find(5)
        assert 'Order' in str(exc_info.value)
        assert '5' in str(exc_info.value)

    def test_partially_missing(self, shop):
        with pytest.raises(RecordNotFound, match=r'found 1, but was looking for 2'):
            shop.Order.find(1, 99)

    def test_without_id(self, shop):
        with pytest.raises(RecordNotFound):
            shop.Order.find()

    def test_custom_pk(self, shop):
        person = shop.Person.find(2)
        assert person.first_name == 'Ada'
        assert person.id == 2

    def test_pk_with_conditions(self, shop):
        with pytest.raises(RecordNotFound):
            shop.Order.find(1, {'conditions': {'state': 'shipped'}})
        assert shop.Order.find(3, {'conditions': {'state': 'shipped'}}).id == 3


class TestFindAll:

    def test_all(self, shop):
        assert [o.id for o in shop.Order.all()] == [1, 2, 3, 4]

    def test_conditions_mapping(self, shop):
        orders = shop.Order.find('all', {'conditions': {'state': 'open'}})
        assert [o.id for o in orders] == [1, 2]

    def test_bare_mapping_is_conditions(self, shop):
        assert [o.id for o in shop.Order.all({'paid': True})] == [2, 3]

    def test_positional_conditions(self, shop):
        orders = shop.Order.all({'conditions': ['amount > ? AND state IN (?)', 6, ['open', 'shipped']]})
        assert [o.id for o in orders] == [1, 2, 3]

    def test_alias_in_conditions(self, shop):
        assert [o.id for o in shop.Order.all({'conditions': {'total': 20}})] == [2]

    def test_null_condition(self, shop):
        assert len(shop.Order.all({'conditions': {'created_at': None}})) == 4

    def test_empty_in_matches_nothing(self, shop):
        assert shop.Order.all({'conditions': {'id': []}}) == []

    def test_order_limit_offset(self, shop):
        orders = shop.Order.all({'order': 'amount DESC', 'limit': 2, 'offset': 1})
        assert [o.id for o in orders] == [2, 1]

    def test_select_and_group(self, shop):
        rows = shop.Order.all({'select': 'state, COUNT(*) AS n', 'group': 'state',
                               'having': 'COUNT(*) > 1', 'order': 'state'})
        assert len(rows) == 1
        assert rows[0].state == 'open'
        assert rows[0].n == 2

    def test_readonly_option(self, shop):
        orders = shop.Order.all({'readonly': True})
        assert all(o.is_readonly() for o in orders)

    def test_unknown_option(self, shop):
        with pytest.raises(UnknownOptionError, match='colour'):
            shop.Order.all({'limit': 1, 'colour': 'red'})

    def test_malformed_conditions(self, shop):
        with pytest.raises(BuilderError):
            shop.Order.all({'conditions': ['id = ? AND state = ?', 1]})


class TestFirstLast:

    def test_first(self, shop):
        assert shop.Order.first().id == 1

    def test_last(self, shop):
        assert shop.Order.last().id == 4

    def test_last_with_order(self, shop):
        assert shop.Order.last({'order': 'amount'}).id == 3

    def test_first_nothing(self, shop):
        assert shop.Order.first({'conditions': {'state': 'lost'}}) is None

    def test_default_order(self, sqlite_conn):
        from activemodel import Model

        class Order(Model):
            default_order = 'amount DESC'

        assert Order.first().id == 3
        assert Order.last().id == 4


class TestRowNumberPagination:
    """Wrapping pagination adds rnum__, which hydration drops."""

    def test_pseudo_column_stripped(self, shop, monkeypatch):
        monkeypatch.setattr(SQLiteStrategy, 'pagination',
                            RowNumberPagination('ROW_NUMBER() OVER (ORDER BY t.id)'))
        orders = shop.Order.all({'limit': 2, 'offset': 1})
        assert sorted(o.id for o in orders) == [2, 3]
        for order in orders:
            assert 'rnum__' not in order.attributes()
            assert not order.has_attribute('rnum__')
        assert 'rnum__' in shop.Order.table().last_sql


class TestFindBySql:

    def test_readonly_models(self, shop):
        orders = shop.Order.find_by_sql('SELECT * FROM orders WHERE state = ?', ['open'])
        assert [o.id for o in orders] == [1, 2]
        assert all(o.is_readonly() for o in orders)

    def test_in_expansion(self, shop):
        orders = shop.Order.find_by_sql('SELECT * FROM orders WHERE id IN ? ORDER BY id', [[2, 4]])
        assert [o.id for o in orders] == [2, 4]

    def test_query_returns_cursor(self, shop):
        cursor = shop.Order.query('SELECT COUNT(*) AS n FROM orders WHERE paid = ?', True)
        try:
            assert cursor.fetchone() == {'n': 2}
        finally:
            cursor.close()


class TestCount:

    def test_all(self, shop):
        assert shop.Order.count() == 4

    def test_by_conditions(self, shop):
        assert shop.Order.count({'state': 'open'}) == 2

    def test_by_options(self, shop):
        assert shop.Order.count({'conditions': ['amount >= ?', 20]}) == 2

    def test_by_pk(self, shop):
        assert shop.Order.count(3) == 1
        assert shop.Order.count([1, 2, 99]) == 2

    def test_pk_and_conditions_both_apply(self, shop, mocker):
        spy = mocker.spy(shop.conn, 'query')
        assert shop.Order.count(1, {'conditions': {'state': 'shipped'}}) == 0
        assert spy.call_args.args[0] == (
            'SELECT COUNT(*) FROM "orders" WHERE ("state" = ?) AND ("id" = ?)')
        assert shop.Order.count(3, {'conditions': {'state': 'shipped'}}) == 1
        assert shop.Order.count([1, 2, 3], {'conditions': ['paid = ?', True]}) == 2
        assert not shop.Order.exists(1, {'conditions': {'state': 'cancelled'}})

    def test_exists(self, shop):
        assert shop.Order.exists(1)
        assert not shop.Order.exists(99)
        assert shop.Order.exists({'state': 'cancelled'})


class TestDynamicFinders:

    def test_find_by(self, shop):
        assert shop.Order.find_by_state('shipped').id == 3

    def test_find_by_nothing(self, shop):
        assert shop.Order.find_by_state('lost') is None

    def test_find_by_and(self, shop):
        assert shop.Order.find_by_state_and_paid('open', True).id == 2

    def test_find_all_by_or(self, shop):
        orders = shop.Order.find_all_by_state_or_paid('cancelled', True)
        assert [o.id for o in orders] == [2, 3, 4]

    def test_find_all_by_with_options(self, shop):
        orders = shop.Order.find_all_by_state('open', {'order': 'id DESC'})
        assert [o.id for o in orders] == [2, 1]

    def test_find_all_by_alias(self, shop):
        assert [o.id for o in shop.Order.find_all_by_total(5)] == [4]

    def test_count_by(self, shop):
        assert shop.Order.count_by_paid(False) == 2

    def test_find_or_create_by_existing(self, shop):
        person = shop.Person.find_or_create_by_first_name('Ada')
        assert person.person_id == 2
        assert shop.Person.count() == 2

    def test_find_or_create_by_creates(self, shop):
        person = shop.Person.find_or_create_by_first_name_and_last_name('Grace', 'Hopper')
        assert not person.is_new_record()
        assert person.person_id == 3
        assert shop.Person.find(3).last_name == 'Hopper'

    def test_find_or_create_by_or_rejected(self, shop):
        with pytest.raises(BuilderError):
            shop.Person.find_or_create_by_first_name_or_last_name('a', 'b')

    def test_mixed_and_or(self, shop):
        with pytest.raises(BuilderError):
            shop.Order.find_by_state_and_paid_or_amount('open', True, 5)

    def test_value_count_mismatch(self, shop):
        with pytest.raises(BuilderError):
            shop.Order.find_by_state_and_paid('open')

    def test_unknown_class_attribute(self, shop):
        with pytest.raises(AttributeError):
            shop.Order.something_else  # noqa: B018
