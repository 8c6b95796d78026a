"""
Create, update and delete through models on SQLite.
"""
import copy
import datetime
import decimal

import pytest
from activemodel import Model
from activemodel.exceptions import BuilderError, ReadOnlyError
from activemodel.exceptions import UndefinedPropertyError


class TestCreate:

    def test_create_assigns_generated_id(self, shop):
        order = shop.Order.create({'state': 'pending', 'amount': '12.50'})
        assert order.id == 5
        assert not order.is_new_record()
        assert not order.is_dirty()
        found = shop.Order.find(5)
        assert found.state == 'pending'
        assert found.amount == decimal.Decimal('12.50')

    def test_column_defaults_fill_new_records(self, shop):
        order = shop.Order()
        assert order.state == 'open'
        assert order.paid is False
        assert order.id is None
        assert order.is_new_record()

    def test_save_without_changes_inserts_defaults(self, shop):
        order = shop.Order()
        assert order.save()
        assert shop.Order.find(order.id).state == 'open'

    def test_alias_assignment(self, shop):
        order = shop.Order.create({'total': '7.25'})
        assert order.amount == decimal.Decimal('7.25')
        assert order.total == order.amount
        assert shop.Order.find(order.id).total == decimal.Decimal('7.25')

    def test_values_are_cast_on_assignment(self, shop):
        order = shop.Order()
        order.paid = 'yes'
        order.amount = 3
        assert order.paid is True
        assert order.amount == decimal.Decimal(3)

    def test_timestamps(self, shop):
        order = shop.Order({'state': 'open'})
        order.set_timestamps()
        assert isinstance(order.created_at, datetime.datetime)
        order.save()
        found = shop.Order.find(order.id)
        assert found.created_at == order.created_at
        assert found.updated_at == order.updated_at

    def test_explicit_pk_unguarded(self, shop):
        person = shop.Person.create({'person_id': 10, 'first_name': 'Zed'}, guard_attributes=False)
        assert person.person_id == 10
        assert shop.Person.find(10).first_name == 'Zed'


class TestUpdate:

    def test_update_changed_attributes(self, shop):
        order = shop.Order.find(1)
        order.state = 'shipped'
        assert order.save()
        assert not order.is_dirty()
        assert shop.Order.find(1).state == 'shipped'
        assert shop.Order.find(2).state == 'open'

    def test_nothing_dirty_runs_no_statement(self, shop, mocker):
        order = shop.Order.find(1)
        spy = mocker.spy(shop.conn, 'query')
        assert order.save()
        assert spy.call_count == 0

    def test_double_assignment_binds_final_value_once(self, shop, mocker):
        order = shop.Order.find(1)
        order.state = 'packed'
        order.state = 'shipped'
        assert order.dirty_attributes() == {'state': 'shipped'}
        spy = mocker.spy(shop.conn, 'query')
        order.save()
        assert spy.call_count == 1
        sql, values = spy.call_args.args[-2:]
        assert sql == 'UPDATE "orders" SET "state" = ? WHERE "id" = ?'
        assert values == ('shipped', 1)

    def test_same_value_still_flags(self, shop):
        order = shop.Order.find(1)
        order.state = 'open'
        assert order.attribute_is_dirty('state')

    def test_update_attributes(self, shop):
        person = shop.Person.find(1)
        assert person.update_attributes({'email': 'tito@example.org'})
        assert shop.Person.find(1).email == 'tito@example.org'

    def test_update_attribute(self, shop):
        order = shop.Order.find(4)
        assert order.update_attribute('paid', True)
        assert shop.Order.find(4).paid is True

    def test_reload_discards_changes(self, shop):
        order = shop.Order.find(1)
        order.state = 'lost'
        order.reload()
        assert order.state == 'open'
        assert not order.is_dirty()


class TestDelete:

    def test_delete(self, shop):
        order = shop.Order.find(2)
        assert order.delete()
        assert shop.Order.count() == 3
        assert not shop.Order.exists(2)

    def test_delete_all_with_conditions(self, shop):
        assert shop.Order.delete_all({'conditions': {'state': 'open'}}) == 2
        assert shop.Order.count() == 2

    def test_delete_all_limited(self, shop):
        assert shop.Order.delete_all({'conditions': {'paid': False}, 'order': 'id', 'limit': 1}) == 1
        assert not shop.Order.exists(1)
        assert shop.Order.exists(4)

    def test_delete_all_everything(self, shop):
        assert shop.Order.delete_all() == 4

    @pytest.mark.parametrize('conditions', [{}, []])
    def test_delete_all_rejects_empty_conditions(self, shop, mocker, conditions):
        spy = mocker.spy(shop.conn, 'query')
        with pytest.raises(BuilderError):
            shop.Order.delete_all({'conditions': conditions})
        assert spy.call_count == 0
        assert shop.Order.count() == 4


class TestUpdateAll:

    def test_mapping(self, shop):
        assert shop.Order.update_all({'set': {'paid': True}, 'conditions': {'state': 'open'}}) == 2
        assert shop.Order.count({'paid': True}) == 3

    def test_set_expression(self, shop):
        assert shop.Order.update_all({'set': 'amount = amount * 2', 'conditions': ['id = ?', 4]}) == 1
        assert shop.Order.find(4).amount == decimal.Decimal(10)

    def test_alias_in_set(self, shop):
        shop.Order.update_all({'set': {'total': 1}, 'conditions': {'id': 1}})
        assert shop.Order.find(1).amount == decimal.Decimal(1)

    def test_requires_set(self, shop):
        with pytest.raises(BuilderError):
            shop.Order.update_all({'conditions': {'state': 'open'}})

    def test_rejects_empty_conditions(self, shop, mocker):
        spy = mocker.spy(shop.conn, 'query')
        with pytest.raises(BuilderError, match='Empty condition mapping'):
            shop.Order.update_all({'set': {'state': 'void'}, 'conditions': {}})
        assert spy.call_count == 0
        assert shop.Order.count({'state': 'void'}) == 0


class TestReadonly:

    def test_find_by_sql_models_cannot_save(self, shop):
        order = shop.Order.find_by_sql('SELECT * FROM orders WHERE id = ?', 1)[0]
        order.state = 'shipped'
        with pytest.raises(ReadOnlyError, match=r'Order\.save\(\)'):
            order.save()

    def test_readonly_cannot_delete(self, shop):
        order = shop.Order.find(1)
        order.readonly()
        with pytest.raises(ReadOnlyError):
            order.delete()
        assert shop.Order.exists(1)


class TestMassAssignment:

    def test_protected_attribute_skipped(self, shop):
        person = shop.Person({'person_id': 9, 'first_name': 'Bob'})
        assert person.person_id is None
        assert person.first_name == 'Bob'

    def test_accessible_whitelist(self, sqlite_conn):
        class Order(Model):
            attr_accessible = ['state']

        order = Order({'state': 'shipped', 'amount': 99})
        assert order.state == 'shipped'
        assert order.amount is None

    def test_undefined_names_collected(self, shop):
        with pytest.raises(UndefinedPropertyError) as exc_info:
            shop.Person({'first_name': 'Bob', 'nickname': 'B', 'age': 3})
        assert exc_info.value.names == ['nickname', 'age']
        assert 'Person.nickname, age' in str(exc_info.value)

    def test_set_unknown_attribute(self, shop):
        order = shop.Order.find(1)
        with pytest.raises(UndefinedPropertyError):
            order.colour = 'red'

    def test_read_unknown_attribute(self, shop):
        order = shop.Order.find(1)
        with pytest.raises(UndefinedPropertyError):
            order.colour  # noqa: B018
        assert getattr(order, 'colour', 'none') == 'none'

    def test_raw_column_names_accepted(self, shop):
        order = shop.Order({'STATE': 'shipped'})
        assert order.state == 'shipped'


class TestCallbacks:

    def test_before_save_abort(self, sqlite_conn):
        class Order(Model):
            def before_save(self):
                return self.state != 'frozen'

        order = Order.create({'state': 'frozen'})
        assert order.is_new_record()
        assert Order.count() == 4

    def test_hooks_run_in_order(self, sqlite_conn):
        calls = []

        class Order(Model):
            before_save = [lambda order: calls.append('before_save')]
            before_create = [lambda order: calls.append('before_create')]
            after_create = [lambda order: calls.append(f'after_create {order.id}')]
            after_save = [lambda order: calls.append('after_save')]

        Order.create({'state': 'open'})
        assert calls == ['before_save', 'before_create', 'after_save', 'after_create 5']

    def test_after_construct_runs_for_found_records(self, sqlite_conn):
        seen = []

        class Order(Model):
            def after_construct(self):
                seen.append(self.id)

        Order.all()
        assert seen == [1, 2, 3, 4]

    def test_before_destroy_abort(self, sqlite_conn):
        class Order(Model):
            def before_destroy(self):
                return False

        assert Order.find(1).delete() is False
        assert Order.exists(1)


class TestValidation:

    @pytest.fixture
    def checked_order(self, sqlite_conn):
        class Order(Model):
            def validate(self):
                if self.amount is not None and self.amount < 0:
                    self.errors.append('amount must not be negative')

        return Order

    def test_invalid_not_saved(self, checked_order):
        order = checked_order({'amount': -1})
        assert order.save() is False
        assert order.errors == ['amount must not be negative']
        assert order.is_invalid()
        assert checked_order.count() == 4

    def test_skip_validation(self, checked_order):
        order = checked_order({'amount': -1})
        assert order.save(validate=False)
        assert not order.is_new_record()

    def test_valid(self, checked_order):
        order = checked_order({'amount': 1})
        assert order.is_valid()
        assert order.errors == []


class TestCopy:

    def test_copy_is_clean(self, shop):
        order = shop.Order.find(1)
        order.state = 'shipped'
        clone = copy.copy(order)
        assert clone.state == 'shipped'
        assert not clone.is_dirty()
        clone.state = 'cancelled'
        assert order.state == 'shipped'
