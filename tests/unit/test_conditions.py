"""Unit tests for condition coercion and compilation."""
import pytest
from activemodel.conditions import CompiledCondition, Derived, EqualityMap
from activemodel.conditions import Positional, Raw, as_condition
from activemodel.conditions import compile_condition, compile_conditions
from activemodel.conditions import reverse_order
from activemodel.exceptions import BuilderError


class TestAsCondition:
    """Coercion of user input into conditions."""

    def test_string_is_raw(self):
        assert as_condition('id > 3') == Raw('id > 3')

    def test_mapping_is_equality_map(self):
        assert as_condition({'state': 'open'}) == EqualityMap({'state': 'open'})

    def test_list_with_values_is_positional(self):
        assert as_condition(['id = ? AND state = ?', 1, 'open']) == Positional(
            'id = ? AND state = ?', 1, 'open')

    def test_single_string_list_is_raw(self):
        assert as_condition(['id > 3']) == Raw('id > 3')

    def test_existing_condition_unchanged(self):
        condition = Derived(('a',), (1,))
        assert as_condition(condition) is condition

    def test_mapping_mixed_with_positional_values(self):
        with pytest.raises(BuilderError):
            as_condition(['state = ?', {'state': 'open'}])

    def test_non_string_head(self):
        with pytest.raises(BuilderError):
            as_condition([1, 2, 3])

    def test_unsupported_type(self):
        with pytest.raises(BuilderError):
            as_condition(42)


class TestEqualityMap:
    """Equality map compilation."""

    def test_iteration_order_and_counts(self):
        compiled = compile_condition(EqualityMap({'state': 'open', 'id': [1, 2]}))
        assert compiled.sql == '"state" = ? AND "id" IN (?, ?)'
        assert compiled.values == ('open', 1, 2)
        assert compiled.sql.count('?') == len(compiled.values)

    def test_none_is_is_null(self):
        compiled = compile_condition(EqualityMap({'deleted_at': None, 'state': 'open'}))
        assert compiled.sql == '"deleted_at" IS NULL AND "state" = ?'
        assert compiled.values == ('open',)

    def test_empty_sequence_is_always_false(self):
        compiled = compile_condition(EqualityMap({'id': []}))
        assert compiled.sql == '"id" IN (NULL)'
        assert compiled.values == ()

    def test_name_map_translates_aliases(self):
        compiled = compile_condition(EqualityMap({'total': 5}), name_map={'total': 'amount'})
        assert compiled.sql == '"amount" = ?'

    def test_custom_quote(self):
        compiled = compile_condition(EqualityMap({'state': 'x'}), quote=lambda name: name)
        assert compiled.sql == 'state = ?'

    def test_empty_mapping(self):
        with pytest.raises(BuilderError):
            compile_condition(EqualityMap({}))

    @pytest.mark.parametrize('mapping', [
        {'a': 1},
        {'a': 1, 'b': None, 'c': [1, 2, 3]},
        {'a': (), 'b': {4, 5}, 'c': 'x'},
    ])
    def test_placeholders_match_values(self, mapping):
        compiled = compile_condition(EqualityMap(mapping))
        assert compiled.sql.count('?') == compiled.placeholder_count


class TestPositional:
    """Positional fragment compilation."""

    def test_in_expansion(self):
        compiled = compile_condition(Positional('id IN (?) AND state = ?', [1, 2, 3], 'open'))
        assert compiled.sql == 'id IN (?, ?, ?) AND state = ?'
        assert compiled.values == (1, 2, 3, 'open')

    def test_empty_in(self):
        compiled = compile_condition(Positional('id IN ?', []))
        assert compiled.sql == 'id IN (NULL)'
        assert compiled.values == ()

    def test_is_none(self):
        compiled = compile_condition(Positional('deleted_at IS ? AND paid IS NOT ?', None, None))
        assert compiled.sql == 'deleted_at IS NULL AND paid IS NOT NULL'
        assert compiled.values == ()

    def test_percent_s_becomes_canonical(self):
        compiled = compile_condition(Positional('id = %s', 5))
        assert compiled.sql == 'id = ?'

    def test_count_mismatch(self):
        with pytest.raises(BuilderError, match='Parameter count mismatch'):
            compile_condition(Positional('id = ? AND state = ?', 5))


class TestDerived:
    """Conditions built from finder names."""

    def test_from_string_and(self):
        condition = Derived.from_string('state_and_paid', ['open', True])
        assert condition.joiner == 'AND'
        compiled = compile_condition(condition)
        assert compiled == CompiledCondition('"state" = ? AND "paid" = ?', ('open', True))

    def test_from_string_or(self):
        compiled = compile_condition(Derived.from_string('first_name_or_last_name', ['Tito', 'Tito']))
        assert compiled.sql == '"first_name" = ? OR "last_name" = ?'

    def test_mixed_joiners(self):
        with pytest.raises(BuilderError, match='Cannot mix'):
            Derived.from_string('a_and_b_or_c', [1, 2, 3])

    def test_count_mismatch(self):
        with pytest.raises(BuilderError):
            Derived.from_string('a_and_b', [1])

    def test_to_mapping(self):
        assert Derived.from_string('a_and_b', [1, 2]).to_mapping() == {'a': 1, 'b': 2}


class TestCompileConditions:
    """Several sources in one statement."""

    def test_each_source_parenthesized(self):
        compiled = compile_conditions([
            Raw('amount > 5'),
            ['state = ? OR state = ?', 'open', 'shipped'],
            {'id': [1, 2]},
        ])
        assert compiled.sql == ('(amount > 5) AND (state = ? OR state = ?) '
                                'AND ("id" IN (?, ?))')
        assert compiled.values == ('open', 'shipped', 1, 2)

    def test_single_source_not_wrapped(self):
        assert compile_conditions([{'id': 1}]).sql == '"id" = ?'

    def test_nothing(self):
        assert compile_conditions([]) == CompiledCondition('', ())


@pytest.mark.parametrize(('order', 'expected'), [
    ('id', 'id DESC'),
    ('id ASC', 'id DESC'),
    ('name desc, id', 'name ASC, id DESC'),
    ('coalesce(a, b) ASC', 'coalesce(a, b) DESC'),
    ('', ''),
    (None, None),
])
def test_reverse_order(order, expected):
    assert reverse_order(order) == expected
