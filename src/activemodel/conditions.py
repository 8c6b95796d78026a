"""
Condition representations and their compilation to positional SQL.

A condition is exactly one of:

- ``Raw(sql)``: a verbatim fragment with no values.
- ``Positional(fragment, *values)``: a fragment with ``?`` (or ``%s``)
  placeholders and parallel values.
- ``EqualityMap(mapping)``: ``"col" = ?`` comparisons joined by AND.
- ``Derived(fields, values, joiner)``: field/value pairs joined by AND or OR,
  usually parsed from a finder name such as ``name_and_state``.

``compile_condition`` turns any of them into a ``CompiledCondition`` whose
placeholder count always equals its value count. Compilation has no side
effects and raises ``BuilderError`` before anything reaches the backend.
"""
import functools
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from activemodel.exceptions import BuilderError
from activemodel.sql import compile_fragment, make_placeholders, quote_identifier
from activemodel.utils import isiterable

__all__ = [
    'Raw',
    'Positional',
    'EqualityMap',
    'Derived',
    'CompiledCondition',
    'as_condition',
    'compile_condition',
    'compile_conditions',
]


class CompiledCondition(NamedTuple):
    """SQL fragment with canonical placeholders and its bind values."""
    sql: str
    values: tuple

    @property
    def placeholder_count(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class Raw:
    sql: str


@dataclass(frozen=True, init=False)
class Positional:
    fragment: str
    values: tuple = ()

    def __init__(self, fragment: str, *values: Any):
        object.__setattr__(self, 'fragment', fragment)
        object.__setattr__(self, 'values', tuple(values))


@dataclass(frozen=True)
class EqualityMap:
    mapping: Mapping[str, Any] = field(default_factory=dict)


_SPLIT_AND = '_and_'
_SPLIT_OR = '_or_'


@dataclass(frozen=True)
class Derived:
    fields: tuple
    values: tuple
    joiner: str = 'AND'

    def __post_init__(self):
        if self.joiner not in {'AND', 'OR'}:
            raise BuilderError(f'Joiner must be AND or OR, got {self.joiner!r}')
        if len(self.fields) != len(self.values):
            raise BuilderError(
                f'Expected {len(self.fields)} value(s) for {", ".join(self.fields)} '
                f'but got {len(self.values)}')

    @classmethod
    def split_name(cls, expr: str) -> tuple[list[str], str]:
        """Split ``name_and_state`` into fields and a joiner.

        >>> Derived.split_name('first_name_and_state')
        (['first_name', 'state'], 'AND')
        >>> Derived.split_name('name_or_email')
        (['name', 'email'], 'OR')
        """
        if not expr:
            raise BuilderError('Empty attribute expression')
        has_and = _SPLIT_AND in expr
        has_or = _SPLIT_OR in expr
        if has_and and has_or:
            raise BuilderError(f'Cannot mix AND and OR in {expr!r}')
        if has_or:
            return expr.split(_SPLIT_OR), 'OR'
        return expr.split(_SPLIT_AND), 'AND'

    @classmethod
    def from_string(cls, expr: str, values: Sequence[Any]) -> 'Derived':
        """Build from a finder expression and positional values."""
        fields, joiner = cls.split_name(expr)
        if any(not f for f in fields):
            raise BuilderError(f'Malformed attribute expression {expr!r}')
        return cls(tuple(fields), tuple(values), joiner)

    def to_mapping(self) -> dict[str, Any]:
        """Field -> value mapping, used to create records from a finder."""
        return dict(zip(self.fields, self.values))


def as_condition(value: Any) -> Raw | Positional | EqualityMap | Derived:
    """Coerce user input into a condition.

    - ``str`` -> Raw
    - mapping -> EqualityMap
    - list/tuple whose head is a string -> Positional
    - an existing condition is returned unchanged

    >>> as_condition('id > 3')
    Raw(sql='id > 3')
    >>> as_condition(['id = ?', 3])
    Positional(fragment='id = ?', values=(3,))
    """
    if isinstance(value, (Raw, Positional, EqualityMap, Derived)):
        return value
    if isinstance(value, str):
        return Raw(value)
    if isinstance(value, Mapping):
        return EqualityMap(dict(value))
    if isinstance(value, (list, tuple)) and value:
        head, *rest = value
        if not isinstance(head, str):
            raise BuilderError(f'Positional conditions must start with a SQL string, got {head!r}')
        if any(isinstance(v, Mapping) for v in rest):
            raise BuilderError('Cannot mix a mapping with positional condition values')
        if len(rest) == 0:
            return Raw(head)
        return Positional(head, *rest)
    raise BuilderError(f'Cannot build a condition from {value!r}')


QuoteFunc = Callable[[str], str]


def _compile_pairs(pairs: Sequence[tuple[str, Any]], joiner: str, quote: QuoteFunc,
                   name_map: Mapping[str, str]) -> CompiledCondition:
    parts = []
    values: list[Any] = []
    for name, value in pairs:
        column = quote(name_map.get(name, name))
        if value is None:
            parts.append(f'{column} IS NULL')
        elif isiterable(value):
            items = list(value)
            if not items:
                parts.append(f'{column} IN (NULL)')
            else:
                parts.append(f'{column} IN ({make_placeholders(len(items))})')
                values.extend(items)
        else:
            parts.append(f'{column} = ?')
            values.append(value)
    return CompiledCondition(f' {joiner} '.join(parts), tuple(values))


@functools.singledispatch
def compile_condition(condition: Any, quote: QuoteFunc = quote_identifier,
                      name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    """Compile a condition to ``(sql, values)``.

    Args:
        condition: Raw, Positional, EqualityMap or Derived (or input accepted
            by ``as_condition``)
        quote: identifier quoting function of the dialect
        name_map: attribute or alias name -> column name

    Raises
        BuilderError: on malformed input or a placeholder/value count mismatch
    """
    return compile_condition(as_condition(condition), quote, name_map)


@compile_condition.register
def _(condition: Raw, quote: QuoteFunc = quote_identifier,
      name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    return CompiledCondition(condition.sql, ())


@compile_condition.register
def _(condition: Positional, quote: QuoteFunc = quote_identifier,
      name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    sql, values = compile_fragment(condition.fragment, condition.values)
    return CompiledCondition(sql, tuple(values))


@compile_condition.register
def _(condition: EqualityMap, quote: QuoteFunc = quote_identifier,
      name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    if not condition.mapping:
        raise BuilderError('Empty condition mapping')
    return _compile_pairs(list(condition.mapping.items()), 'AND', quote, name_map or {})


@compile_condition.register
def _(condition: Derived, quote: QuoteFunc = quote_identifier,
      name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    return _compile_pairs(list(zip(condition.fields, condition.values)),
                          condition.joiner, quote, name_map or {})


def compile_conditions(conditions: Sequence[Any], quote: QuoteFunc = quote_identifier,
                       name_map: Mapping[str, str] | None = None) -> CompiledCondition:
    """Compile several conditions, each parenthesized, joined by AND.

    A single condition is not wrapped.

    >>> compile_conditions([Raw('a = 1'), Positional('b = ?', 2)])
    CompiledCondition(sql='(a = 1) AND (b = ?)', values=(2,))
    """
    compiled = [compile_condition(c, quote, name_map) for c in conditions if c is not None]
    compiled = [c for c in compiled if c.sql.strip()]
    if not compiled:
        return CompiledCondition('', ())
    if len(compiled) == 1:
        return compiled[0]
    sql = ' AND '.join(f'({c.sql})' for c in compiled)
    values = tuple(v for c in compiled for v in c.values)
    return CompiledCondition(sql, values)


_ORDER_DIRECTION = re.compile(r'\s+(asc|desc)\s*$', re.IGNORECASE)


def _split_top_level(expr: str) -> list[str]:
    """Split on commas outside parentheses."""
    parts, depth, current = [], 0, []
    for ch in expr:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        if ch == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
        else:
            current.append(ch)
    parts.append(''.join(current))
    return parts


def reverse_order(order: str | None) -> str | None:
    """Reverse every term of an ORDER BY expression.

    >>> reverse_order('name ASC, id')
    'name DESC, id DESC'
    >>> reverse_order('created_at desc')
    'created_at ASC'
    """
    if not order or not order.strip():
        return order
    reversed_parts = []
    for part in _split_top_level(order):
        term = part.strip()
        match = _ORDER_DIRECTION.search(term)
        if match:
            direction = 'DESC' if match.group(1).lower() == 'asc' else 'ASC'
            term = f'{term[:match.start()]} {direction}'
        else:
            term = f'{term} DESC'
        reversed_parts.append(term)
    return ', '.join(reversed_parts)
