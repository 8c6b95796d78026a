"""
Statement assembly for SELECT, INSERT, UPDATE and DELETE.

The builder produces SQL with canonical ``?`` placeholders together with the
ordered bind values. The connection converts the markers to the driver's
style right before execution, so the builder itself never looks at the
driver.

>>> from activemodel.strategy import get_strategy
>>> builder = SQLBuilder(get_strategy('sqlite'), 'orders')
>>> sql, values = builder.where({'state': 'open', 'id': [1, 2]}).limit(5).build()
>>> sql
'SELECT * FROM "orders" WHERE "state" = ? AND "id" IN (?, ?) LIMIT 5'
>>> values
['open', 1, 2]
"""
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Self

from activemodel.conditions import Positional, compile_conditions
from activemodel.conditions import reverse_order as _reverse_order
from activemodel.exceptions import BuilderError
from activemodel.sql import make_placeholders
from activemodel.strategy.base import DatabaseStrategy

__all__ = ['SQLBuilder', 'reverse_order']

logger = logging.getLogger(__name__)

SELECT = 'SELECT'
INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'


def reverse_order(order: str | None) -> str | None:
    """Reverse an ORDER BY expression, ``'a, b DESC'`` -> ``'a DESC, b ASC'``."""
    return _reverse_order(order)


class SQLBuilder:
    """Fluent statement builder for one table.

    Args:
        strategy: dialect strategy used for quoting, pagination and
            sequence expressions
        table: table name, optionally ``schema.table``; quoted on render
        alias_map: attribute or alias name -> column name, applied to
            mapping conditions and to INSERT/UPDATE data keys
    """

    def __init__(self, strategy: DatabaseStrategy, table: str,
                 alias_map: Mapping[str, str] | None = None) -> None:
        self.strategy = strategy
        self.table = table
        self.alias_map = dict(alias_map or {})

        self.operation = SELECT
        self._select = '*'
        self._from: str | None = None
        self._joins: str | None = None
        self._where: list[Any] = []
        self._order: str | None = None
        self._group: str | None = None
        self._having: str | None = None
        self._limit: int | None = None
        self._offset: int | None = None
        self._data: Mapping[str, Any] | str | None = None
        self._pk: str | None = None
        self._sequence: str | None = None

    def __repr__(self) -> str:
        return f'<SQLBuilder {self.operation} {self.table}>'

    def __str__(self) -> str:
        return self.build()[0]

    @property
    def quoted_table(self) -> str:
        return self.strategy.quote_identifier(self.table)

    def _column(self, name: str) -> str:
        return self.strategy.quote_identifier(self.alias_map.get(name, name))

    # Clauses

    def select(self, select: str | Sequence[str] | None) -> Self:
        if select:
            self._select = select if isinstance(select, str) else ', '.join(select)
        self.operation = SELECT
        return self

    def from_(self, from_sql: str | None) -> Self:
        """Replace the table in the FROM clause of a SELECT."""
        self._from = from_sql or None
        return self

    def joins(self, joins: str | Sequence[str] | None) -> Self:
        if joins:
            self._joins = joins if isinstance(joins, str) else ' '.join(joins)
        return self

    def where(self, *conditions: Any) -> Self:
        """Add condition sources, each compiled and parenthesized on its own.

        ``where('a = ? AND b = ?', 1, 2)`` is shorthand for a single
        positional condition.
        """
        if len(conditions) > 1 and isinstance(conditions[0], str):
            self._where.append(Positional(conditions[0], *conditions[1:]))
            return self
        self._where.extend(c for c in conditions if c is not None and c != '')
        return self

    def order(self, order: str | None) -> Self:
        self._order = order or None
        return self

    def group(self, group: str | None) -> Self:
        self._group = group or None
        return self

    def having(self, having: str | None) -> Self:
        self._having = having or None
        return self

    def limit(self, limit: int | None) -> Self:
        self._limit = None if limit is None else int(limit)
        return self

    def offset(self, offset: int | None) -> Self:
        self._offset = None if offset is None else int(offset)
        return self

    # Statement kinds

    def insert(self, data: Mapping[str, Any], pk: str | None = None,
               sequence: str | None = None) -> Self:
        """Turn the builder into an INSERT of data.

        When ``pk`` and ``sequence`` are given on a dialect with sequences,
        the pk column gets the sequence's next value.
        """
        if not isinstance(data, Mapping):
            raise BuilderError('Inserting requires a mapping of column -> value')
        self.operation = INSERT
        self._data = data
        self._pk = pk
        self._sequence = sequence
        return self

    def update(self, data: Mapping[str, Any] | str) -> Self:
        """Turn the builder into an UPDATE setting data.

        Args:
            data: column -> value mapping, or a raw ``SET`` expression
        """
        if isinstance(data, str):
            if not data.strip():
                raise BuilderError('Updating requires a non-empty SET expression')
        elif isinstance(data, Mapping):
            if not data:
                raise BuilderError('Updating requires at least one column')
        else:
            raise BuilderError('Updating requires a mapping or a SET expression')
        self.operation = UPDATE
        self._data = data
        return self

    def delete(self, *conditions: Any) -> Self:
        self.operation = DELETE
        return self.where(*conditions)

    # Rendering

    def _where_clause(self) -> tuple[str, list[Any]]:
        compiled = compile_conditions(self._where, self.strategy.quote_identifier,
                                      self.alias_map)
        if not compiled.sql:
            return '', []
        return f' WHERE {compiled.sql}', list(compiled.values)

    def _build_select(self) -> tuple[str, list[Any]]:
        sql = f'SELECT {self._select} FROM {self._from or self.quoted_table}'
        if self._joins:
            sql = f'{sql} {self._joins}'
        where, values = self._where_clause()
        sql = f'{sql}{where}'
        if self._group:
            sql = f'{sql} GROUP BY {self._group}'
        if self._having:
            sql = f'{sql} HAVING {self._having}'
        if self._order:
            sql = f'{sql} ORDER BY {self._order}'
        if self._limit is not None or self._offset is not None:
            sql = self.strategy.paginate(sql, self._limit, self._offset)
        return sql, values

    def _build_insert(self) -> tuple[str, list[Any]]:
        data = dict(self._data)
        columns = [self._column(k) for k in data]
        markers = [make_placeholders(1)] * len(data)
        values = list(data.values())

        if self._pk and self._sequence and self.strategy.uses_sequences:
            if self._pk in data:
                raise BuilderError(f'Cannot insert {self._pk} both explicitly and from a sequence')
            columns.insert(0, self._column(self._pk))
            markers.insert(0, self.strategy.next_sequence_value(self._sequence))

        if not columns:
            raise BuilderError('Inserting requires at least one column')

        sql = f'INSERT INTO {self.quoted_table}({", ".join(columns)}) VALUES({", ".join(markers)})'
        return sql, values

    def _build_update(self) -> tuple[str, list[Any]]:
        if isinstance(self._data, str):
            set_sql, values = self._data, []
        else:
            set_sql = ', '.join(f'{self._column(k)} = ?' for k in self._data)
            values = list(self._data.values())
        where, where_values = self._where_clause()
        verb = f'UPDATE {self.quoted_table} SET {set_sql}'
        sql = self.strategy.limit_modify(verb, self.quoted_table, where, self._order, self._limit)
        return sql, values + where_values

    def _build_delete(self) -> tuple[str, list[Any]]:
        where, values = self._where_clause()
        verb = f'DELETE FROM {self.quoted_table}'
        sql = self.strategy.limit_modify(verb, self.quoted_table, where, self._order, self._limit)
        return sql, values

    def build(self) -> tuple[str, list[Any]]:
        """Render the statement.

        Returns
            (sql with canonical ``?`` placeholders, ordered bind values)

        Raises
            BuilderError: for malformed conditions or unsupported clauses
        """
        renderer = {
            SELECT: self._build_select,
            INSERT: self._build_insert,
            UPDATE: self._build_update,
            DELETE: self._build_delete,
            }[self.operation]
        sql, values = renderer()
        logger.debug(f'Built {self.operation} for {self.table}: {len(values)} bind value(s)')
        return sql, values

