"""
Pagination strategies for SELECT statements.

Dialects pick one of these. ``LimitOffsetPagination`` appends clauses to the
statement; ``RowNumberPagination`` wraps it in a row-numbering subquery for
backends without LIMIT, adding the ``rnum__`` pseudo-column that hydration
strips again.
"""
from abc import ABC, abstractmethod

ROW_NUMBER_COLUMN = 'rnum__'


class Pagination(ABC):
    """Apply limit/offset to a rendered SELECT."""

    #: extra column the pagination adds to each row, if any
    pseudo_column: str | None = None

    @abstractmethod
    def apply(self, sql: str, limit: int | None, offset: int | None) -> str:
        """Return sql restricted to the requested window.

        Args:
            sql: complete SELECT statement
            limit: maximum number of rows, None for no limit
            offset: number of rows to skip, None or 0 for none

        Returns
            the paginated statement
        """


class LimitOffsetPagination(Pagination):
    """Append ``LIMIT n OFFSET m``.

    ``unbounded`` is the literal used when only an offset is given (``-1`` for
    SQLite, ``ALL`` for PostgreSQL).
    """

    def __init__(self, unbounded: str = 'ALL'):
        self.unbounded = unbounded

    def apply(self, sql: str, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return sql
        limit_sql = self.unbounded if limit is None else str(int(limit))
        sql = f'{sql} LIMIT {limit_sql}'
        if offset:
            sql = f'{sql} OFFSET {int(offset)}'
        return sql

    def __repr__(self):
        return f'LimitOffsetPagination({self.unbounded!r})'


class RowNumberPagination(Pagination):
    """Wrap the statement and filter on a row number expression.

    >>> RowNumberPagination('ROWNUM').apply('SELECT * FROM t', 10, 5)
    'SELECT * FROM (SELECT t.*, ROWNUM rnum__ FROM (SELECT * FROM t) t) p WHERE p.rnum__ <= 15 AND p.rnum__ > 5'
    """

    pseudo_column = ROW_NUMBER_COLUMN

    def __init__(self, rownum_expr: str = 'ROWNUM'):
        self.rownum_expr = rownum_expr

    def apply(self, sql: str, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return sql
        offset = int(offset or 0)
        predicates = []
        if limit is not None:
            predicates.append(f'p.{ROW_NUMBER_COLUMN} <= {offset + int(limit)}')
        predicates.append(f'p.{ROW_NUMBER_COLUMN} > {offset}')
        return (f'SELECT * FROM (SELECT t.*, {self.rownum_expr} {ROW_NUMBER_COLUMN} '
                f'FROM ({sql}) t) p WHERE {" AND ".join(predicates)}')

    def __repr__(self):
        return f'RowNumberPagination({self.rownum_expr!r})'
