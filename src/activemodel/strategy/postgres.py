"""
PostgreSQL-specific strategy implementation.

Handles PostgreSQL's particular features:
- ``%s`` placeholders through psycopg
- LIMIT/OFFSET pagination
- ``ctid`` subqueries for limited DELETE/UPDATE
- Sequence-backed keys (``nextval``/``currval``/``lastval``)
- Metadata retrieval using ``information_schema`` and system catalogs
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from activemodel.cache import cacheable_strategy
from activemodel.strategy.base import DatabaseStrategy, register_strategy
from activemodel.strategy.pagination import LimitOffsetPagination

if TYPE_CHECKING:
    from activemodel.connection import ConnectionWrapper
    from activemodel.options import DatabaseOptions

logger = logging.getLogger(__name__)


def _escape_string_literal(s: str) -> str:
    """Escape a string for use as a PostgreSQL string literal."""
    return s.replace("'", "''")


def _split_table(table: str) -> tuple[str | None, str]:
    """Split ``schema.table`` into its parts.

    >>> _split_table('shop.orders'), _split_table('orders')
    (('shop', 'orders'), (None, 'orders'))
    """
    schema, _, name = table.rpartition('.')
    return schema.strip('"') or None, name.strip('"')


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    pagination = LimitOffsetPagination(unbounded='ALL')
    row_identifier = 'ctid'
    uses_sequences = True

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port', 'timeout']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query,
        )

    def default_sequence_name(self, table: str, primary_key: str | None = None) -> str | None:
        """Sequence created for a ``serial`` key: ``<table>_<pk>_seq``."""
        _, name = _split_table(table)
        return f'{name}_{primary_key or "id"}_seq'

    def next_sequence_value(self, sequence: str) -> str:
        """SQL expression producing the next value of a sequence."""
        return f"nextval('{_escape_string_literal(sequence)}')"

    def insert_id(self, cn: 'ConnectionWrapper', sequence: str | None = None) -> Any:
        """Return the current value of the sequence, or ``lastval()``.
        """
        if sequence:
            return self._select_column_raw(cn, 'SELECT currval(%s)', (sequence,))[0]
        return self._select_column_raw(cn, 'SELECT lastval()')[0]

    def describe_columns(self, cn: 'ConnectionWrapper', table: str) -> list[dict[str, Any]]:
        """Describe columns using ``information_schema.columns``.
        """
        self.probe_table(cn, table)
        schema, name = _split_table(table)
        sql = """
select
    c.column_name as name,
    c.data_type as raw_type,
    c.character_maximum_length as length,
    c.numeric_scale as scale,
    c.is_nullable = 'YES' as nullable,
    c.column_default as "default",
    c.is_identity = 'YES' as is_identity
from information_schema.columns c
where c.table_name = %s
and c.table_schema = coalesce(%s, current_schema())
order by c.ordinal_position
"""
        rows = self._select_raw(cn, sql, (name, schema))
        pk = set(self.get_primary_keys(cn, table))
        return [{
            'name': row['name'],
            'raw_type': row['raw_type'],
            'length': row['length'],
            'scale': row['scale'],
            'nullable': bool(row['nullable']),
            'pk': row['name'] in pk,
            'default': row['default'],
            'auto_increment': bool(row['is_identity'])
                or str(row['default'] or '').startswith('nextval('),
        } for row in rows]

    @cacheable_strategy('primary_keys', ttl=300, maxsize=50)
    def get_primary_keys(self, cn: 'ConnectionWrapper', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table.
        """
        sql = """
select a.attname as column
from pg_index i
join pg_attribute a on a.attrelid = i.indrelid and a.attnum = any(i.indkey)
where i.indrelid = %s::regclass and i.indisprimary
order by array_position(i.indkey::int2[], a.attnum)
"""
        return self._select_column_raw(cn, sql, (table,))
