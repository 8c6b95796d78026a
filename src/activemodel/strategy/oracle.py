"""
Oracle-specific strategy implementation.

Handles Oracle's particular features:
- Unquoted identifiers (quoting would make them case-sensitive)
- Numbered ``:1`` placeholders
- ``ROWNUM`` wrapping instead of LIMIT/OFFSET
- Sequence-backed keys (``seq.nextval`` / ``seq.currval``)
- ``NUMBER`` columns typed by scale
- Metadata retrieval using ``all_tab_columns``

The ``oracledb`` driver is only needed once a connection is opened.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from activemodel.strategy.base import DatabaseStrategy, register_strategy
from activemodel.strategy.pagination import RowNumberPagination
from activemodel.types import DATETIME, split_raw_type

if TYPE_CHECKING:
    from activemodel.connection import ConnectionWrapper
    from activemodel.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('oracle')
class OracleStrategy(DatabaseStrategy):
    """Oracle-specific operations.
    """

    quote_char = ''
    pagination = RowNumberPagination('ROWNUM')
    uses_sequences = True
    # DATE carries a time part
    type_overrides = {'date': DATETIME}
    datetime_format = '%Y-%m-%d %H:%M:%S'

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for Oracle."""
        return 'oracle'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for Oracle connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for Oracle."""
        return sa.URL.create(
            drivername='oracle+oracledb',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            query={'service_name': options.database},
        )

    def default_sequence_name(self, table: str, primary_key: str | None = None) -> str | None:
        """Sequence assumed for a table: ``<table>_seq``."""
        return f'{table}_seq'

    def next_sequence_value(self, sequence: str) -> str:
        """SQL expression producing the next value of a sequence."""
        return f'{sequence}.nextval'

    def insert_id(self, cn: 'ConnectionWrapper', sequence: str | None = None) -> Any:
        """Return the current value of the sequence used by the last INSERT.
        """
        if not sequence:
            return None
        return self._select_column_raw(cn, f'SELECT {sequence}.currval FROM dual')[0]

    def describe_columns(self, cn: 'ConnectionWrapper', table: str) -> list[dict[str, Any]]:
        """Describe columns using ``all_tab_columns`` and the table's primary key constraint.
        """
        self.probe_table(cn, table)
        owner, _, name = table.upper().rpartition('.')
        sql = """
select
    c.column_name as name,
    c.data_type as raw_type,
    c.data_length as length,
    c.data_scale as scale,
    c.nullable as nullable,
    c.data_default as data_default,
    case when pk.column_name is not null then 1 else 0 end as pk
from all_tab_columns c
left join (
    select cc.owner, cc.table_name, cc.column_name
    from all_constraints k
    join all_cons_columns cc
        on cc.owner = k.owner and cc.constraint_name = k.constraint_name
    where k.constraint_type = 'P'
) pk on pk.owner = c.owner and pk.table_name = c.table_name and pk.column_name = c.column_name
where c.table_name = ?
and c.owner = coalesce(?, sys_context('USERENV', 'CURRENT_SCHEMA'))
order by c.column_id
"""
        # unquoted aliases come back upper-cased
        rows = [{k.lower(): v for k, v in row.items()}
                for row in self._select_raw(cn, sql, (name, owner or None))]
        columns = []
        for row in rows:
            raw_type, _, _ = split_raw_type(row['raw_type'])
            columns.append({
                'name': row['name'].lower(),
                'raw_type': raw_type,
                'length': row['length'],
                'scale': row['scale'],
                'nullable': row['nullable'] == 'Y',
                'pk': bool(row['pk']),
                'default': (row['data_default'] or '').strip() or None,
                'auto_increment': False,
            })
        return columns
