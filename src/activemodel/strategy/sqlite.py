"""
SQLite-specific strategy implementation.

Handles SQLite's particular features:
- ``?`` placeholders
- LIMIT/OFFSET pagination with ``LIMIT -1`` for an open end
- ``rowid`` subqueries for limited DELETE/UPDATE
- ``last_insert_rowid()`` for generated keys
- Metadata retrieval using ``PRAGMA table_info``
- Type affinity rules for declared types outside the shared map
"""
import datetime
import decimal
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import dateutil.parser
import sqlalchemy as sa

from activemodel.strategy.base import DatabaseStrategy, register_strategy
from activemodel.strategy.pagination import LimitOffsetPagination
from activemodel.types import BINARY, DECIMAL, FLOAT, INTEGER, STRING, TEXT
from activemodel.types import RAW_TYPE_MAP, map_raw_type, split_raw_type

if TYPE_CHECKING:
    from activemodel.connection import ConnectionWrapper
    from activemodel.options import DatabaseOptions

logger = logging.getLogger(__name__)


def convert_date(val: bytes) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


def _affinity(name: str) -> str:
    """SQLite column affinity for a declared type name.

    >>> _affinity('unsigned big int'), _affinity('nvarchar'), _affinity('')
    ('integer', 'string', 'binary')
    """
    if 'int' in name:
        return INTEGER
    if 'char' in name:
        return STRING
    if 'clob' in name or 'text' in name:
        return TEXT
    if 'blob' in name or not name:
        return BINARY
    if 'real' in name or 'floa' in name or 'doub' in name:
        return FLOAT
    return DECIMAL


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    pagination = LimitOffsetPagination(unbounded='-1')
    row_identifier = 'rowid'

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    def register_type_adapters(self, connection: Any) -> None:
        """Register adapters for temporal and decimal values, converters for dates.
        """
        # Adapters (Python -> SQLite)
        sqlite3.register_adapter(datetime.datetime, lambda v: v.isoformat(' '))
        sqlite3.register_adapter(datetime.date, lambda v: v.isoformat())
        sqlite3.register_adapter(datetime.time, lambda v: v.isoformat())
        sqlite3.register_adapter(decimal.Decimal, str)

        # Converters (SQLite -> Python)
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)

    def configure_connection(self, conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        conn.execute('PRAGMA foreign_keys = ON')
        self.enable_autocommit(conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = 'DEFERRED'

    def insert_id(self, cn: 'ConnectionWrapper', sequence: str | None = None) -> Any:
        """Return the rowid of the last inserted row.
        """
        return self._select_column_raw(cn, 'SELECT last_insert_rowid()')[0]

    def map_raw_type(self, raw_type: str | None, scale: int | None = None) -> str:
        """Resolve a declared type, falling back to SQLite affinity rules.
        """
        name, _, _ = split_raw_type(raw_type)
        if name == 'number' or name in RAW_TYPE_MAP:
            return map_raw_type(raw_type, scale)
        return _affinity(name)

    def describe_columns(self, cn: 'ConnectionWrapper', table: str) -> list[dict[str, Any]]:
        """Describe columns using ``PRAGMA table_info``.

        ``INTEGER PRIMARY KEY`` columns alias the rowid and are auto-increment.
        """
        self.probe_table(cn, table)
        quoted_table = self.quote_identifier(table)
        rows = self._select_raw(cn, f'PRAGMA table_info({quoted_table})')
        pk_count = sum(1 for row in rows if row['pk'])
        columns = []
        for row in rows:
            raw_type = row['type'] or ''
            _, length, scale = split_raw_type(raw_type)
            is_rowid = bool(row['pk']) and pk_count == 1 and raw_type.strip().upper() == 'INTEGER'
            columns.append({
                'name': row['name'],
                'raw_type': raw_type,
                'length': length,
                'scale': scale,
                'nullable': not row['notnull'] and not is_rowid,
                'pk': bool(row['pk']),
                'default': row['dflt_value'],
                'auto_increment': is_rowid,
            })
        return columns
