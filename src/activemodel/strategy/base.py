"""
Base strategy interface for dialect-specific behavior.

Defines the abstract base class that all dialect strategies inherit from.
A strategy owns everything the model layer needs to know about a backend:
identifier quoting, placeholder style, pagination, sequences, insert ids,
date/time formats, raw type mapping and column introspection.

Each concrete strategy implements these with dialect-specific SQL, while
the builder and the model work with any backend through this interface.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from activemodel.cache import cacheable_strategy
from activemodel.exceptions import BuilderError
from activemodel.sql import dialect_placeholder, quote_identifier
from activemodel.sql import standardize_placeholders
from activemodel.strategy.pagination import LimitOffsetPagination, Pagination
from activemodel.types import map_raw_type

if TYPE_CHECKING:
    from activemodel.connection import ConnectionWrapper
    from activemodel.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    #: identifier quote character, empty for dialects that do not quote
    quote_char: str = '"'

    #: pagination applied to SELECT statements
    pagination: Pagination = LimitOffsetPagination()

    #: whether ``DELETE``/``UPDATE`` accept ``ORDER BY`` and ``LIMIT`` directly
    supports_limit_in_modify: bool = False

    #: physical row identifier used to emulate limited DELETE/UPDATE
    row_identifier: str | None = None

    #: whether primary keys are filled from sequences by default
    uses_sequences: bool = False

    datetime_format: str = '%Y-%m-%d %H:%M:%S'
    date_format: str = '%Y-%m-%d'
    time_format: str = '%H:%M:%S'

    #: dialect-specific entries that take precedence over the shared type map
    type_overrides: dict[str, str] = {}

    @contextmanager
    def _cursor(self, cn: 'ConnectionWrapper', sql: str, params: tuple | None = None):
        """Context manager for cursor lifecycle with SQL standardization.

        Handles cursor creation, SQL execution, and cleanup.
        """
        sql = self.standardize_sql(sql)
        cursor = cn.dbapi_connection.cursor()
        try:
            cursor.execute(sql, params or ())
            yield cursor
        finally:
            cursor.close()

    def _execute_raw(self, cn: 'ConnectionWrapper', sql: str,
                     params: tuple | None = None) -> int:
        """Execute SQL and return rowcount.

        Used internally by strategy methods for probes and DDL.
        """
        with self._cursor(cn, sql, params) as cursor:
            return cursor.rowcount

    def _select_raw(self, cn: 'ConnectionWrapper', sql: str,
                    params: tuple | None = None) -> list[dict]:
        """Execute SQL and return results as list of dicts.

        Used internally by strategy methods for queries returning multiple columns.
        """
        with self._cursor(cn, sql, params) as cursor:
            if cursor.description is None:
                return []
            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _select_column_raw(self, cn: 'ConnectionWrapper', sql: str,
                           params: tuple | None = None) -> list:
        """Execute SQL and return first column as list.

        Used internally by strategy methods for single-column queries.
        """
        with self._cursor(cn, sql, params) as cursor:
            return [row[0] for row in cursor.fetchall()]

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Args:
            options: DatabaseOptions to validate

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the database connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            URL suitable for SQLAlchemy
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """
        return {}

    def configure_connection(self, conn: Any) -> None:
        """Configure a freshly opened raw connection.

        Args:
            conn: raw DBAPI connection
        """
        self.enable_autocommit(conn)

    def register_type_adapters(self, connection: Any) -> None:
        """Register dialect-specific type adapters.

        Args:
            connection: raw DBAPI connection to register adapters on
        """

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw database connection.
        """
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw database connection.
        """
        raw_conn.autocommit = False

    # Rendering

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier.

        Args:
            identifier: Database identifier to be quoted

        Returns
            str: Properly quoted identifier according to database-specific rules
        """
        return quote_identifier(identifier, self.quote_char)

    def get_placeholder_style(self) -> str:
        """Return the placeholder marker for this database.
        """
        return dialect_placeholder(self.dialect_name)

    def standardize_sql(self, sql: str, has_params: bool = True) -> str:
        """Convert canonical placeholders to this dialect's style.
        """
        return standardize_placeholders(sql, self.dialect_name, has_params)

    def paginate(self, sql: str, limit: int | None, offset: int | None) -> str:
        """Restrict a SELECT to a window of rows."""
        return self.pagination.apply(sql, limit, offset)

    def limit_modify(self, verb_sql: str, table_sql: str, where_sql: str,
                     order: str | None, limit: int | None) -> str:
        """Render a DELETE or UPDATE restricted by order and limit.

        Args:
            verb_sql: statement without WHERE (``DELETE FROM t`` / ``UPDATE t SET ...``)
            table_sql: quoted table name
            where_sql: rendered ``WHERE ...`` clause or ''
            order: ORDER BY expression or None
            limit: row limit or None

        Raises
            BuilderError: if the dialect cannot restrict modifications
        """
        if not order and limit is None:
            return f'{verb_sql}{where_sql}'

        if self.supports_limit_in_modify:
            sql = f'{verb_sql}{where_sql}'
            if order:
                sql = f'{sql} ORDER BY {order}'
            if limit is not None:
                sql = f'{sql} LIMIT {int(limit)}'
            return sql

        if self.row_identifier:
            rid = self.row_identifier
            inner = f'SELECT {rid} FROM {table_sql}{where_sql}'
            if order:
                inner = f'{inner} ORDER BY {order}'
            inner = self.paginate(inner, limit, None)
            return f'{verb_sql} WHERE {rid} IN ({inner})'

        raise BuilderError(f'{self.dialect_name} does not support ORDER BY or LIMIT on DELETE/UPDATE')

    # Sequences and generated keys

    def default_sequence_name(self, table: str, primary_key: str | None = None) -> str | None:
        """Sequence name assumed for a table when the model declares none."""
        return None

    def next_sequence_value(self, sequence: str) -> str:
        """SQL expression producing the next value of a sequence."""
        raise BuilderError(f'{self.dialect_name} does not support sequences')

    @abstractmethod
    def insert_id(self, cn: 'ConnectionWrapper', sequence: str | None = None) -> Any:
        """Return the key generated by the last INSERT on this connection.
        """

    # Types and introspection

    def map_raw_type(self, raw_type: str | None, scale: int | None = None) -> str:
        """Resolve a backend column type to a semantic type."""
        return map_raw_type(raw_type, scale, self.type_overrides)

    def probe_table(self, cn: 'ConnectionWrapper', table: str) -> None:
        """Touch the table so a missing one raises the driver's own error.
        """
        self._execute_raw(cn, f'SELECT * FROM {self.quote_identifier(table)} WHERE 1 = 0')

    def describe_columns(self, cn: 'ConnectionWrapper', table: str) -> list[dict[str, Any]]:
        """Describe the columns of a table.

        Default implementation uses the SQLAlchemy inspector.

        Returns
            list of dicts with keys name, raw_type, length, scale, nullable,
            pk, default and auto_increment, in column order
        """
        self.probe_table(cn, table)
        schema, _, name = table.rpartition('.')
        inspector = sa.inspect(cn.sa_connection)
        pk = set(inspector.get_pk_constraint(name, schema=schema or None).get('constrained_columns', []))
        columns = []
        for col in inspector.get_columns(name, schema=schema or None):
            sa_type = col['type']
            columns.append({
                'name': col['name'],
                'raw_type': str(sa_type.compile(dialect=cn.sa_connection.dialect)),
                'length': getattr(sa_type, 'length', None),
                'scale': getattr(sa_type, 'scale', None),
                'nullable': col.get('nullable', True),
                'pk': col['name'] in pk,
                'default': col.get('default'),
                'auto_increment': bool(col.get('autoincrement') is True),
            })
        return columns

    @cacheable_strategy('primary_keys', ttl=300, maxsize=50)
    def get_primary_keys(self, cn: 'ConnectionWrapper', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table.

        Args:
            cn: Database connection object
            table: Table name to get primary keys for
            bypass_cache: If True, bypass cache and query database directly

        Returns
            list: primary key column names, in column order
        """
        return [col['name'] for col in self.describe_columns(cn, table) if col['pk']]
