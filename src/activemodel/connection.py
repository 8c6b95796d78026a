"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating new database connections
2. The `ConnectionWrapper` class that the model layer executes through
3. Engine creation and management through a thread-safe registry
4. The `check_connection` retry decorator for transient errors

The ConnectionWrapper provides:
- query(sql, values) - Execute and return a dictionary cursor
- select(sql, *args) - Execute SELECT and return a list of dicts
- execute(sql, *args) - Execute SQL and return affected row count
- insert_id(sequence) - Key generated by the last INSERT
- begin() / commit() / rollback() - Explicit transaction control
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from activemodel.cursor import Cursor, get_dict_cursor
from activemodel.exceptions import DbConnectionError, is_retryable_error
from activemodel.options import DatabaseOptions
from activemodel.sql import process_sql_params
from activemodel.strategy import DatabaseStrategy, get_strategy
from activemodel.utils import get_dialect_name, get_raw_connection

__all__ = [
    'ConnectionWrapper',
    'connect',
    'configure_connection',
    'check_connection',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Retries the operation when it fails with a connection error whose message
    looks transient (dropped connection, timeout). Other errors, including
    driver errors that share the connection error classes such as a missing
    table, propagate immediately.

    Supports both @check_connection and @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while True:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    if not is_retryable_error(err):
                        raise
                    tries += 1
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = (f'{options}_{options.use_pool}_{options.pool_max_connections}'
           f'_{options.pool_max_idle_time}_{options.pool_wait_timeout}')

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = strategy.build_connection_url(options)

        engine_kwargs: dict[str, Any] = {'echo': False}
        engine_kwargs.update(strategy.get_engine_kwargs(options))

        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection to track calls and execution time.

    Statements run on the underlying DBAPI connection, which is kept in
    autocommit mode outside of explicit transactions.
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: DatabaseOptions | None = None) -> None:
        """Initialize a connection wrapper
        """
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine if sa_connection else None
        self.options = options
        self.dbapi_connection = sa_connection.connection if sa_connection else None
        self._dialect = get_dialect_name(sa_connection) if sa_connection else None
        self.calls = 0
        self.time = 0
        self.in_transaction = False

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        self.close()

    def __repr__(self) -> str:
        return f'<ConnectionWrapper {self._dialect} calls={self.calls}>'

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql', 'sqlite', 'oracle')."""
        return self._dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        """Dialect strategy for this connection."""
        return get_strategy(self._dialect)

    @property
    def raw_connection(self) -> Any:
        """The driver's own connection object."""
        return get_raw_connection(self)

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed

    def cursor(self) -> Cursor:
        """Get a wrapped cursor, reopening the connection if it was closed.
        """
        if getattr(self.sa_connection, 'closed', False):
            self.sa_connection = self.engine.connect()
            self.dbapi_connection = self.sa_connection.connection
            configure_connection(self.sa_connection)

        return get_dict_cursor(self)

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def quote_name(self, name: str) -> str:
        """Quote a table or column name for this dialect."""
        return self.strategy.quote_identifier(name)

    @check_connection
    def query(self, sql: str, values: tuple | list = (), process: bool = True) -> Cursor:
        """Execute a statement and return the cursor.

        Args:
            sql: statement with ``?`` or ``%s`` placeholders
            values: positional bind values
            process: expand IN/IS placeholders first; builder output is
                already expanded and only needs the dialect's marker

        Returns
            Cursor positioned on the result
        """
        if process:
            sql, values = process_sql_params(sql, tuple(values), self.dialect)
        else:
            sql = self.strategy.standardize_sql(sql, bool(values))
        cursor = self.cursor()
        cursor.execute(sql, *values)
        return cursor

    def select(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Execute a SELECT query and return the rows as dictionaries.
        """
        cursor = self.query(sql, args)
        try:
            result = cursor.fetchall()
        finally:
            cursor.close()
        logger.debug(f'Select query returned {len(result)} rows')
        return result

    def execute(self, sql: str, *args: Any) -> int:
        """Execute a SQL statement and return affected row count.
        """
        cursor = self.query(sql, args)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def insert_id(self, sequence: str | None = None) -> Any:
        """Return the key generated by the last INSERT.
        """
        return self.strategy.insert_id(self, sequence)

    def begin(self) -> None:
        """Leave autocommit mode until commit() or rollback().
        """
        self.strategy.disable_autocommit(self.raw_connection)
        self.in_transaction = True
        logger.debug(f'Began transaction on {self!r}')

    def commit(self) -> None:
        """Commit the open transaction and return to autocommit mode.
        """
        try:
            self.raw_connection.commit()
        finally:
            self._end_transaction()

    def rollback(self) -> None:
        """Roll back the open transaction and return to autocommit mode.
        """
        try:
            self.raw_connection.rollback()
        finally:
            self._end_transaction()

    def _end_transaction(self) -> None:
        self.in_transaction = False
        self.strategy.enable_autocommit(self.raw_connection)

    def close(self) -> None:
        """Close the SQLAlchemy connection.
        """
        if self.sa_connection is not None and not self.sa_connection.closed:
            if self.in_transaction:
                logger.warning('Closing connection with an open transaction, rolling back')
                self.rollback()
            self.sa_connection.close()
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                         f'(avg: {self.time/max(1, self.calls):.3f}s per query)')


def configure_connection(sa_connection: sa.engine.Connection) -> None:
    """Configure a SQLAlchemy connection with dialect-specific settings.
    """
    strategy = get_strategy(get_dialect_name(sa_connection))
    raw_conn = get_raw_connection(sa_connection.connection)
    strategy.register_type_adapters(raw_conn)
    strategy.configure_connection(raw_conn)


def connect(options: DatabaseOptions | Mapping[str, Any] | None = None,
            **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: DatabaseOptions object or a mapping of option values
        **kw: Additional keyword arguments to override options

    Connection pooling options:
        use_pool: Whether to use connection pooling (default: False)
        pool_max_connections: Maximum connections in pool (default: 5)
        pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
        pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)

    Returns
        ConnectionWrapper object for connecting to the database
    """
    options = DatabaseOptions.create(options, **kw)
    engine = get_engine_for_options(options)

    sa_connection = engine.connect()
    configure_connection(sa_connection)

    return ConnectionWrapper(sa_connection, options)
