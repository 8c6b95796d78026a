"""Low-level helpers with no internal dependencies.

These work with any connection type (ConnectionWrapper, SQLAlchemy
connections, raw DBAPI connections) and import nothing else from the
package, so they are safe to import anywhere.
"""
from collections.abc import Iterable, Mapping, Sequence
from typing import Any


def issequence(obj: Any) -> bool:
    """True for list/tuple-like values that are not strings or bytes.

    >>> issequence([1, 2]), issequence((1,)), issequence('ab'), issequence({'a': 1})
    (True, True, False, False)
    """
    return isinstance(obj, Sequence) and not isinstance(obj, (str, bytes, bytearray))


def isiterable(obj: Any) -> bool:
    """True for iterables other than strings, bytes and mappings.

    >>> isiterable({1, 2}), isiterable('ab'), isiterable({'a': 1})
    (True, False, False)
    """
    return (isinstance(obj, Iterable)
            and not isinstance(obj, (str, bytes, bytearray, Mapping)))


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    if hasattr(obj, 'sa_connection') and hasattr(obj.sa_connection, 'engine'):
        return str(obj.sa_connection.engine.dialect.name).lower()

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a wrapper."""
    raw_conn = connection
    if hasattr(connection, 'dbapi_connection') and connection.dbapi_connection is not None:
        raw_conn = connection.dbapi_connection
    if hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn
