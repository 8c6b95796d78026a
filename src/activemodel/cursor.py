"""
Cursor wrapper with SQL logging and dictionary rows.

Implements the subset of Python DB-API 2.0 (PEP-249) the model layer uses.
"""
import logging
import time
from collections.abc import Iterator
from functools import wraps
from typing import Any

from activemodel.types import RowAdapter, TypeConverter

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging SQL queries and parameters."""
    @wraps(func)
    def wrapper(self, operation: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{operation}\nargs: {args}')
        try:
            result = func(self, operation, *args, **kwargs)
            if hasattr(self.dbapi_cursor, 'statusmessage'):
                logger.debug(f'Query result: {self.dbapi_cursor.statusmessage}')
            return result
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{operation}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.connwrapper.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class Cursor:
    """Cursor wrapper returning rows as dictionaries.

    SQL passed to ``execute`` is already in the dialect's placeholder style.
    """

    def __init__(self, cursor: Any, connection_wrapper: Any) -> None:
        """Initialize cursor wrapper.

        Args:
            cursor: The underlying database cursor
            connection_wrapper: The connection wrapper that created this cursor
        """
        self.dbapi_cursor = cursor
        self.connwrapper = connection_wrapper

    def __getattr__(self, name: str) -> Any:
        """Delegate members to underlying cursor."""
        return getattr(self.dbapi_cursor, name)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        """Iterate over remaining rows as dictionaries."""
        columns = self.columns
        for row in self.dbapi_cursor:
            yield RowAdapter(row, columns).to_dict()

    @property
    def columns(self) -> list[str]:
        """Column names for last query."""
        if self.dbapi_cursor.description is None:
            return []
        return [desc[0] for desc in self.dbapi_cursor.description]

    @property
    def description(self) -> list[tuple] | None:
        """Column descriptions for last query."""
        return self.dbapi_cursor.description

    @property
    def rowcount(self) -> int:
        """Number of rows produced/affected by last operation."""
        return self.dbapi_cursor.rowcount

    def close(self) -> None:
        """Close cursor."""
        self.dbapi_cursor.close()

    def fetchone(self) -> dict[str, Any] | None:
        """Fetch next row."""
        row = self.dbapi_cursor.fetchone()
        if row is None:
            return None
        return RowAdapter(row, self.columns).to_dict()

    def fetchall(self) -> list[dict[str, Any]]:
        """Fetch all remaining rows."""
        columns = self.columns
        return [RowAdapter(row, columns).to_dict() for row in self.dbapi_cursor.fetchall()]

    @dumpsql
    def execute(self, operation: str, *args: Any) -> int:
        """Execute a database operation with positional parameters."""
        params = TypeConverter.convert_params(tuple(args))
        if params:
            self.dbapi_cursor.execute(operation, params)
        else:
            self.dbapi_cursor.execute(operation)
        return self.dbapi_cursor.rowcount


def get_dict_cursor(cn: Any) -> Cursor:
    """Get cursor that returns rows as dictionaries."""
    return Cursor(cn.dbapi_connection.cursor(), cn)
