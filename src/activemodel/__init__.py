"""
Active record models over PostgreSQL, SQLite and Oracle.

Models map to tables:

    class Order(Model):
        pass

    Config.get_instance().set_connections(
        {'development': {'drivername': 'sqlite', 'database': 'shop.db'}})
    Order.find(5)

Raw statements can be run either as module functions, ``activemodel.select(cn,
sql, *args)``, or as ConnectionWrapper methods, ``cn.select(sql, *args)``.
"""
__version__ = '0.1.0'

from typing import Any

from activemodel.builder import SQLBuilder
from activemodel.conditions import CompiledCondition, Derived, EqualityMap
from activemodel.conditions import Positional, Raw
from activemodel.config import Config, ConnectionManager
from activemodel.connection import ConnectionWrapper, connect
from activemodel.exceptions import ActiveModelError, BuilderError
from activemodel.exceptions import ConfigurationError, DatabaseError
from activemodel.exceptions import DbConnectionError, IntegrityError
from activemodel.exceptions import NotFoundError, ReadOnlyError, RecordNotFound
from activemodel.exceptions import TransactionError, TypeConversionError
from activemodel.exceptions import UndefinedPropertyError, UniqueViolation
from activemodel.exceptions import UnknownOptionError
from activemodel.model import Model
from activemodel.options import DatabaseOptions
from activemodel.table import Table
from activemodel.transaction import Transaction as transaction
from activemodel.types import Column


def execute(cn: ConnectionWrapper, sql: str, *args: Any) -> int:
    """Execute a SQL statement and return affected row count.
    """
    return cn.execute(sql, *args)


def select(cn: ConnectionWrapper, sql: str, *args: Any) -> list[dict[str, Any]]:
    """Execute a SELECT query and return the rows as dictionaries.
    """
    return cn.select(sql, *args)


__all__ = [
    'ActiveModelError',
    'BuilderError',
    'Column',
    'CompiledCondition',
    'Config',
    'ConfigurationError',
    'ConnectionManager',
    'ConnectionWrapper',
    'DatabaseError',
    'DatabaseOptions',
    'DbConnectionError',
    'Derived',
    'EqualityMap',
    'IntegrityError',
    'Model',
    'NotFoundError',
    'Positional',
    'Raw',
    'ReadOnlyError',
    'RecordNotFound',
    'SQLBuilder',
    'Table',
    'TransactionError',
    'TypeConversionError',
    'UndefinedPropertyError',
    'UniqueViolation',
    'UnknownOptionError',
    'connect',
    'execute',
    'select',
    'transaction',
    ]
