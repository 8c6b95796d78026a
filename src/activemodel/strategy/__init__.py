"""
Dialect strategy factory.
"""
from functools import lru_cache

from activemodel.strategy.base import _STRATEGY_REGISTRY
from activemodel.strategy.base import DatabaseStrategy as DatabaseStrategy
from activemodel.strategy.base import register_strategy as register_strategy
from activemodel.strategy.oracle import OracleStrategy as OracleStrategy
from activemodel.strategy.pagination import LimitOffsetPagination as LimitOffsetPagination
from activemodel.strategy.pagination import Pagination as Pagination
from activemodel.strategy.pagination import RowNumberPagination as RowNumberPagination
from activemodel.strategy.postgres import PostgresStrategy as PostgresStrategy
from activemodel.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from activemodel.utils import get_dialect_name


def _validate_dialect(dialect: str) -> None:
    """Raise ValueError if dialect is not registered."""
    if dialect not in _STRATEGY_REGISTRY:
        available = list(_STRATEGY_REGISTRY.keys())
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {available}')


@lru_cache(maxsize=8)
def _get_strategy(dialect: str) -> DatabaseStrategy:
    """Get cached strategy instance for a dialect."""
    _validate_dialect(dialect)
    return _STRATEGY_REGISTRY[dialect]()


def get_strategy(dialect: str) -> DatabaseStrategy:
    """Get strategy instance for a dialect name.

    This is the public interface for getting a strategy when you have a dialect
    name string but not a connection object.
    """
    return _get_strategy(dialect)


def get_db_strategy(cn) -> DatabaseStrategy:
    """Get dialect strategy for the connection."""
    return _get_strategy(get_dialect_name(cn))


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return list(_STRATEGY_REGISTRY.keys())


def is_supported_dialect(dialect: str) -> bool:
    """Check if a dialect is supported."""
    return dialect in _STRATEGY_REGISTRY


def get_strategy_class(dialect: str) -> type['DatabaseStrategy']:
    """Get the strategy class for a dialect without instantiating."""
    _validate_dialect(dialect)
    return _STRATEGY_REGISTRY[dialect]
