"""
Connection options and finder options.

``DatabaseOptions`` describes how to reach a backend and validates itself
against the dialect strategy. ``validate_find_options`` checks the options
mapping accepted by finders and bulk operations.
"""
import pathlib
import sys
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any, Self

from activemodel.exceptions import ConfigurationError, UnknownOptionError
from activemodel.strategy import get_available_dialects, get_strategy_class
from activemodel.strategy import is_supported_dialect

__all__ = [
    'DatabaseOptions',
    'VALID_OPTIONS',
    'validate_find_options',
    'is_options_hash',
]

#: keys accepted by finders (``set`` is used by ``update_all``)
VALID_OPTIONS = (
    'conditions', 'limit', 'offset', 'order', 'select', 'joins', 'include',
    'readonly', 'group', 'from', 'having', 'set',
    )


def _scriptname() -> str | None:
    """Name of the running script, used as the default application name."""
    if not sys.argv or not sys.argv[0]:
        return None
    return pathlib.Path(sys.argv[0]).stem or None


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`, `oracle`

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    check_connection: bool = True
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or _scriptname() or 'python_console'
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)

    @classmethod
    def create(cls, options: 'DatabaseOptions | Mapping[str, Any] | None' = None, **kw: Any) -> Self:
        """Build options from an instance, a mapping and/or keyword overrides.

        Unknown keys raise ConfigurationError.
        """
        if isinstance(options, cls):
            if not kw:
                return options
            options = asdict(options)
        values = dict(options or {})
        values.update(kw)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown connection option(s): {', '.join(unknown)}")
        return cls(**values)

    def __str__(self) -> str:
        return (f'{self.drivername}://{self.username or ""}@{self.hostname or ""}'
                f':{self.port or ""}/{self.database}')


def is_options_hash(obj: Any, throw: bool = True) -> bool:
    """True if obj is a mapping whose keys are all valid finder options.

    Args:
        obj: candidate options mapping
        throw: raise UnknownOptionError instead of returning False

    Raises
        UnknownOptionError: if throw is set and unknown keys are present
    """
    if not isinstance(obj, Mapping):
        return False
    unknown = [key for key in obj if key not in VALID_OPTIONS]
    if unknown:
        if throw:
            raise UnknownOptionError(unknown)
        return False
    return True


def validate_find_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of a finder options mapping after checking its keys.

    >>> validate_find_options({'limit': 1})
    {'limit': 1}
    """
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        raise ConfigurationError(f'Options must be a mapping, got {type(options).__name__}')
    is_options_hash(options)
    return dict(options)
