"""
Named connection configuration and the per-name connection cache.

Examples
    Config.initialize(lambda cfg: cfg.set_connections({
        'development': {'drivername': 'sqlite', 'database': 'dev.db'},
        'reporting': {'drivername': 'postgresql', 'hostname': 'db', ...},
        }, default='development'))

    cn = ConnectionManager.get_instance().get_connection('reporting')
"""
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, Self

from activemodel.connection import ConnectionWrapper, connect
from activemodel.exceptions import ConfigurationError
from activemodel.options import DatabaseOptions

__all__ = ['Config', 'ConnectionManager']

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = 'development'


class Config:
    """Process-wide connection options keyed by name.
    """
    _instance = None
    _lock = threading.RLock()

    def __init__(self) -> None:
        self._connections: dict[str, DatabaseOptions] = {}
        self._default_connection = DEFAULT_CONNECTION

    @classmethod
    def get_instance(cls) -> Self:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def initialize(cls, initializer: Callable[[Self], Any]) -> Self:
        """Run initializer against the shared instance and return it."""
        instance = cls.get_instance()
        initializer(instance)
        return instance

    @classmethod
    def reset(cls) -> None:
        """Forget all configured connections (test helper)."""
        with cls._lock:
            cls._instance = None

    def set_connections(self, connections: Mapping[str, DatabaseOptions | Mapping[str, Any]],
                        default: str | None = None) -> None:
        """Replace the configured connections.

        Args:
            connections: name -> DatabaseOptions or mapping of option values
            default: name used by models that do not declare a connection

        Raises
            ConfigurationError: if connections is not a mapping or an entry is invalid
        """
        if not isinstance(connections, Mapping):
            raise ConfigurationError('Connections must be a mapping of name -> options')
        parsed = {}
        for name, options in connections.items():
            try:
                parsed[name] = DatabaseOptions.create(options)
            except ValueError as err:
                raise ConfigurationError(f'Invalid options for connection {name!r}: {err}') from err
        if default:
            self.set_default_connection(default)
        self._connections = parsed
        logger.debug(f'Configured connections: {", ".join(parsed) or "(none)"}')

    def get_connections(self) -> dict[str, DatabaseOptions]:
        return dict(self._connections)

    def get_connection(self, name: str) -> DatabaseOptions | None:
        return self._connections.get(name)

    @property
    def default_connection(self) -> str:
        return self._default_connection

    def set_default_connection(self, name: str) -> None:
        self._default_connection = name

    def get_default_connection_options(self) -> DatabaseOptions | None:
        return self._connections.get(self._default_connection)


class ConnectionManager:
    """Caches one open ConnectionWrapper per configured name.
    """
    _instance = None
    _lock = threading.RLock()

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionWrapper] = {}

    @classmethod
    def get_instance(cls) -> Self:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_connection(self, name: str | None = None) -> ConnectionWrapper:
        """Return the open connection for name, connecting on first use.

        Args:
            name: configured connection name, the default one when None

        Raises
            ConfigurationError: if no options are configured for the name
        """
        config = Config.get_instance()
        name = name or config.default_connection
        with self._lock:
            cn = self._connections.get(name)
            if cn is not None and not cn.closed:
                return cn
            options = config.get_connection(name)
            if options is None:
                raise ConfigurationError(f'No connection configured named {name!r}')
            logger.debug(f'Opening connection {name!r} to {options}')
            cn = connect(options)
            self._connections[name] = cn
            return cn

    def drop_connection(self, name: str | None = None) -> None:
        """Close and forget the cached connection for name."""
        name = name or Config.get_instance().default_connection
        with self._lock:
            cn = self._connections.pop(name, None)
        if cn is not None:
            cn.close()

    def close_all(self) -> None:
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for cn in connections:
            cn.close()
