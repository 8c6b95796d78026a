"""
Unified caching for the model layer.

Two kinds of cache live here:

- TTL caches for dialect metadata lookups (primary keys, column names),
  filled through the ``cacheable_strategy`` decorator.
- Registries that live for the whole process, such as the Table registry
  keyed by model class. Entries are published with a single ``setdefault``
  so readers never observe a partially built value.

Uses cachetools for both.
"""
import functools
import logging
import sys
import threading
from collections.abc import Callable, Hashable
from typing import Any

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Unified cache manager for the package.

    Thread-safe singleton that manages all named caches.
    """

    _instance = None
    _caches: dict[str, cachetools.Cache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Get or create a TTL cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size
            ttl: Time-to-live in seconds

        Returns
            TTLCache instance
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        return self._caches[name]

    def get_registry(self, name: str) -> cachetools.Cache:
        """Get or create an unbounded, never-expiring cache.

        Entries stay until cleared explicitly.
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.Cache(maxsize=sys.maxsize)
        return self._caches[name]

    def get_or_build(self, name: str, key: Hashable, builder: Callable[[], Any]) -> Any:
        """Return the registry entry for key, building it on first access.

        The builder runs outside the lock, so two threads racing on the same
        key may both build. Only the first completed value is published and
        both callers get that same value back.
        """
        registry = self.get_registry(name)
        try:
            return registry[key]
        except KeyError:
            pass

        value = builder()
        with self._lock:
            published = registry.setdefault(key, value)
        if published is not value:
            logger.debug(f'Discarded duplicate {name} entry for {key!r}')
        return published

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        """Clear a specific cache by name."""
        with self._lock:
            if name in self._caches:
                self._caches[name].clear()

    def clear_for_table(self, table_name: str) -> None:
        """Clear all metadata cache entries related to a specific table.

        Args:
            table_name: Name of the table to clear cache entries for
        """
        table_lower = table_name.lower()
        with self._lock:
            for cache in self._caches.values():
                keys_to_clear = [
                    key for key in list(cache.keys())
                    if isinstance(key, str) and table_lower in key.lower()
                ]
                for key in keys_to_clear:
                    if key in cache:
                        del cache[key]
                        logger.debug(f'Cleared cache entry {key} for table {table_name}')


def _create_cache_key(table_name: str, method_args: tuple, method_kwargs: dict) -> str:
    """Create a deterministic cache key from arguments.

    Excludes connection objects (detected by cursor/driver_connection attributes).
    """
    args_str = ':'.join(
        repr(arg) for arg in method_args
        if not hasattr(arg, 'cursor') and not hasattr(arg, 'driver_connection')
    )

    kwargs_str = ':'.join(
        f'{k}={repr(v)}' for k, v in sorted(method_kwargs.items())
        if k != 'bypass_cache'
        and not hasattr(v, 'cursor')
        and not hasattr(v, 'driver_connection')
    )

    return f'{table_name}:{args_str}:{kwargs_str}'.lower()


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Decorator for caching strategy method results.

    Caches results keyed by table name and method arguments.
    Respects bypass_cache parameter to skip cache lookup.

    Args:
        cache_name: Base name for the cache
        ttl: Time-to-live in seconds
        maxsize: Maximum cache size
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, table, *args, bypass_cache=False, **kwargs):
            if bypass_cache:
                logger.debug(f'Bypassing cache for {method.__name__}({table})')
                return method(self, cn, table, *args, **kwargs)

            strategy_class = self.__class__.__name__
            specific_cache_name = f'{cache_name}_{strategy_class}_{method.__name__}'

            cache = Cache.get_instance().get_cache(specific_cache_name, ttl=ttl, maxsize=maxsize)
            cache_key = _create_cache_key(table, args, kwargs)

            if cache_key in cache:
                logger.debug(f'Cache hit for {method.__name__}({table})')
                return cache[cache_key]

            logger.debug(f'Cache miss for {method.__name__}({table})')
            result = method(self, cn, table, *args, **kwargs)
            cache[cache_key] = result
            return result

        return wrapper
    return decorator
