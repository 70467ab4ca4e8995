"""
TTL caches for vendor catalog lookups.

Strategy methods that query the system catalog (for example the
primary-key fallback) are decorated with `cacheable_strategy`. Results are
kept per (strategy class, method) in a cachetools `TTLCache` and keyed by
(database identity, lower-cased table name, extra arguments), so the same
table name on two databases never shares an entry.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)

__all__ = ['Cache', 'cacheable_strategy']


class Cache:
    """Process-wide registry of named TTL caches.
    """

    _instance = None
    _lock = threading.RLock()

    def __init__(self) -> None:
        self._caches: dict[str, cachetools.TTLCache] = {}

    @classmethod
    def get_instance(cls) -> 'Cache':
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Named cache, created with `maxsize` and `ttl` on first request."""
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
            return cache

    def clear_all(self) -> None:
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_for_table(self, table_name: str) -> None:
        """Drop every entry for `table_name`, on any database."""
        table = table_name.lower()
        with self._lock:
            for name, cache in self._caches.items():
                stale = [key for key in cache if key[1] == table]
                for key in stale:
                    cache.pop(key, None)
                if stale:
                    logger.debug(f'Dropped {len(stale)} {name} entries for {table_name}')


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Cache a strategy method called as `method(cn, table, ...)`.

    `bypass_cache=True` always queries the catalog and leaves the cache
    untouched.
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, table, *args, bypass_cache=False, **kwargs):
            if bypass_cache:
                return method(self, cn, table, *args, **kwargs)

            name = f'{cache_name}:{type(self).__name__}.{method.__name__}'
            cache = Cache.get_instance().get_cache(name, ttl=ttl, maxsize=maxsize)
            key = (getattr(cn, 'identity', ''), table.lower(), args, tuple(sorted(kwargs.items())))
            try:
                result = cache[key]
            except KeyError:
                logger.debug(f'Catalog lookup {method.__name__}({table}) on {key[0]}')
                result = cache[key] = method(self, cn, table, *args, **kwargs)
            return result

        return wrapper
    return decorator
