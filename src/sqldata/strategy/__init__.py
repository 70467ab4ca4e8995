"""
Vendor strategy factory.

Strategies are selected by the configured driver name instead of by a
driver class name.
"""
from functools import lru_cache

from sqldata.exceptions import ConfigError
from sqldata.strategy.base import _STRATEGY_REGISTRY
from sqldata.strategy.base import DatabaseStrategy as DatabaseStrategy
from sqldata.strategy.base import register_strategy as register_strategy
from sqldata.strategy.postgres import PostgresStrategy as PostgresStrategy
from sqldata.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from sqldata.strategy.sqlserver import SQLServerStrategy as SQLServerStrategy


def _validate_drivername(drivername: str) -> None:
    """Raise ConfigError if the driver name is not registered."""
    if drivername not in _STRATEGY_REGISTRY:
        available = list(_STRATEGY_REGISTRY.keys())
        raise ConfigError('drivername', f'unsupported driver {drivername!r}, available: {available}')


@lru_cache(maxsize=8)
def _get_strategy(drivername: str) -> DatabaseStrategy:
    """Get cached strategy instance for a driver name."""
    _validate_drivername(drivername)
    return _STRATEGY_REGISTRY[drivername]()


def get_strategy(drivername: str) -> DatabaseStrategy:
    """Get strategy instance for a driver name.
    """
    return _get_strategy(drivername)


def get_available_drivers() -> list[str]:
    """Return list of registered driver names."""
    return list(_STRATEGY_REGISTRY.keys())


def get_strategy_class(drivername: str) -> type['DatabaseStrategy']:
    """Get the strategy class for a driver name without instantiating."""
    _validate_drivername(drivername)
    return _STRATEGY_REGISTRY[drivername]
