"""
Base strategy interface for vendor-specific database behavior.

A strategy knows how to build a connection URL for its vendor, how to
configure a freshly opened DB-API connection, which placeholder marker its
driver expects, how to quote identifiers and how to find primary keys in
the system catalog when the SQLAlchemy inspector cannot report them.

Strategies are registered by name and selected through the `drivername`
configuration option.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqldata.exceptions import ConfigError
from sqldata.sql import escape_percent_signs_in_literals
from sqldata.sql import quote_identifier as sql_quote_identifier
from sqldata.sql import standardize_placeholders

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.options import DatabaseOptions

# Registry of driver name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(drivername: str):
    """Decorator to register a strategy class for a driver name.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[drivername] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for vendor-specific operations.
    """

    #: placeholder marker understood by the DB-API driver
    placeholder = '%s'

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier, also used for identifier quoting."""

    def _catalog_column(self, cn: 'ConnectionManager', sql: str, params: tuple = ()) -> list:
        """First column of every row of a catalog query.

        Runs through the manager, so the query is logged and driver errors
        surface as `ExecutionError`.
        """
        cursor = cn._new_cursor('query the catalog')
        try:
            cn._run(cursor, sql, params, action='query the catalog')
            return [row[0] for row in cursor.fetchall()]
        finally:
            cursor.close()

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions',
                             password: str | None = None) -> sa.URL:
        """Build the SQLAlchemy connection URL.

        Args:
            options: Connection options
            password: Password resolved from the options or the password file

        Returns
            SQLAlchemy URL for `create_engine`
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this vendor."""
        return {}

    @abstractmethod
    def configure_connection(self, raw_conn: Any, autocommit: bool) -> None:
        """Configure a freshly opened DB-API connection.

        Args:
            raw_conn: The raw DB-API connection (not wrapped)
            autocommit: Initial auto-commit mode
        """

    @abstractmethod
    def set_autocommit(self, raw_conn: Any, autocommit: bool) -> None:
        """Switch auto-commit mode on a raw DB-API connection.
        """

    @abstractmethod
    def get_primary_keys(self, cn: 'ConnectionManager', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table from the system catalog.

        Used when the SQLAlchemy inspector reports no primary key constraint,
        e.g. for keys created through vendor procedures or unique clustered
        indexes.

        Args:
            cn: Open connection manager
            table: Table name to get primary keys for
            bypass_cache: If True, bypass cache and query database directly

        Returns
            list: Primary key column names in key order
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this driver.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this driver.

        An explicit `url` replaces the individual connection fields.

        Raises
            ConfigError: If any required field is None or empty
        """
        if options.url:
            return
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ConfigError(field, 'value cannot be None or empty')

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier for this vendor.
        """
        return sql_quote_identifier(identifier, self.dialect_name)

    def standardize_sql(self, sql: str) -> str:
        """Convert positional placeholders to this driver's marker.
        """
        return standardize_placeholders(sql, self.placeholder)

    def prepare_sql(self, sql: str, has_params: bool) -> str:
        """Standardize placeholders and, for `format` style drivers that
        receive parameters, escape percent signs inside string literals.
        """
        sql = self.standardize_sql(sql)
        if has_params and self.placeholder == '%s':
            sql = escape_percent_signs_in_literals(sql)
        return sql

    def max_key_sql(self, table: str, key: str) -> str:
        """SQL returning the current maximum of an integer key column.
        """
        return f'SELECT MAX({self.quote_identifier(key)}) FROM {self.quote_identifier(table)}'

    def _url_from_options(self, options: 'DatabaseOptions',
                          password: str | None) -> sa.URL | None:
        """Explicit URL from the options with the resolved password applied.
        """
        if not options.url:
            return None
        url = sa.make_url(options.url)
        if password and not url.password:
            url = url.set(password=password)
        return url
