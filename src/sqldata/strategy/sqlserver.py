"""
SQL Server strategy.

Connects through pyodbc (install the `sqlserver` extra). Identifiers are
quoted with square brackets. When the inspector reports no primary key
constraint, the key columns are read from the primary-key index in
`sys.indexes`.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqldata.cache import cacheable_strategy
from sqldata.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.options import DatabaseOptions

logger = logging.getLogger(__name__)

ODBC_DRIVER = 'ODBC Driver 18 for SQL Server'


@register_strategy('mssql')
class SQLServerStrategy(DatabaseStrategy):
    """SQL Server through pyodbc."""

    placeholder = '?'

    @property
    def dialect_name(self) -> str:
        return 'mssql'

    def build_connection_url(self, options: 'DatabaseOptions',
                             password: str | None = None) -> sa.URL:
        url = self._url_from_options(options, password)
        if url is not None:
            return url

        return sa.URL.create(
            drivername='mssql+pyodbc',
            username=options.user,
            password=password,
            host=options.server,
            port=options.port or None,
            database=options.database,
            query={'driver': ODBC_DRIVER, 'TrustServerCertificate': 'yes'},
            )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    def configure_connection(self, raw_conn: Any, autocommit: bool) -> None:
        self.set_autocommit(raw_conn, autocommit)

    def set_autocommit(self, raw_conn: Any, autocommit: bool) -> None:
        raw_conn.autocommit = autocommit

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['server', 'database', 'user']

    @cacheable_strategy('primary_keys', ttl=300, maxsize=50)
    def get_primary_keys(self, cn: 'ConnectionManager', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table

        Args:
            cn: Open connection manager
            table: Table name to get primary keys for
            bypass_cache: If True, bypass cache and query database directly, by default False

        Returns
            list: List of primary key column names
        """
        sql = """
SELECT c.name as column_name
FROM sys.indexes i
JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id
JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id
WHERE i.is_primary_key = 1
AND OBJECT_NAME(i.object_id) = ?
ORDER BY ic.key_ordinal
"""
        return self._catalog_column(cn, sql, (table,))
