"""
PostgreSQL strategy.

Connects through psycopg 3. The configured schema is applied as the
session `search_path` and primary keys are read from `pg_index` when the
inspector does not report a constraint.
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


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL through psycopg 3.
    """

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions',
                             password: str | None = None) -> sa.URL:
        """psycopg URL; `timeout` becomes `connect_timeout`."""
        url = self._url_from_options(options, password)
        if url is not None:
            return url

        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.user,
            password=password,
            host=options.server,
            port=options.port or None,
            database=options.database,
            query=query,
            )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Apply the configured schema as the session search_path."""
        if options.schema:
            return {'connect_args': {'options': f'-csearch_path={options.schema}'}}
        return {}

    def configure_connection(self, raw_conn: Any, autocommit: bool) -> None:
        """Configure connection settings for PostgreSQL.
        """
        self.set_autocommit(raw_conn, autocommit)

    def set_autocommit(self, raw_conn: Any, autocommit: bool) -> None:
        raw_conn.autocommit = autocommit

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Server, database and user must be set unless a URL is given."""
        return ['server', 'database', 'user']

    @cacheable_strategy('primary_keys', ttl=300, maxsize=50)
    def get_primary_keys(self, cn: 'ConnectionManager', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table.
        """
        qualified = self.quote_identifier(table)
        if cn.schema:
            qualified = f'{self.quote_identifier(cn.schema)}.{qualified}'
        sql = """
select a.attname as column_name
from pg_index i
join pg_attribute a on a.attrelid = i.indrelid and a.attnum = any(i.indkey)
where i.indrelid = %s::regclass and i.indisprimary
order by array_position(i.indkey, a.attnum)
"""
        return self._catalog_column(cn, sql, (qualified,))
