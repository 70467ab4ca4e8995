"""
SQLite strategy.

SQLite databases are files (or `:memory:`), so only the database name is
required. Auto-commit maps onto the sqlite3 `isolation_level` attribute and
primary keys come from the `pragma_table_info` table-valued function.
"""
import datetime
import decimal
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqldata.cache import cacheable_strategy
from sqldata.strategy.base import DatabaseStrategy, register_strategy
from sqldata.types import convert_date, convert_datetime

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite through the standard library sqlite3 driver.
    """

    placeholder = '?'

    @property
    def dialect_name(self) -> str:
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions',
                             password: str | None = None) -> sa.URL:
        """File path (or `:memory:`) URL."""
        return self._url_from_options(options, password) or sa.URL.create(
            drivername='sqlite',
            database=options.database,
            )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Parse declared date/timestamp columns; `timeout` is the lock wait."""
        connect_args: dict[str, Any] = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def configure_connection(self, raw_conn: Any, autocommit: bool) -> None:
        """Configure connection settings for SQLite.

        Registers adapters (Python -> SQLite) and converters (SQLite ->
        Python) for dates and timestamps, enables foreign keys and sets the
        auto-commit mode.
        """
        sqlite3.register_adapter(datetime.datetime, lambda val: val.isoformat(' '))
        sqlite3.register_adapter(datetime.date, lambda val: val.isoformat())
        sqlite3.register_adapter(decimal.Decimal, str)
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

        raw_conn.execute('PRAGMA foreign_keys = ON')
        self.set_autocommit(raw_conn, autocommit)

    def set_autocommit(self, raw_conn: Any, autocommit: bool) -> None:
        """Auto-commit is `isolation_level = None` for sqlite3.
        """
        raw_conn.isolation_level = None if autocommit else 'DEFERRED'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Only the database path is needed."""
        return ['database']

    @cacheable_strategy('primary_keys', ttl=300, maxsize=50)
    def get_primary_keys(self, cn: 'ConnectionManager', table: str,
                         bypass_cache: bool = False) -> list[str]:
        """Get primary key columns for a table.
        """
        sql = """
select l.name as column_name from pragma_table_info(?) as l where l.pk <> 0 order by l.pk
"""
        return self._catalog_column(cn, sql, (table,))
