"""
Table metadata and the incremental key cache.

A `Table` reads its column and primary-key definitions from the catalog
once, through the SQLAlchemy inspector, falling back to the vendor
strategy's own primary-key query when the inspector reports none. A table
whose primary key is a single integer column is "incremental": its key
counter is synchronized from `MAX(key)` and then advanced in memory by
`get_next_key()`.

The counter is not a database sequence. It is only correct while a single
writer owns the table for the duration of a load, which is why tables are
pooled: `TableRegistry` hands out one instance per (database, table name)
so every caller in the process shares the same counter. The registry takes
no locks; two threads asking for a table for the first time at once may
both build one and the later insert wins.
"""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqldata.cache import Cache
from sqldata.exceptions import FieldCountError
from sqldata.exceptions import NoTableDefinitionsError, UnexpectedKeyCountError
from sqldata.types import ColumnDef, SqlType
from sqldata.validators import validate_value

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager

logger = logging.getLogger(__name__)

__all__ = ['Table', 'TableRegistry', 'RecordStamp', 'get_record_stamp']


@dataclass(frozen=True)
class RecordStamp:
    """Audit columns a bulk loader appends to every row of a table.

    `marker` is the column whose presence selects the stamp; `field_count`
    is the number of trailing fields the loader fills in itself.
    """
    marker: str | None
    field_count: int


NO_RECORD_STAMP = RecordStamp(None, 0)

# checked in order; the first marker column present wins
_RECORD_STAMPS = (
    RecordStamp('_CreatedBy_key', 4),
    RecordStamp('_JobStream_key', 2),
    RecordStamp('createdBy', 4),
    RecordStamp('release_date', 3),
    RecordStamp('creation_date', 2),
    )


def get_record_stamp(column_names: list[str]) -> RecordStamp:
    """Pick the record stamp from a table's column names (case-insensitive)."""
    names = {name.lower() for name in column_names}
    for stamp in _RECORD_STAMPS:
        if stamp.marker.lower() in names:
            return stamp
    return NO_RECORD_STAMP


class Table:
    """Column metadata and key cache for one database table.

    Obtain instances through `ConnectionManager.get_table()` so they are
    pooled; constructing one directly gives a private key counter.
    """

    def __init__(self, manager: 'ConnectionManager', name: str) -> None:
        self.manager = manager
        self.name = name
        self._columns: list[ColumnDef] = []
        self._primary_keys: list[ColumnDef] = []
        self._metadata_read = False
        self._incremental = False
        self._key_name: str | None = None
        self._counter = 0
        self._synced = False
        self._record_stamp: RecordStamp | None = None

    def __repr__(self) -> str:
        return f'Table({self.name!r}, database={self.manager.database!r})'

    # metadata

    def _read_metadata(self) -> None:
        """Load columns and primary keys, then synchronize the key counter.

        Raises
            NoTableDefinitionsError: the catalog has no columns for the table
        """
        if self._metadata_read:
            return
        manager = self.manager
        inspector = manager.inspector()
        dialect = manager.engine.dialect
        try:
            columns = inspector.get_columns(self.name, schema=manager.schema)
        except sa.exc.NoSuchTableError:
            columns = []
        if not columns:
            raise NoTableDefinitionsError(self.name, manager.database)
        self._columns = [ColumnDef.from_inspector(col, dialect, self.name,
                                                  schema=manager.schema,
                                                  catalog=manager.database)
                         for col in columns]

        pk = inspector.get_pk_constraint(self.name, schema=manager.schema)
        key_names = pk.get('constrained_columns') or []
        if not key_names:
            key_names = manager.strategy.get_primary_keys(manager, self.name)
        self._primary_keys = [col for name in key_names
                              if (col := self._find_column(name)) is not None]

        self._incremental = (len(self._primary_keys) == 1
                             and self._primary_keys[0].sql_type == SqlType.INTEGER)
        self._key_name = self._primary_keys[0].name if self._incremental else None
        logger.debug(f'Read metadata for {self.name}: {len(self._columns)} columns, '
                     f'primary key {[c.name for c in self._primary_keys]}')
        # metadata only counts as read once the counter is in step with MAX(key)
        if self._incremental:
            self._synchronize()
        self._metadata_read = True

    def _find_column(self, name: str) -> ColumnDef | None:
        for col in self._columns:
            if col.name == name:
                return col
        lowered = name.lower()
        for col in self._columns:
            if col.name.lower() == lowered:
                return col
        return None

    def refresh_metadata(self) -> None:
        """Forget the cached metadata so the next access re-reads the catalog.

        The key counter is re-synchronized as part of the re-read.
        """
        Cache.get_instance().clear_for_table(self.name)
        self._metadata_read = False
        self._record_stamp = None

    def get_column_definitions(self) -> list[ColumnDef]:
        """Column definitions in ordinal order, as detached copies."""
        self._read_metadata()
        return [col.clone() for col in self._columns]

    def get_primary_key_definitions(self) -> list[ColumnDef]:
        """Primary-key column definitions in key order, as detached copies."""
        self._read_metadata()
        return [col.clone() for col in self._primary_keys]

    def has_column(self, name: str) -> bool:
        self._read_metadata()
        return self._find_column(name) is not None

    def has_incremental_key(self) -> bool:
        self._read_metadata()
        return self._incremental

    @property
    def incremental_key_name(self) -> str | None:
        """Name of the single integer key column, or None."""
        self._read_metadata()
        return self._key_name

    @property
    def record_stamp(self) -> RecordStamp:
        self._read_metadata()
        if self._record_stamp is None:
            self._record_stamp = get_record_stamp([col.name for col in self._columns])
        return self._record_stamp

    @record_stamp.setter
    def record_stamp(self, stamp: RecordStamp) -> None:
        self._record_stamp = stamp

    # key cache

    def _synchronize(self) -> None:
        sql = self.manager.strategy.max_key_sql(self.name, self._key_name)
        with self.manager.execute_query(sql) as navigator:
            value = navigator.get_row_reference().get_int(0) if navigator.next() else None
        self._counter = max(value or 0, 0)
        self._synced = True
        logger.debug(f'Synchronized {self.name}.{self._key_name} at {self._counter}')

    def synchronize_key(self) -> None:
        """Reload the key counter from `MAX(key)`; a no-op for non-incremental tables.

        An empty table (or a negative maximum) synchronizes to 0.
        """
        self._read_metadata()
        if not self._incremental:
            return
        self._synchronize()

    def get_next_key(self) -> int:
        """Advance the in-memory key counter and return the new value.

        Raises
            UnexpectedKeyCountError: the table has no single integer primary key
        """
        self._read_metadata()
        if not self._incremental:
            raise UnexpectedKeyCountError(self.name, self.manager.database)
        self._counter += 1
        return self._counter

    def reset_key(self) -> None:
        """Set the counter back to 0; the next key issued is 1."""
        self._counter = 0
        self._synced = False

    @property
    def is_synchronized(self) -> bool:
        return self._synced

    # validation

    def validate_fields(self, values: list[Any], auto_stamp: bool = False) -> None:
        """Check a positional row against the column metadata.

        With `auto_stamp` the record stamp's fields are expected to be
        appended later, so they count towards the total but are not checked.

        Raises
            FieldCountError: the field count differs from the column count
            FieldTypeError: a value does not fit its column
        """
        self._read_metadata()
        extra = self.record_stamp.field_count if auto_stamp else 0
        found = len(values) + extra
        if found != len(self._columns):
            raise FieldCountError(self.name, found, len(self._columns))
        for column, value in zip(self._columns, values):
            validate_value(column, value)


class TableRegistry:
    """Pool of `Table` instances keyed by (database identity, table name).

    A manager creates its own registry unless one is passed in; managers
    sharing a registry share key counters.
    """

    def __init__(self) -> None:
        self._tables: dict[tuple[str, str], Table] = {}

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._tables

    def get(self, manager: 'ConnectionManager', name: str) -> Table:
        """Pooled table for `name`, created on first request.

        A pooled table whose manager has been closed is handed the
        requesting manager, reconnected if need be.
        """
        key = (manager.identity, name)
        table = self._tables.get(key)
        if table is None:
            table = Table(manager, name)
            self._tables[key] = table
            logger.debug(f'Pooled new table {key}')
            return table
        if not table.manager.is_open:
            logger.debug(f'Table {name} reattached to an open connection')
            table.manager = manager
            manager.reconnect()
        return table

    def clear(self) -> None:
        self._tables.clear()
