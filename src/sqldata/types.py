"""
Consolidated type handling for database operations.

This module provides:
- TypeConverter: Normalise NumPy, Pandas and PyArrow scalars to Python values
- Column: Result column metadata from cursor descriptions
- SqlType / ColumnDef: Catalog column metadata used by `Table`
- SQLite converters for date and timestamp columns
"""
import datetime
import enum
import logging
import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Self

import dateutil.parser
import numpy as np
import pandas as pd
import pyarrow as pa
import sqlalchemy as sa
from psycopg.postgres import types as pg_types

logger = logging.getLogger(__name__)


# Type Converter - Handles Python -> Database value conversion

def _convert_numpy_value(val: Any) -> float | int | bool | datetime.datetime | None:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    return val.item()


class TypeConverter:
    """Universal type conversion for bind values.

    Handles NumPy, Pandas, and PyArrow scalars; plain Python values pass
    through unchanged.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, np.generic):
            return _convert_numpy_value(value)

        if isinstance(value, pa.Scalar):
            return value.as_py()

        return value


# Result columns - cursor descriptions

_PG_PYTHON_TYPES = {
    str: ('bpchar', 'varchar', 'text', 'name', 'uuid', 'json'),
    int: ('int2', 'int4', 'int8'),
    float: ('float4', 'float8', 'numeric'),
    datetime.date: ('date',),
    datetime.datetime: ('timestamp', 'timestamptz'),
    bool: ('bool',),
    }

postgres_types: dict[int, type] = {pg_types.get(name).oid: python_type
                                   for python_type, names in _PG_PYTHON_TYPES.items()
                                   for name in names}


def resolve_type(dialect: str, type_code: Any) -> type | None:
    """Python type for a cursor description type code.

    sqlite3 reports no type codes; pyodbc reports Python types directly.
    """
    if isinstance(type_code, type):
        return type_code
    if dialect == 'postgresql':
        return postgres_types.get(type_code)
    return None


@dataclass(frozen=True)
class Column:
    """One column of a result set, as the cursor describes it.

    `python_type` is resolved from the driver's type code where the driver
    reports one (psycopg OIDs, pyodbc types); sqlite3 leaves it None.
    """
    name: str
    type_code: Any = None
    python_type: type | None = None
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool | None = None

    @classmethod
    def from_cursor_description(cls, item: Any, dialect: str) -> Self:
        name, type_code, _, size, precision, scale, nullable = (tuple(item) + (None,) * 7)[:7]
        return cls(name, type_code, resolve_type(dialect, type_code), size, precision, scale,
                   None if nullable is None else bool(nullable))

    def to_dict(self) -> dict:
        info = asdict(self)
        info['python_type'] = self.python_type.__name__ if self.python_type else None
        return info

    @staticmethod
    def get_names(columns: list['Column']) -> list[str]:
        return [col.name for col in columns]

    @staticmethod
    def get_column_types_dict(columns: list['Column']) -> dict[str, dict]:
        """Column name -> `to_dict()`, stored in DataFrame attrs by the loaders."""
        return {col.name: col.to_dict() for col in columns}


def columns_from_cursor_description(cursor: Any, dialect: str) -> list[Column]:
    if cursor.description is None:
        return []
    return [Column.from_cursor_description(desc, dialect) for desc in cursor.description]


# Catalog metadata - used by Table

class SqlType(enum.IntEnum):
    """Column type categories, valued with the standard SQL type codes.
    """
    CHAR = 1
    VARCHAR = 12
    INTEGER = 4
    FLOAT = 6
    TIMESTAMP = 93
    TEXT = -1
    BIT = -7
    OTHER = 1111

    @classmethod
    def from_sa_type(cls, col_type: sa.types.TypeEngine) -> 'SqlType':
        """Map a SQLAlchemy reflected type onto a category.

        Order matters: Boolean before Integer, CHAR and Text before String.
        """
        if isinstance(col_type, sa.Boolean):
            return cls.BIT
        if isinstance(col_type, sa.Integer):
            return cls.INTEGER
        if isinstance(col_type, sa.Numeric):
            return cls.FLOAT
        if isinstance(col_type, (sa.DateTime, sa.Date)):
            return cls.TIMESTAMP
        if isinstance(col_type, (sa.CHAR, sa.NCHAR)):
            return cls.CHAR
        if isinstance(col_type, sa.Text):
            return cls.TEXT
        if isinstance(col_type, sa.String):
            return cls.VARCHAR
        return cls.OTHER


@dataclass(frozen=True)
class ColumnDef:
    """Immutable snapshot of one table column from the catalog.
    """
    name: str
    sql_type: SqlType
    type_name: str
    size: int | None = None
    decimal_size: int | None = None
    nullable: bool = True
    table: str | None = None
    schema: str | None = None
    catalog: str | None = None
    extra: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_inspector(cls, col: dict, dialect: sa.Dialect, table: str,
                       schema: str | None = None, catalog: str | None = None) -> Self:
        """Build from one `Inspector.get_columns()` entry.
        """
        col_type = col['type']
        size = getattr(col_type, 'length', None)
        if size is None:
            size = getattr(col_type, 'precision', None)
        return cls(
            name=col['name'],
            sql_type=SqlType.from_sa_type(col_type),
            type_name=_type_name(col_type, dialect),
            size=size,
            decimal_size=getattr(col_type, 'scale', None),
            nullable=bool(col.get('nullable', True)),
            table=table,
            schema=schema,
            catalog=catalog,
            extra={'autoincrement': col.get('autoincrement'), 'default': col.get('default')},
            )

    def clone(self) -> Self:
        """Detached copy handed to callers."""
        return replace(self, extra=dict(self.extra))


def _type_name(col_type: sa.types.TypeEngine, dialect: sa.Dialect) -> str:
    """Declared type as the database spells it; untyped SQLite columns are ''."""
    if isinstance(col_type, sa.types.NullType):
        return ''
    return col_type.compile(dialect=dialect)


# SQLite Adapters - Database value converters

def convert_date(val: bytes) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())
