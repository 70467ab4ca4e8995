"""
Per-type field validators used by `Table.validate_fields`.

Each validator checks one value against one `ColumnDef` and raises
`FieldTypeError` naming the table, column and value when it does not fit.
Text input is parsed the way a bulk-load file would be read back, so
'42' is a valid integer and '2024-01-02' a valid timestamp.
"""
import datetime
import logging
from collections.abc import Callable
from typing import Any

import dateutil.parser
from sqldata.exceptions import FieldTypeError
from sqldata.types import ColumnDef, SqlType

logger = logging.getLogger(__name__)

__all__ = ['validate_value', 'get_validator']

Validator = Callable[[ColumnDef, Any], None]


def _fail(column: ColumnDef, value: Any, reason: str) -> None:
    raise FieldTypeError(column.table or '', column.name, value, reason)


def _check_null(column: ColumnDef, value: Any) -> bool:
    """Return True when the value is null and the column accepts it."""
    if value is None:
        if not column.nullable:
            _fail(column, value, 'null value for a non-nullable column')
        return True
    return False


def _check_empty(column: ColumnDef, value: str) -> bool:
    """Empty text counts as null."""
    if value == '':
        if not column.nullable:
            _fail(column, value, 'empty value for a non-nullable column')
        return True
    return False


def _is_timestamp(value: Any) -> bool:
    return isinstance(value, (datetime.datetime, datetime.date))


def validate_char(column: ColumnDef, value: Any) -> None:
    if _check_null(column, value):
        return
    if not isinstance(value, str):
        _fail(column, value, f'expected text, got {type(value).__name__}')
    if _check_empty(column, value):
        return
    if column.size and len(value) > column.size:
        _fail(column, value, f'length {len(value)} exceeds column size {column.size}')


def validate_varchar(column: ColumnDef, value: Any) -> None:
    """Text, numbers and booleans are measured by their text length."""
    if _check_null(column, value):
        return
    if _is_timestamp(value):
        _fail(column, value, 'timestamp given for a character column')
    if isinstance(value, str) and _check_empty(column, value):
        return
    if not isinstance(value, (str, int, float, bool)):
        _fail(column, value, f'unhandled type {type(value).__name__}')
    text = str(value)
    if column.size and len(text) > column.size:
        _fail(column, value, f'length {len(text)} exceeds column size {column.size}')


def validate_integer(column: ColumnDef, value: Any) -> None:
    if _check_null(column, value):
        return
    if isinstance(value, str):
        if _check_empty(column, value):
            return
        try:
            int(value)
        except ValueError:
            _fail(column, value, 'text is not an integer')
        return
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(column, value, f'expected integer, got {type(value).__name__}')


def validate_float(column: ColumnDef, value: Any) -> None:
    if _check_null(column, value):
        return
    if isinstance(value, str):
        if _check_empty(column, value):
            return
        try:
            float(value)
        except ValueError:
            _fail(column, value, 'text is not a number')
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(column, value, f'expected number, got {type(value).__name__}')


def validate_timestamp(column: ColumnDef, value: Any) -> None:
    if _check_null(column, value):
        return
    if isinstance(value, str):
        if _check_empty(column, value):
            return
        try:
            dateutil.parser.parse(value)
        except (ValueError, OverflowError):
            _fail(column, value, 'text is not a timestamp')
        return
    if not _is_timestamp(value):
        _fail(column, value, f'expected timestamp, got {type(value).__name__}')


def validate_text(column: ColumnDef, value: Any) -> None:
    _check_null(column, value)


def validate_bit(column: ColumnDef, value: Any) -> None:
    if _check_null(column, value):
        return
    if isinstance(value, str):
        if _check_empty(column, value):
            return
        if value not in {'0', '1'}:
            _fail(column, value, "bit text must be '0' or '1'")
        return
    if not isinstance(value, bool):
        _fail(column, value, f'expected boolean, got {type(value).__name__}')


_VALIDATORS: dict[SqlType, Validator] = {
    SqlType.CHAR: validate_char,
    SqlType.VARCHAR: validate_varchar,
    SqlType.INTEGER: validate_integer,
    SqlType.FLOAT: validate_float,
    SqlType.TIMESTAMP: validate_timestamp,
    SqlType.TEXT: validate_text,
    SqlType.BIT: validate_bit,
}


def get_validator(column: ColumnDef) -> Validator:
    """Validator for the column's type category.

    Raises
        FieldTypeError: the column type has no validator
    """
    try:
        return _VALIDATORS[column.sql_type]
    except KeyError:
        def unsupported(col: ColumnDef, value: Any) -> None:
            _fail(col, value, f'no validator for column type {col.type_name or col.sql_type.name}')
        return unsupported


def validate_value(column: ColumnDef, value: Any) -> None:
    """Check one value against its column definition."""
    get_validator(column)(column, value)
