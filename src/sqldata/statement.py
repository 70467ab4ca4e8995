"""
Parameterized statements with positional bind values.
"""
import datetime
import decimal
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Self

import dateutil.parser
from sqldata.exceptions import BindCountError, ResourceClosedError
from sqldata.exceptions import UnhandledDataTypeError
from sqldata.sql import count_placeholders
from sqldata.types import TypeConverter

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.navigator import ResultsNavigator

logger = logging.getLogger(__name__)

__all__ = ['BindableStatement', 'coerce_bind_value', 'format_bind_values']

# bool is checked before int since it is an int subclass
_BINDABLE_TYPES = (bool, int, float, decimal.Decimal, str,
                   datetime.datetime, datetime.date)


def coerce_bind_value(value: Any) -> Any:
    """Normalise a bind value, rejecting types with no binding rule.

    NumPy, Pandas and PyArrow scalars become their Python equivalents first.

    Raises
        UnhandledDataTypeError: the value is not an integer, float, text,
        boolean, timestamp or None
    """
    value = TypeConverter.convert_value(value)
    if value is None or isinstance(value, _BINDABLE_TYPES):
        return value
    raise UnhandledDataTypeError(type(value).__name__)


def format_bind_values(values: Sequence[Any]) -> str:
    """Render bind values for the debug log, nulls as '**NULL'."""
    return ', '.join(f'{i}: {"**NULL" if v is None else repr(v)}'
                     for i, v in enumerate(values))


class BindableStatement:
    """Positional parameter binding plus execution.

    The statement text may use either `?` or `%s` placeholders; they are
    rewritten to the driver's marker at execution time. The current bind
    vector is kept for diagnostics and for re-execution with the same
    values. Positions are 0-based.
    """

    def __init__(self, manager: 'ConnectionManager', sql: str) -> None:
        self._manager = manager
        self.sql = sql
        self._count = count_placeholders(sql)
        self._values: list[Any] = [None] * self._count
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'BindableStatement({self.sql!r}, binds={self._count})'

    @property
    def placeholder_count(self) -> int:
        return self._count

    @property
    def bind_values(self) -> tuple:
        """Read-only view of the current bind vector."""
        return tuple(self._values)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _check_open(self, action: str) -> None:
        if self._closed:
            raise ResourceClosedError(action)

    def bind(self, values: Sequence[Any] | None) -> None:
        """Replace the whole bind vector.

        `None` leaves the current vector in place. The vector is checked in
        full before anything is stored.

        Raises
            BindCountError: the vector size differs from the placeholder count
            UnhandledDataTypeError: a value has no binding rule
        """
        self._check_open('bind values')
        if values is None:
            return
        values = list(values)
        if len(values) != self._count:
            raise BindCountError(len(values), self._count)
        self._values = [coerce_bind_value(v) for v in values]

    def _set(self, position: int, value: Any) -> None:
        self._check_open(f'set bind value {position}')
        if not 0 <= position < self._count:
            raise IndexError(f'Bind position {position} out of range 0..{self._count - 1}')
        self._values[position] = value

    def set_int(self, position: int, value: int) -> None:
        self._set(position, int(value))

    def set_float(self, position: int, value: float) -> None:
        self._set(position, float(value))

    def set_string(self, position: int, value: str) -> None:
        self._set(position, str(value))

    def set_boolean(self, position: int, value: bool) -> None:
        self._set(position, bool(value))

    def set_timestamp(self, position: int, value: datetime.datetime | str) -> None:
        """Bind a timestamp; text is parsed with dateutil."""
        if isinstance(value, str):
            value = dateutil.parser.parse(value)
        elif not isinstance(value, datetime.date):
            raise UnhandledDataTypeError(type(value).__name__)
        self._set(position, value)

    def set_null(self, position: int) -> None:
        self._set(position, None)

    def sql_message(self) -> str:
        """Statement text and bind values, as written to the debug log."""
        return f'SQL:\n{self.sql}\nbind values: {format_bind_values(self._values)}'

    def execute_update(self, values: Sequence[Any] | None = None) -> int:
        """Bind (when values are given) and execute; returns the row count."""
        self.bind(values)
        return self._manager._execute_update(self.sql, tuple(self._values))

    def execute_query(self, values: Sequence[Any] | None = None) -> 'ResultsNavigator':
        """Bind (when values are given) and execute on a fresh cursor.

        The returned navigator owns its cursor; the statement stays open and
        can be executed again.
        """
        self.bind(values)
        return self._manager._execute_query(self.sql, tuple(self._values))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._manager._forget(self)
        logger.debug(f'Closed statement {self.sql!r}')
