"""Position-bound row views with typed column accessors."""
import datetime
import decimal
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

import dateutil.parser
from sqldata.exceptions import ResourceClosedError, TypeConversionError

if TYPE_CHECKING:
    from sqldata.navigator import ResultsNavigator

_TRUE_STRINGS = {'1', 't', 'true', 'y', 'yes'}
_FALSE_STRINGS = {'0', 'f', 'false', 'n', 'no'}


class RowReference:
    """Read-only view of the navigator's current row.

    A reference is only valid until its navigator moves. Reading it after
    that raises `ResourceClosedError`; use `copy()` to keep values across
    moves. Columns are addressed by 0-based position or by name, names
    falling back to a case-insensitive match.
    """

    __slots__ = ('_navigator', '_token', '_values', '_names')

    def __init__(self, values: tuple, names: list[str],
                 navigator: 'ResultsNavigator | None' = None, token: int = 0) -> None:
        self._values = tuple(values)
        self._names = names
        self._navigator = navigator
        self._token = token

    def _check(self) -> None:
        if self._navigator is not None and self._navigator.position_token != self._token:
            raise ResourceClosedError('read a row reference after its navigator moved')

    def _index(self, column: int | str) -> int:
        if isinstance(column, int):
            if not 0 <= column < len(self._values):
                raise IndexError(f'Column index {column} out of range 0..{len(self._values) - 1}')
            return column
        try:
            return self._names.index(column)
        except ValueError:
            pass
        lowered = [name.lower() for name in self._names]
        try:
            return lowered.index(column.lower())
        except ValueError:
            raise KeyError(f'No column named {column!r}') from None

    def get_object(self, column: int | str) -> Any:
        """Raw driver value."""
        self._check()
        return self._values[self._index(column)]

    __getitem__ = get_object

    def get_int(self, column: int | str) -> int | None:
        value = self.get_object(column)
        if value is None:
            return None
        try:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, int):
                return value
            if isinstance(value, float | decimal.Decimal):
                if value != int(value):
                    raise ValueError(value)
                return int(value)
            if isinstance(value, str):
                return int(value.strip())
        except (ValueError, OverflowError, decimal.InvalidOperation):
            raise TypeConversionError(column, value, 'integer') from None
        raise TypeConversionError(column, value, 'integer')

    def get_float(self, column: int | str) -> float | None:
        value = self.get_object(column)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int | float | decimal.Decimal | str):
            raise TypeConversionError(column, value, 'float')
        try:
            return float(value)
        except ValueError:
            raise TypeConversionError(column, value, 'float') from None

    def get_string(self, column: int | str) -> str | None:
        value = self.get_object(column)
        if value is None:
            return None
        if isinstance(value, bytes):
            try:
                return value.decode()
            except UnicodeDecodeError:
                raise TypeConversionError(column, value, 'string') from None
        return str(value)

    def get_boolean(self, column: int | str) -> bool | None:
        value = self.get_object(column)
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in {0, 1}:
            return bool(value)
        if isinstance(value, str):
            text = value.strip().lower()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
        raise TypeConversionError(column, value, 'boolean')

    def get_timestamp(self, column: int | str) -> datetime.datetime | None:
        """Timestamp value; dates become midnight, text is parsed with dateutil.
        """
        value = self.get_object(column)
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, str):
            try:
                return dateutil.parser.parse(value)
            except (ValueError, OverflowError):
                raise TypeConversionError(column, value, 'timestamp') from None
        raise TypeConversionError(column, value, 'timestamp')

    def keys(self) -> list[str]:
        return list(self._names)

    def values(self) -> tuple:
        self._check()
        return self._values

    def to_dict(self) -> dict[str, Any]:
        self._check()
        return dict(zip(self._names, self._values))

    def copy(self) -> 'RowReference':
        """Detached snapshot that stays readable after the navigator moves."""
        self._check()
        return RowReference(self._values, self._names)

    def as_string(self, sep: str = '\t', null: str = '') -> str:
        """Join the row's values into one delimited line."""
        self._check()
        return sep.join(null if v is None else str(v) for v in self._values)

    @property
    def is_detached(self) -> bool:
        return self._navigator is None

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        self._check()
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowReference):
            return NotImplemented
        return self._names == other._names and self._values == other._values

    __hash__ = None

    def __repr__(self) -> str:
        return f'RowReference({dict(zip(self._names, self._values))!r})'
