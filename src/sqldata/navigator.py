"""
Cursor navigation.

`ResultsNavigator` wraps one open DB-API cursor. Forward-only navigators
fetch a row at a time; scrollable navigators buffer the result on the
client and support the full positioning API:

    position 0          before the first row
    position 1..n       on a row
    position n + 1      after the last row

`MultipleResults` walks the interleaved result sets and update counts a
single statement (e.g. a stored procedure) can produce.
"""
import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Self

from sqldata.exceptions import ExecutionError, ForwardOnlyError
from sqldata.exceptions import ResourceClosedError
from sqldata.interpret import interpreting
from sqldata.row import RowReference
from sqldata.types import Column, columns_from_cursor_description

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.statement import BindableStatement

logger = logging.getLogger(__name__)

__all__ = ['ResultsNavigator', 'MultipleResults']


class ResultsNavigator:
    """Cursor positioning and row materialization.

    `get_current()` returns the `RowReference` for the current row, or the
    interpreter's result for it when an interpreter is set. The interpreter
    runs on every call; nothing is memoized.
    """

    def __init__(self, cursor: Any, manager: 'ConnectionManager', sql: str,
                 scrollable: bool = False,
                 interpreter: Callable[[RowReference], Any] | None = None,
                 statement: 'BindableStatement | None' = None,
                 owns_cursor: bool = True) -> None:
        self._cursor = cursor
        self._manager = manager
        self.sql = sql
        self._scrollable = scrollable
        self._interpreter = interpreter
        self._statement = statement
        self._owns_cursor = owns_cursor
        self._closed = False
        self._token = 0
        self._pos = 0
        self._row: tuple | None = None
        self._exhausted = False
        self.columns: list[Column] = columns_from_cursor_description(cursor, manager.dialect)
        self._names = Column.get_names(self.columns)
        self._rows: list[tuple] | None = None
        if scrollable:
            self._rows = self._fetch(cursor.fetchall, 'buffer a scrollable result')
            logger.debug(f'Buffered {len(self._rows)} rows for scrollable navigation')

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Any]:
        """Advance through the remaining rows yielding `get_current()`."""
        while self.next():
            yield self.get_current()

    def _fetch(self, fetcher: Callable[[], Any], action: str) -> Any:
        try:
            return fetcher()
        except self._manager.dbapi_error as exc:
            raise ExecutionError(action, self.sql) from exc

    def _check_open(self, action: str) -> None:
        if self._closed:
            raise ResourceClosedError(action)

    def _check_scrollable(self, action: str) -> None:
        self._check_open(action)
        if not self._scrollable:
            raise ForwardOnlyError(action)

    def _moved(self) -> None:
        self._token += 1

    def _on_row(self) -> bool:
        if self._rows is None:
            return self._row is not None
        return 1 <= self._pos <= len(self._rows)

    def _seek(self, pos: int) -> bool:
        self._pos = max(0, min(pos, len(self._rows) + 1))
        self._moved()
        return self._on_row()

    @property
    def position_token(self) -> int:
        """Counter that changes whenever the cursor moves."""
        return self._token

    @property
    def is_scrollable(self) -> bool:
        return self._scrollable

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def row_number(self) -> int:
        """1-based number of the current row, 0 when not on a row."""
        return self._pos if self._on_row() else 0

    @property
    def interpreter(self) -> Callable[[RowReference], Any] | None:
        return self._interpreter

    def set_interpreter(self, interpreter: Callable[[RowReference], Any] | None) -> None:
        self._interpreter = interpreter

    def next(self) -> bool:
        """Move to the next row; False once past the last row."""
        self._check_open('move to the next row')
        if self._rows is not None:
            return self._seek(self._pos + 1)
        self._moved()
        if self._exhausted:
            self._row = None
            return False
        self._row = self._fetch(self._cursor.fetchone, 'fetch the next row')
        if self._row is None:
            self._exhausted = True
            self._pos += 1
            return False
        self._pos += 1
        return True

    def previous(self) -> bool:
        self._check_scrollable('move to the previous row')
        return self._seek(self._pos - 1)

    def first(self) -> bool:
        self._check_scrollable('move to the first row')
        return self._seek(1 if self._rows else 0)

    def last(self) -> bool:
        self._check_scrollable('move to the last row')
        return self._seek(len(self._rows))

    def absolute(self, n: int) -> bool:
        """Move to row `n`; negative values count back from the last row
        and 0 moves before the first row.
        """
        self._check_scrollable(f'move to row {n}')
        if n < 0:
            return self._seek(max(0, len(self._rows) + 1 + n))
        return self._seek(n)

    def relative(self, n: int) -> bool:
        self._check_scrollable(f'move {n} rows')
        return self._seek(self._pos + n)

    def before_first(self) -> None:
        self._check_scrollable('move before the first row')
        self._seek(0)

    def after_last(self) -> None:
        self._check_scrollable('move after the last row')
        self._seek(len(self._rows) + 1)

    def is_before_first(self) -> bool:
        return self._pos == 0 and (self._rows is None or bool(self._rows))

    def is_after_last(self) -> bool:
        if self._rows is None:
            return self._exhausted
        return bool(self._rows) and self._pos > len(self._rows)

    def get_row_reference(self) -> RowReference:
        """`RowReference` for the current row, ignoring any interpreter."""
        self._check_open('read the current row')
        if not self._on_row():
            raise ExecutionError('read the current row (the cursor is not on a row)', self.sql)
        values = self._row if self._rows is None else self._rows[self._pos - 1]
        return RowReference(values, self._names, self, self._token)

    def get_current(self) -> Any:
        """Current row, passed through the interpreter when one is set."""
        row = self.get_row_reference()
        if self._interpreter is None:
            return row
        return interpreting(self._interpreter, row)

    def load(self, loader: Callable[..., Any] | None = None, **kwargs: Any) -> Any:
        """Materialize the remaining rows through a data loader.

        Defaults to the manager's configured `data_loader`.
        """
        loader = loader or self._manager.options.data_loader
        data = []
        while self.next():
            data.append(self.get_row_reference().to_dict())
        return loader(data, self.columns, **kwargs)

    def close(self) -> None:
        """Close the cursor and the statement that produced it."""
        if self._closed:
            return
        self._closed = True
        self._moved()
        self._rows = None
        self._row = None
        try:
            if self._owns_cursor:
                self._cursor.close()
        except self._manager.dbapi_error as exc:
            raise ExecutionError('close a result cursor', self.sql) from exc
        finally:
            if self._statement is not None:
                self._statement.close()
            self._manager._forget(self)
        logger.debug('Closed results navigator')


class MultipleResults:
    """Sequence of results from a statement that yields several.

    `next_result()` returns a `ResultsNavigator` for a result set, an `int`
    for an update count, and `None` once everything has been read. Pulling
    the next result closes the navigator handed out before it.
    """

    def __init__(self, cursor: Any, manager: 'ConnectionManager', sql: str) -> None:
        self._cursor = cursor
        self._manager = manager
        self.sql = sql
        self._current: ResultsNavigator | None = None
        self._started = False
        self._done = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[ResultsNavigator | int]:
        while (result := self.next_result()) is not None:
            yield result

    def _advance(self) -> bool:
        nextset = getattr(self._cursor, 'nextset', None)
        if nextset is None:
            return False
        try:
            return bool(nextset())
        except self._manager.dbapi_error as exc:
            raise ExecutionError('move to the next result', self.sql) from exc

    def next_result(self) -> ResultsNavigator | int | None:
        if self._done:
            return None
        if self._current is not None:
            self._current.close()
            self._current = None
        if self._started and not self._advance():
            self.close()
            return None
        self._started = True
        if self._cursor.description is None:
            return self._cursor.rowcount
        self._current = ResultsNavigator(self._cursor, self._manager, self.sql,
                                         owns_cursor=False)
        self._manager._track(self._current)
        return self._current

    def close(self) -> None:
        if self._done:
            return
        self._done = True
        if self._current is not None:
            self._current.close()
            self._current = None
        try:
            self._cursor.close()
        except self._manager.dbapi_error as exc:
            raise ExecutionError('close a result cursor', self.sql) from exc
        finally:
            self._manager._forget(self)
