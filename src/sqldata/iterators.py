"""
Single-pass iterators over a ResultsNavigator.

Both iterators read one row ahead: the next value is computed before it is
asked for, so `has_next()` never consumes the row it reports on.

- `RowDataIterator` yields one value per row.
- `MultiRowIterator` yields one value per run of consecutive rows sharing a
  grouping key. The query must already be ordered by that key; this is not
  checked.
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from typing import Any, Self

from sqldata.exceptions import PastEndOfResultsError, ResourceClosedError
from sqldata.interpret import MultiRowInterpreter, interpreting
from sqldata.navigator import ResultsNavigator
from sqldata.row import RowReference

logger = logging.getLogger(__name__)

__all__ = ['RowDataIterator', 'MultiRowIterator']


class _LookaheadIterator(ABC):
    """Shared protocol: `has_next()`, `next()`, iteration and closing."""

    def __init__(self, navigator: ResultsNavigator) -> None:
        self._navigator = navigator
        self._done = False
        self._closed = False
        self._broken = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Any]:
        return self

    def __next__(self) -> Any:
        if not self.has_next():
            raise StopIteration
        return self.next()

    def _check_usable(self) -> None:
        if self._closed:
            raise ResourceClosedError('read from a closed iterator')
        if self._broken:
            raise ResourceClosedError('read from an iterator after a failed read')

    def has_next(self) -> bool:
        return not (self._done or self._closed or self._broken)

    def next(self) -> Any:
        """Return the next value.

        Raises
            PastEndOfResultsError: there are no more values
        """
        self._check_usable()
        if self._done:
            raise PastEndOfResultsError()
        return self._produce()

    @abstractmethod
    def _produce(self) -> Any:
        """Compute the value `next()` returns."""

    def _guarded(self, step: Callable[[], Any]) -> Any:
        """Run a read step; any failure leaves the iterator unusable.

        Interpreter failures arrive here already wrapped as `InterpretError`;
        navigation errors pass through unchanged.
        """
        try:
            return step()
        except Exception:
            self._broken = True
            raise

    def to_list(self) -> list[Any]:
        """Remaining values as a list; the iterator is closed afterwards."""
        try:
            return list(self)
        finally:
            self.close()

    @property
    def navigator(self) -> ResultsNavigator:
        return self._navigator

    def close(self) -> None:
        """Close the underlying navigator. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._navigator.close()


class RowDataIterator(_LookaheadIterator):
    """Iterate a navigator one row at a time.

    With an `interpreter` each value is `interpreter(row)`. Without one the
    value is whatever the navigator's `get_current()` yields; plain rows are
    handed out as detached copies so a buffered row never goes stale.
    """

    def __init__(self, navigator: ResultsNavigator,
                 interpreter: Callable[[RowReference], Any] | None = None) -> None:
        super().__init__(navigator)
        self._interpreter = interpreter
        self._buffer: Any = None
        self._guarded(self._read_ahead)

    def _current(self) -> Any:
        if self._interpreter is not None:
            row = self._navigator.get_row_reference()
            return interpreting(self._interpreter, row)
        value = self._navigator.get_current()
        if isinstance(value, RowReference):
            return value.copy()
        return value

    def _read_ahead(self) -> None:
        if not self._navigator.next():
            self._done = True
            self._buffer = None
            return
        self._buffer = self._current()

    def _produce(self) -> Any:
        value = self._buffer
        self._guarded(self._read_ahead)
        return value


class MultiRowIterator(_LookaheadIterator):
    """Collapse runs of same-key rows into one object per run.

    Each row is interpreted and keyed exactly once, in cursor order. Any
    failure while interpreting is raised as `InterpretError` and leaves the
    iterator unusable.
    """

    def __init__(self, navigator: ResultsNavigator,
                 interpreter: MultiRowInterpreter) -> None:
        super().__init__(navigator)
        self._interpreter = interpreter
        self._next_key: Any = None
        self._next_obj: Any = None
        self._guarded(self._read_ahead)

    def _read_ahead(self) -> bool:
        """Interpret the next row into the lookahead slot; False at the end."""
        if not self._navigator.next():
            self._done = True
            self._next_key = self._next_obj = None
            return False
        row = self._navigator.get_row_reference()
        self._next_key = interpreting(self._interpreter.group_key, row)
        self._next_obj = interpreting(self._interpreter.interpret, row)
        return True

    def _collect(self) -> Any:
        key = self._next_key
        group = [self._next_obj]
        while self._read_ahead():
            if self._next_key != key:
                break
            group.append(self._next_obj)
        logger.debug(f'Grouped {len(group)} rows for key {key!r}')
        return interpreting(self._interpreter.interpret_rows, group)

    def _produce(self) -> Any:
        return self._guarded(self._collect)
