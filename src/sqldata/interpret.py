"""
Row interpretation.

A row interpreter is any callable taking a `RowReference` and returning a
domain object. Grouped data uses a `MultiRowInterpreter`: one function
deriving each row's grouping key, one interpreting a row, and one folding
the interpreted rows of a group into the final object.
"""
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeAlias, TypeVar

from sqldata.exceptions import InterpretError
from sqldata.row import RowReference

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.iterators import MultiRowIterator, RowDataIterator

__all__ = [
    'RowInterpreter',
    'MultiRowInterpreter',
    'ObjectQuery',
    'row_to_dict',
    'row_to_tuple',
    'row_to_string',
    'row_to_object',
    'interpreting',
]

T = TypeVar('T')
R = TypeVar('R')

RowInterpreter: TypeAlias = Callable[[RowReference], Any]


def interpreting(func: Callable[..., T], *args: Any) -> T:
    """Call an interpreter function; whatever it raises becomes `InterpretError`.

    The original exception is kept as `__cause__`.
    """
    try:
        return func(*args)
    except InterpretError:
        raise
    except Exception as exc:
        raise InterpretError(f'{type(exc).__name__}: {exc}') from exc


@dataclass(frozen=True)
class MultiRowInterpreter(Generic[T, R]):
    """Grouped row interpretation.

    Rows whose keys compare equal and arrive consecutively form one group.
    `key_of` and `interpret` must be pure functions of the row.

    Args:
        key_of: grouping key of a row
        interpret: row to intermediate object
        interpret_rows: intermediate objects of one group to the final object
        key_as_text: compare keys by their `str()` form instead of natively
    """
    key_of: Callable[[RowReference], Any]
    interpret: Callable[[RowReference], T]
    interpret_rows: Callable[[list[T]], R]
    key_as_text: bool = False

    def group_key(self, row: RowReference) -> Any:
        key = self.key_of(row)
        return str(key) if self.key_as_text else key


def row_to_dict(row: RowReference) -> dict[str, Any]:
    """Row as a column name -> value dict."""
    return row.to_dict()


def row_to_tuple(row: RowReference) -> tuple:
    return row.values()


def row_to_string(sep: str = '\t', null: str = '') -> RowInterpreter:
    """Interpreter joining the row's values into a delimited line."""
    def interpret(row: RowReference) -> str:
        return row.as_string(sep, null)
    return interpret


def row_to_object(factory: Callable[..., T], columns: Sequence[str] | None = None,
                  lowercase: bool = True) -> Callable[[RowReference], T]:
    """Interpreter passing the row's columns to `factory` as keyword arguments.

    Works with dataclasses and other keyword constructors. Column names are
    lowercased unless `lowercase` is False; `columns` limits which columns
    are passed.
    """
    def interpret(row: RowReference) -> T:
        data = row.to_dict()
        if columns is not None:
            data = {name: row[name] for name in columns}
        if lowercase:
            data = {name.lower(): value for name, value in data.items()}
        return factory(**data)
    return interpret


@dataclass
class ObjectQuery:
    """A query bundled with the interpreter for its rows.

    `pre_sql` runs as an update before the query (e.g. filling a temp
    table) and `post_sql` runs after `execute()` returns the iterator.
    """
    sql: str
    interpreter: RowInterpreter | MultiRowInterpreter | None = None
    params: Sequence[Any] | None = None
    pre_sql: Sequence[str] = ()
    post_sql: Sequence[str] = ()

    def execute(self, manager: 'ConnectionManager') -> 'RowDataIterator | MultiRowIterator':
        """Run the query and wrap the navigator in the matching iterator."""
        from sqldata.iterators import MultiRowIterator, RowDataIterator

        for sql in self.pre_sql:
            manager.execute_update(sql)
        navigator = manager.execute_query(self.sql, self.params)
        if isinstance(self.interpreter, MultiRowInterpreter):
            iterator = MultiRowIterator(navigator, self.interpreter)
        else:
            iterator = RowDataIterator(navigator, self.interpreter)
        for sql in self.post_sql:
            manager.execute_update(sql)
        return iterator
