"""
IN clause chunking.

Databases and drivers cap the number of literals an `IN (...)` list may
hold. `InClauseFormatter` splits a long value list into chunks of at most
`max_in_clause` literals and renders one complete statement per chunk;
`QuerySeries` runs those statements one after the other while keeping at
most one of their cursors open.

Usage:
    series = manager.get_query_series('SELECT * FROM foo ORDER BY id', 'id', ids)
    while series.has_next():
        with series.execute_next_query() as nav:
            ...
"""
import datetime
import decimal
import logging
import re
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any, Self

from more_itertools import chunked, collapse
from sqldata.exceptions import PastEndOfResultsError, SqlDataError
from sqldata.exceptions import UnhandledDataTypeError
from sqldata.types import TypeConverter

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager
    from sqldata.navigator import ResultsNavigator

logger = logging.getLogger(__name__)

__all__ = ['InClauseFormatter', 'QuerySeries', 'IN_CLAUSE_MARKER']

IN_CLAUSE_MARKER = '??'

_WHERE = re.compile(r'\bWHERE\b', re.IGNORECASE)
_ORDER_BY = re.compile(r'\s+ORDER\s+BY\b', re.IGNORECASE)


class InClauseFormatter:
    """Render chunked IN clause statements.

    Args:
        max_in_clause: maximum number of literals per IN list
    """

    def __init__(self, max_in_clause: int = 500) -> None:
        if max_in_clause < 1:
            raise ValueError(f'max_in_clause must be positive, got {max_in_clause}')
        self.max_in_clause = max_in_clause

    def add_in_clause(self, sql: str, column: str) -> str:
        """Add `<column> IN ??` to a statement.

        The condition joins an existing WHERE clause with AND, or starts one,
        and goes before a trailing ORDER BY. Both are found by a
        case-insensitive match on the statement text.
        """
        keyword = 'AND' if _WHERE.search(sql) else 'WHERE'
        clause = f' {keyword} {column} IN {IN_CLAUSE_MARKER}'
        matches = list(_ORDER_BY.finditer(sql))
        if not matches:
            return sql.rstrip() + clause
        pos = matches[-1].start()
        return sql[:pos].rstrip() + clause + sql[pos:]

    def create_sql(self, sql: str, values: Iterable[Any]) -> list[str]:
        """One statement per chunk of `values`, substituted for the `??` marker.

        Nested sequences in `values` are flattened. An empty value list
        produces no statements.
        """
        if IN_CLAUSE_MARKER not in sql:
            raise ValueError(f'No {IN_CLAUSE_MARKER} marker in statement: {sql}')
        values = list(collapse(values))
        statements = [sql.replace(IN_CLAUSE_MARKER, self.format_list(chunk), 1)
                      for chunk in chunked(values, self.max_in_clause)]
        logger.debug(f'Split {len(values)} values into {len(statements)} statements')
        return statements

    def format_list(self, values: Iterable[Any]) -> str:
        return '(' + ', '.join(self.format_value(v) for v in values) + ')'

    @staticmethod
    def format_value(value: Any) -> str:
        """Render one value as a SQL literal.

        Text is single-quoted with embedded quotes doubled, numbers are left
        bare, booleans become 1/0 and dates are quoted ISO strings.

        Raises
            UnhandledDataTypeError: the value has no literal form
        """
        value = TypeConverter.convert_value(value)
        if value is None:
            return 'NULL'
        if isinstance(value, bool):
            return '1' if value else '0'
        if isinstance(value, (int, float, decimal.Decimal)):
            return str(value)
        if isinstance(value, datetime.datetime):
            return f"'{value.isoformat(' ')}'"
        if isinstance(value, datetime.date):
            return f"'{value.isoformat()}'"
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        raise UnhandledDataTypeError(type(value).__name__)


class QuerySeries:
    """Ordered chunk statements, executed one at a time.

    Each `execute_next_query()` closes the navigator it returned last time
    before running the next statement.
    """

    def __init__(self, manager: 'ConnectionManager', statements: list[str]) -> None:
        self._manager = manager
        self._statements = list(statements)
        self._index = 0
        self._last: ResultsNavigator | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator['ResultsNavigator']:
        while self.has_next():
            yield self.execute_next_query()

    @property
    def statements(self) -> list[str]:
        return list(self._statements)

    def query_count(self) -> int:
        return len(self._statements)

    def has_next(self) -> bool:
        return self._index < len(self._statements)

    def _close_last(self) -> None:
        if self._last is None:
            return
        try:
            self._last.close()
        except SqlDataError as exc:
            logger.debug(f'Previous navigator already unusable: {exc}')
        self._last = None

    def execute_next_query(self) -> 'ResultsNavigator':
        """Close the previous navigator and run the next chunk.

        Raises
            PastEndOfResultsError: every statement has been run
        """
        if not self.has_next():
            raise PastEndOfResultsError()
        self._close_last()
        sql = self._statements[self._index]
        self._index += 1
        self._last = self._manager.execute_query(sql)
        return self._last

    def close(self) -> None:
        """Close the open navigator, if any, and skip the remaining statements."""
        self._close_last()
        self._index = len(self._statements)
