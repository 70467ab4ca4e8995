"""
Batched statement execution.
"""
import logging
from typing import TYPE_CHECKING, Self

from sqldata.exceptions import BatchError, ExecutionError, ResourceClosedError

if TYPE_CHECKING:
    from sqldata.connection import ConnectionManager

logger = logging.getLogger(__name__)

__all__ = ['BatchProcessor']


class BatchProcessor:
    """Accumulate SQL statements and run them in order on one cursor.

    Execution stops at the first failing statement; statements already run
    are not rolled back here (commit or roll back through the manager when
    auto-commit is off).
    """

    def __init__(self, manager: 'ConnectionManager') -> None:
        self._manager = manager
        self._history: list[str] = []
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._history)

    @property
    def statements(self) -> list[str]:
        return list(self._history)

    def add_sql(self, sql: str) -> None:
        if self._closed:
            raise ResourceClosedError(f'add the following sql to the batch: {sql}')
        self._history.append(sql)

    def execute_batch(self) -> list[int]:
        """Run every queued statement and return their row counts.

        The queue is cleared after a successful run.

        Raises
            BatchError: a statement failed; carries its index and the counts
            of the statements before it
        """
        if self._closed:
            raise ResourceClosedError('execute the batch')
        counts: list[int] = []
        cursor = self._manager._new_cursor('execute the batch')
        try:
            for index, sql in enumerate(self._history):
                try:
                    self._manager._run(cursor, sql, action=f'run batch statement {index}')
                except ExecutionError as exc:
                    logger.error(f'Batch failed at statement {index} of {len(self._history)}')
                    raise BatchError(index, sql, counts) from exc.__cause__
                counts.append(cursor.rowcount)
        finally:
            cursor.close()
        logger.info(f'Batch completed: {len(counts)} statements run, 0 failed')
        self._history.clear()
        return counts

    def clear(self) -> None:
        self._history.clear()

    def close(self) -> None:
        self._history.clear()
        self._closed = True
