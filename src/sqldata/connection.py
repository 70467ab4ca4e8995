"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating a new `ConnectionManager`
2. The `ConnectionManager` class that owns exactly one DB-API connection
3. The `check_connection` retry decorator and the `dumpsql` execution logger

SQLAlchemy builds the engine and URL and performs catalog inspection; SQL is
executed on the raw DB-API connection so cursors can be handed out to
`ResultsNavigator` objects. One manager is not safe for use from several
threads.

The ConnectionManager is the dispatch point for the rest of the package:
- execute_query(sql) - Execute a query and return a ResultsNavigator
- execute_update(sql) - Execute DML/DDL and return the affected row count
- execute(sql) - Execute and walk interleaved result sets and update counts
- get_bindable_statement(sql) - Parameterized statement
- get_table(name) - Pooled table metadata and incremental key cache
- get_query_series(sql, column, values) - Chunked IN clause queries
"""
import logging
import time
import weakref
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from functools import wraps
from typing import TYPE_CHECKING, Any, Self, TypeVar

import sqlalchemy as sa
from sqldata.batch import BatchProcessor
from sqldata.exceptions import ConfigError, ConnectionClosedError
from sqldata.exceptions import ConnectionFailure, DbConnectionError
from sqldata.exceptions import ExecutionError, PasswordFileError
from sqldata.exceptions import is_retryable_error
from sqldata.inclause import InClauseFormatter, QuerySeries
from sqldata.navigator import MultipleResults, ResultsNavigator
from sqldata.options import DatabaseOptions
from sqldata.statement import BindableStatement, format_bind_values
from sqldata.strategy import get_strategy
from sqldata.table import Table, TableRegistry
from sqlalchemy.pool import NullPool

if TYPE_CHECKING:
    from sqldata.row import RowReference

__all__ = [
    'ConnectionManager',
    'connect',
    'check_connection',
    'dumpsql',
    'read_password_file',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Retries the call on connection errors that look transient (see
    `is_retryable_error`); anything else is raised on the first failure.

    Supports both @check_connection and @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while True:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    tries += 1
                    if not is_retryable_error(err):
                        raise
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def dumpsql(func):
    """Decorator for logging SQL, bind values and execution time.

    SQL is always logged at DEBUG. With the manager's debug flag set it is
    logged at INFO together with the elapsed seconds.
    """
    @wraps(func)
    def wrapper(self, cursor: Any, sql: str, params: Sequence[Any] = (), *args, **kwargs):
        level = logging.INFO if self.debug else logging.DEBUG
        message = f'SQL:\n{sql}'
        if params:
            message = f'{message}\nbind values: {format_bind_values(params)}'
        logger.log(level, message)
        start = time.time()
        try:
            return func(self, cursor, sql, params, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\n{message}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            if self.debug:
                logger.info(f'Query time: {elapsed:.4f}s')
    return wrapper


def read_password_file(path: str) -> str:
    """Return the first line of a password file.

    Raises
        PasswordFileError: the file cannot be read or is empty
    """
    try:
        with open(path, encoding='utf-8') as f:
            password = f.readline().strip()
    except OSError as exc:
        raise PasswordFileError(path) from exc
    if not password:
        raise PasswordFileError(path)
    return password


class ConnectionManager:
    """Owns one database connection and executes SQL on it.

    The connection opens at construction unless `lazy=True`, in which case
    it opens on first use. After `close_resources()` every operation fails
    with `ConnectionClosedError` until `reconnect()` is called.

    Every navigator, statement and multiple-results object handed out is
    tracked and closed together with the connection.
    """

    def __init__(self, options: DatabaseOptions | Mapping[str, Any] | None = None,
                 registry: TableRegistry | None = None, lazy: bool = False,
                 **kwargs: Any) -> None:
        if options is None:
            options = DatabaseOptions(**kwargs)
        elif isinstance(options, Mapping):
            options = DatabaseOptions.from_mapping(options, **kwargs)
        else:
            # private copy; the setters below write to it
            options = replace(options, **kwargs)
        self.options = options
        self.strategy = get_strategy(options.drivername)
        self.registry = registry if registry is not None else TableRegistry()
        self.engine: sa.Engine | None = None
        self.sa_connection: sa.Connection | None = None
        self.dbapi_connection: Any = None
        self._dbapi: Any = None
        self._closed = False
        self._resources: weakref.WeakSet = weakref.WeakSet()
        self.calls = 0
        self.time = 0.0
        if not lazy:
            self.connect()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_resources()

    def __repr__(self) -> str:
        state = 'open' if self.is_open else 'closed'
        return f'ConnectionManager({self.options.drivername}://{self.identity}, {state})'

    # properties

    @property
    def server(self) -> str | None:
        return self.options.server

    @property
    def database(self) -> str | None:
        return self.options.database

    @property
    def user(self) -> str | None:
        return self.options.user

    @property
    def schema(self) -> str | None:
        return self.options.schema

    @property
    def url(self) -> str:
        """Connection URL with the password masked."""
        url = self.strategy.build_connection_url(self.options, None)
        return url.render_as_string(hide_password=True)

    @property
    def dialect(self) -> str:
        return self.strategy.dialect_name

    @property
    def identity(self) -> str:
        """`host[:port]/database` of the resolved URL, the database part of
        pooled table and catalog cache keys.
        """
        url = self.strategy.build_connection_url(self.options, None)
        host = url.host or self.options.server or ''
        if url.port:
            host = f'{host}:{url.port}'
        return f'{host}/{url.database or self.options.database or ""}'

    @property
    def is_open(self) -> bool:
        return self.sa_connection is not None and not self.sa_connection.closed

    @property
    def autocommit(self) -> bool:
        return self.options.autocommit

    @property
    def scrollable(self) -> bool:
        return self.options.scrollable

    @property
    def debug(self) -> bool:
        return self.options.debug

    @property
    def dbapi_error(self) -> type[Exception]:
        """Base error class of the loaded DB-API driver."""
        return self._dbapi.Error

    @property
    def dbapi_warning(self) -> type[Exception]:
        return self._dbapi.Warning

    # lifecycle

    def _resolve_password(self) -> str | None:
        if self.options.password:
            return self.options.password
        if self.options.password_file:
            return read_password_file(self.options.password_file)
        return None

    def _open_once(self) -> None:
        password = self._resolve_password()
        url = self.strategy.build_connection_url(self.options, password)
        try:
            engine = sa.create_engine(url, poolclass=NullPool,
                                      **self.strategy.get_engine_kwargs(self.options))
        except (sa.exc.ArgumentError, sa.exc.NoSuchModuleError) as exc:
            raise ConfigError('url', str(exc)) from exc
        try:
            sa_connection = engine.connect()
        except Exception:
            engine.dispose()
            raise
        self.engine = engine
        self.sa_connection = sa_connection
        self.dbapi_connection = sa_connection.connection.driver_connection
        self._dbapi = engine.dialect.loaded_dbapi
        self.strategy.configure_connection(self.dbapi_connection, self.options.autocommit)

    def connect(self) -> None:
        """Open the connection, retrying transient failures.

        Raises
            ConnectionFailure: the connection could not be opened
        """
        if self.is_open:
            return
        opener = check_connection(self._open_once, max_retries=self.options.connect_retries)
        try:
            opener()
        except DbConnectionError as exc:
            if isinstance(exc, ConnectionFailure):
                raise
            raise ConnectionFailure(self.server, self.database, str(exc)) from exc
        self._closed = False
        logger.debug(f'Opened connection to {self.identity} ({self.dialect})')

    def reconnect(self) -> None:
        """Re-open a closed connection; no-op when already open.

        A password file is read again when no literal password is set.
        """
        if self.is_open:
            return
        logger.debug(f'Reconnecting to {self.identity}')
        self.connect()

    def close_resources(self) -> None:
        """Close every tracked resource and then the connection.
        """
        for resource in list(self._resources):
            try:
                resource.close()
            except ExecutionError as exc:
                logger.warning(f'Error closing {resource!r}: {exc}')
        self._resources.clear()
        if self.sa_connection is not None and not self.sa_connection.closed:
            self.sa_connection.close()
        if self.engine is not None:
            self.engine.dispose()
        self.sa_connection = None
        self.dbapi_connection = None
        self.engine = None
        self._closed = True
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1,self.calls):.3f}s per query)')

    close = close_resources

    def _check_connection(self, action: str) -> None:
        """Open a lazy connection on first use; fail fast once closed."""
        if self.is_open:
            return
        if self._closed:
            raise ConnectionClosedError(action)
        self.connect()

    def _require_open(self, action: str) -> None:
        if not self.is_open:
            raise ConnectionClosedError(action)

    def _track(self, resource: Any) -> None:
        self._resources.add(resource)

    def _forget(self, resource: Any) -> None:
        self._resources.discard(resource)

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    # execution

    @dumpsql
    def _run(self, cursor: Any, sql: str, params: Sequence[Any] = (), action: str = 'execute') -> None:
        """Execute on `cursor`; driver warnings are logged, errors wrapped."""
        prepared = self.strategy.prepare_sql(sql, bool(params))
        try:
            if params:
                cursor.execute(prepared, tuple(params))
            else:
                cursor.execute(prepared)
        except self.dbapi_warning as warning:
            logger.warning(f'Database warning while trying to {action}: {warning}')
        except self.dbapi_error as exc:
            cursor.close()
            raise ExecutionError(action, sql) from exc

    def _new_cursor(self, action: str) -> Any:
        self._check_connection(action)
        try:
            return self.dbapi_connection.cursor()
        except self.dbapi_error as exc:
            raise ExecutionError(action) from exc

    def _execute_query(self, sql: str, params: Sequence[Any] = (),
                       interpreter: Callable[['RowReference'], Any] | None = None,
                       statement: BindableStatement | None = None) -> ResultsNavigator:
        cursor = self._new_cursor('execute a query')
        self._run(cursor, sql, params, action='execute a query')
        navigator = ResultsNavigator(cursor, self, sql, scrollable=self.scrollable,
                                     interpreter=interpreter, statement=statement)
        self._track(navigator)
        return navigator

    def _execute_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        cursor = self._new_cursor('execute an update')
        try:
            self._run(cursor, sql, params, action='execute an update')
            return cursor.rowcount
        finally:
            cursor.close()

    def execute_query(self, sql: str, params: Sequence[Any] | None = None,
                      interpreter: Callable[['RowReference'], Any] | None = None) -> ResultsNavigator:
        """Execute a query and return a navigator positioned before the first row.

        With `params` the query runs through a `BindableStatement` that is
        closed together with the navigator.
        """
        if params is None:
            return self._execute_query(sql, interpreter=interpreter)
        statement = self.get_bindable_statement(sql)
        try:
            statement.bind(params)
            return self._execute_query(sql, statement.bind_values, interpreter=interpreter,
                                       statement=statement)
        except Exception:
            statement.close()
            raise

    def execute_update(self, sql: str, params: Sequence[Any] | None = None) -> int:
        """Execute DML or DDL and return the affected row count.
        """
        if params is None:
            return self._execute_update(sql)
        with self.get_bindable_statement(sql) as statement:
            return statement.execute_update(params)

    def execute(self, sql: str) -> MultipleResults:
        """Execute a statement that may produce several results.
        """
        cursor = self._new_cursor('execute a statement')
        self._run(cursor, sql, action='execute a statement')
        results = MultipleResults(cursor, self, sql)
        self._track(results)
        return results

    def commit(self) -> None:
        self._require_open('commit')
        try:
            self.dbapi_connection.commit()
        except self.dbapi_error as exc:
            raise ExecutionError('commit') from exc

    def rollback(self) -> None:
        self._require_open('rollback')
        try:
            self.dbapi_connection.rollback()
        except self.dbapi_error as exc:
            raise ExecutionError('rollback') from exc

    def set_autocommit(self, autocommit: bool) -> None:
        """Switch auto-commit mode now and for later reconnects."""
        self.options.autocommit = autocommit
        if self.is_open:
            try:
                self.strategy.set_autocommit(self.dbapi_connection, autocommit)
            except self.dbapi_error as exc:
                raise ExecutionError(f'set autocommit to {autocommit}') from exc

    def set_scrollable(self, scrollable: bool) -> None:
        """Open later query navigators scrollable or forward-only."""
        self.options.scrollable = scrollable

    # factories

    def get_bindable_statement(self, sql: str) -> BindableStatement:
        self._check_connection('prepare a statement')
        statement = BindableStatement(self, sql)
        self._track(statement)
        return statement

    def get_batch_processor(self) -> BatchProcessor:
        self._check_connection('create a batch processor')
        return BatchProcessor(self)

    def get_table(self, name: str) -> Table:
        """Pooled `Table` for this database."""
        self._check_connection(f'get table {name}')
        return self.registry.get(self, name)

    def get_tables(self) -> list[Table]:
        """Pooled `Table` objects for every table in the catalog."""
        names = self.inspector().get_table_names(schema=self.schema)
        return [self.get_table(name) for name in names]

    def get_query_series(self, sql: str, column: str, values: Iterable[Any]) -> QuerySeries:
        """Split a query over an oversized value list into chunked IN clauses.

        `sql` is the query without the IN clause; `column` is the column the
        values are matched against.
        """
        formatter = InClauseFormatter(self.options.max_in_clause)
        statements = formatter.create_sql(formatter.add_in_clause(sql, column), values)
        return QuerySeries(self, statements)

    def inspector(self) -> sa.Inspector:
        """SQLAlchemy inspector on the open connection."""
        self._check_connection('inspect the catalog')
        return sa.inspect(self.sa_connection)

    def temp_manager(self, database: str, lazy: bool = False) -> 'ConnectionManager':
        """New manager on the same server and credentials for another database.

        The new manager shares this manager's table registry.
        """
        url = self.options.url
        if url:
            url = sa.make_url(url).set(database=database).render_as_string(hide_password=False)
        options = replace(self.options, database=database, url=url)
        return ConnectionManager(options, registry=self.registry, lazy=lazy)


def connect(options: DatabaseOptions | Mapping[str, Any] | None = None,
            **kwargs: Any) -> ConnectionManager:
    """Create a connected `ConnectionManager`.

    Accepts `DatabaseOptions`, a plain mapping, or keyword arguments.
    """
    return ConnectionManager(options, **kwargs)
