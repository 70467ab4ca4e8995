"""
Database access exception classes.

Every error carries the runtime values it was raised with as attributes
(SQL text, names, counts) and renders a fixed human-readable message from
them. Driver exceptions are never re-raised directly; they are chained as
``__cause__`` of an :class:`ExecutionError`.
"""
import re
import sqlite3

import psycopg
import sqlalchemy.exc

RETRYABLE_PATTERNS = [
    # SSL/TLS errors
    r'ssl',
    r'tls',
    # Connection drops
    r'connection.*(closed|reset|refused|lost|terminated|broken)',
    r'server closed',
    r'eof detected',
    r'broken pipe',
    # Timeouts
    r'timeout',
    r'timed out',
    # Network issues
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'host.*(unreachable|down)',
    # Database unavailable
    r'database.*unavailable',
    r'too many connections',
    r'the database system is starting up',
]

# Failures that will not succeed on retry, checked before the patterns above
FATAL_PATTERNS = [
    r'password authentication failed',
    r'database .* does not exist',
    r'unknown host',
    r'could not translate host name',
]

_RETRYABLE_REGEX = re.compile('|'.join(RETRYABLE_PATTERNS), re.IGNORECASE)
_FATAL_REGEX = re.compile('|'.join(FATAL_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception represents a transient error worth retrying.

    Bad credentials, unknown databases and unknown hosts are never retried.

    :param exc: The exception to check.
    :returns: True if the error is likely transient and worth retrying.
    """
    error_msg = str(exc).lower()
    if _FATAL_REGEX.search(error_msg):
        return False
    return bool(_RETRYABLE_REGEX.search(error_msg))


class SqlDataError(Exception):
    """Base class for all sqldata errors.
    """

    is_data_related = False


class ConfigError(SqlDataError, ValueError):
    """Bad or missing configuration parameter.
    """

    def __init__(self, parameter: str, reason: str) -> None:
        self.parameter = parameter
        self.reason = reason
        super().__init__(f'Configuration parameter {parameter!r} is invalid: {reason}')


class ConnectionFailure(SqlDataError):
    """Error establishing a database connection.
    """

    def __init__(self, server: str | None, database: str | None,
                 reason: str | None = None) -> None:
        self.server = server
        self.database = database
        msg = f'Could not open database connection to {database} on server {server}'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg)


class ConnectionClosedError(ConnectionFailure):
    """Operation attempted on a closed connection.
    """

    def __init__(self, action: str) -> None:
        self.action = action
        self.server = None
        self.database = None
        SqlDataError.__init__(self, f'Connection is closed: cannot {action}')


class PasswordFileError(ConnectionFailure):
    """Password could not be read from the configured password file.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.server = None
        self.database = None
        SqlDataError.__init__(self, f'Could not retrieve password from password file {path}')


class ExecutionError(SqlDataError):
    """A driver call failed.

    ``action`` describes what was being attempted and ``sql`` holds the
    statement text when there was one.
    """

    def __init__(self, action: str, sql: str | None = None) -> None:
        self.action = action
        self.sql = sql
        msg = f'A database error occurred while trying to {action}'
        if sql:
            msg = f'{msg}\nSQL:\n{sql}'
        super().__init__(msg)


class ForwardOnlyError(ExecutionError):
    """Backward or absolute positioning requested on a forward-only cursor.
    """

    def __init__(self, action: str) -> None:
        super().__init__(f'{action} (the result set is forward-only)')


class BatchError(ExecutionError):
    """One statement of a batch failed.

    ``index`` is the 0-based position of the failing statement and
    ``update_counts`` holds the row counts of the statements run before it.
    """

    def __init__(self, index: int, sql: str, update_counts: list[int]) -> None:
        self.index = index
        self.update_counts = list(update_counts)
        super().__init__(f'run batch statement {index}', sql)


class ResourceClosedError(SqlDataError):
    """A navigator, statement or iterator was used after it was closed.
    """

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f'Resource is closed: cannot {action}')


class PastEndOfResultsError(SqlDataError):
    """Attempt to read beyond the end of a result set.
    """

    def __init__(self) -> None:
        super().__init__('Attempt to access beyond the end of result set')


class BindError(SqlDataError):
    """Base class for bind variable errors.
    """


class BindCountError(BindError):
    """Bind vector size does not match the statement's placeholder count.
    """

    def __init__(self, given: int, expected: int) -> None:
        self.given = given
        self.expected = expected
        super().__init__(
            f'Size {given} of the given binding vector is inconsistent with '
            f'the count {expected} of binding places in the statement')


class UnhandledDataTypeError(BindError):
    """Bind value type has no binding rule.
    """

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f'Unhandled datatype: {type_name}')


class InterpretError(SqlDataError):
    """Row to object conversion failed.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f'Could not interpret row data: {reason}')


class TypeConversionError(SqlDataError):
    """A column value could not be converted to the requested type.
    """

    def __init__(self, column: str | int, value: object, target: str) -> None:
        self.column = column
        self.value = value
        self.target = target
        super().__init__(f'Could not convert value {value!r} of column {column!r} to {target}')


class MetadataError(SqlDataError):
    """Base class for table metadata errors.
    """


class NoTableDefinitionsError(MetadataError):
    """The catalog returned no column definitions for a table.
    """

    def __init__(self, table: str, database: str | None) -> None:
        self.table = table
        self.database = database
        super().__init__(f'Could not retrieve metadata for table {table} in database {database}')


class UnexpectedKeyCountError(MetadataError):
    """The table has no cacheable single integer primary key.
    """

    def __init__(self, table: str, database: str | None) -> None:
        self.table = table
        self.database = database
        super().__init__(
            f'Expected a single primary key for table {table} in database '
            f'{database} when trying to calculate next key value. Check that '
            'a primary key was defined, it is an integer and is only a '
            'single part key.')


class DataError(SqlDataError):
    """Error caused by bad input data rather than by the program.
    """

    is_data_related = True


class ValidationError(DataError):
    """A record failed validation against a table's metadata.
    """

    def __init__(self, table: str, reason: str | None = None) -> None:
        self.table = table
        self.reason = reason
        msg = f'Table {table} failed validation on a given record'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg)


class FieldCountError(ValidationError):
    """Record length does not match the table's column count.
    """

    def __init__(self, table: str, found: int, expected: int) -> None:
        self.found = found
        self.expected = expected
        super().__init__(table, f'Invalid number of fields. Found: {found} Expected: {expected}')


class FieldTypeError(ValidationError):
    """A record value is not acceptable for its column.
    """

    def __init__(self, table: str, column: str, value: object, reason: str) -> None:
        self.column = column
        self.value = value
        super().__init__(table, f'column {column} value {value!r}: {reason}')


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    ConnectionFailure,
    )
