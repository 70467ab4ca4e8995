"""
Relational data access with SQLAlchemy-built connections for PostgreSQL,
SQLite and SQL Server.

Operations can be called either as:
- ConnectionManager methods: cn.execute_query(sql)
- Module functions: sqldata.execute_query(cn, sql)

Results come back as a `ResultsNavigator`; wrap one in a `RowDataIterator`
or `MultiRowIterator` to turn rows into objects.
"""
__version__ = '0.1.0'

from collections.abc import Iterable, Sequence
from typing import Any

from sqldata.batch import BatchProcessor
from sqldata.connection import ConnectionManager, connect
from sqldata.exceptions import BatchError, BindCountError, BindError
from sqldata.exceptions import ConfigError, ConnectionClosedError
from sqldata.exceptions import ConnectionFailure, DataError, DbConnectionError
from sqldata.exceptions import ExecutionError, FieldCountError, FieldTypeError
from sqldata.exceptions import ForwardOnlyError, InterpretError, MetadataError
from sqldata.exceptions import NoTableDefinitionsError, PasswordFileError
from sqldata.exceptions import PastEndOfResultsError, ResourceClosedError
from sqldata.exceptions import SqlDataError, TypeConversionError
from sqldata.exceptions import UnexpectedKeyCountError, UnhandledDataTypeError
from sqldata.exceptions import ValidationError
from sqldata.inclause import InClauseFormatter, QuerySeries
from sqldata.interpret import MultiRowInterpreter, ObjectQuery, RowInterpreter
from sqldata.interpret import row_to_dict, row_to_object, row_to_string
from sqldata.interpret import row_to_tuple
from sqldata.iterators import MultiRowIterator, RowDataIterator
from sqldata.navigator import MultipleResults, ResultsNavigator
from sqldata.options import DatabaseOptions
from sqldata.row import RowReference
from sqldata.statement import BindableStatement
from sqldata.table import RecordStamp, Table, TableRegistry
from sqldata.types import Column, ColumnDef, SqlType


def execute_query(cn: ConnectionManager, sql: str,
                  params: Sequence[Any] | None = None) -> ResultsNavigator:
    """Execute a query and return a navigator before the first row.
    """
    return cn.execute_query(sql, params)


def execute_update(cn: ConnectionManager, sql: str,
                   params: Sequence[Any] | None = None) -> int:
    """Execute DML or DDL and return the affected row count.
    """
    return cn.execute_update(sql, params)


def iterate(cn: ConnectionManager, sql: str,
            interpreter: RowInterpreter | MultiRowInterpreter | None = None,
            params: Sequence[Any] | None = None) -> RowDataIterator | MultiRowIterator:
    """Run a query and iterate its interpreted rows.

    A `MultiRowInterpreter` groups consecutive rows sharing a key; the query
    must be ordered by that key.
    """
    return ObjectQuery(sql, interpreter, params).execute(cn)


def query_series(cn: ConnectionManager, sql: str, column: str,
                 values: Iterable[Any]) -> QuerySeries:
    """Chunked IN clause queries over `values`.
    """
    return cn.get_query_series(sql, column, values)


__all__ = [
    'connect',
    'ConnectionManager',
    'DatabaseOptions',
    'execute_query',
    'execute_update',
    'iterate',
    'query_series',
    'ResultsNavigator',
    'MultipleResults',
    'RowReference',
    'RowDataIterator',
    'MultiRowIterator',
    'RowInterpreter',
    'MultiRowInterpreter',
    'ObjectQuery',
    'row_to_dict',
    'row_to_tuple',
    'row_to_string',
    'row_to_object',
    'BindableStatement',
    'BatchProcessor',
    'Table',
    'TableRegistry',
    'RecordStamp',
    'InClauseFormatter',
    'QuerySeries',
    'Column',
    'ColumnDef',
    'SqlType',
    'SqlDataError',
    'ConfigError',
    'ConnectionFailure',
    'ConnectionClosedError',
    'PasswordFileError',
    'DbConnectionError',
    'ExecutionError',
    'ForwardOnlyError',
    'BatchError',
    'ResourceClosedError',
    'PastEndOfResultsError',
    'BindError',
    'BindCountError',
    'UnhandledDataTypeError',
    'InterpretError',
    'TypeConversionError',
    'MetadataError',
    'NoTableDefinitionsError',
    'UnexpectedKeyCountError',
    'DataError',
    'ValidationError',
    'FieldCountError',
    'FieldTypeError',
]
