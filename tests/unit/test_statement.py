import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest
from sqldata.exceptions import BindCountError, ResourceClosedError
from sqldata.exceptions import UnhandledDataTypeError
from sqldata.statement import BindableStatement, coerce_bind_value
from sqldata.statement import format_bind_values


@pytest.fixture
def manager():
    manager = MagicMock()
    manager._execute_update.return_value = 1
    return manager


@pytest.fixture
def stmt(manager):
    return BindableStatement(manager, 'INSERT INTO foo VALUES (?, ?, ?)')


@pytest.mark.parametrize(('value', 'expected'), [
    (None, None),
    (1, 1),
    (1.5, 1.5),
    ('x', 'x'),
    (True, True),
    (Decimal('1.10'), Decimal('1.10')),
    (datetime.date(2024, 1, 2), datetime.date(2024, 1, 2)),
    (np.int32(5), 5),
    (np.float64('nan'), None),
    (pd.Timestamp('2024-01-02 03:04'), datetime.datetime(2024, 1, 2, 3, 4)),
])
def test_coerce_bind_value(value, expected):
    assert coerce_bind_value(value) == expected


def test_coerce_rejects_unknown_types():
    with pytest.raises(UnhandledDataTypeError) as exc_info:
        coerce_bind_value([1, 2])
    assert exc_info.value.type_name == 'list'


def test_placeholder_count(stmt):
    assert stmt.placeholder_count == 3
    assert stmt.bind_values == (None, None, None)


def test_bind_count_mismatch_binds_nothing(stmt):
    stmt.bind([1, 'a', 2.0])
    for bad in ([1, 2], [1, 2, 3, 4], []):
        with pytest.raises(BindCountError) as exc_info:
            stmt.bind(bad)
        assert exc_info.value.given == len(bad)
        assert exc_info.value.expected == 3
        assert stmt.bind_values == (1, 'a', 2.0)


def test_bad_type_binds_nothing(stmt):
    with pytest.raises(UnhandledDataTypeError):
        stmt.bind([1, object(), 3])
    assert stmt.bind_values == (None, None, None)


def test_positional_setters(stmt):
    stmt.set_int(0, '7')
    stmt.set_timestamp(1, '2024-05-06 07:08:09')
    stmt.set_null(2)
    assert stmt.bind_values == (7, datetime.datetime(2024, 5, 6, 7, 8, 9), None)
    stmt.set_boolean(2, 1)
    stmt.set_float(0, 2)
    stmt.set_string(1, 5)
    assert stmt.bind_values == (2.0, '5', True)
    with pytest.raises(IndexError):
        stmt.set_int(3, 1)
    with pytest.raises(UnhandledDataTypeError):
        stmt.set_timestamp(0, 12)


def test_execute_update_binds_then_runs(stmt, manager):
    assert stmt.execute_update([1, 'b', None]) == 1
    manager._execute_update.assert_called_once_with(stmt.sql, (1, 'b', None))


def test_execute_reuses_bound_values(stmt, manager):
    stmt.bind([1, 2, 3])
    stmt.execute_update()
    stmt.execute_update()
    assert manager._execute_update.call_count == 2
    manager._execute_update.assert_called_with(stmt.sql, (1, 2, 3))


def test_closed_statement(stmt, manager):
    stmt.close()
    stmt.close()
    assert stmt.is_closed
    manager._forget.assert_called_once_with(stmt)
    with pytest.raises(ResourceClosedError):
        stmt.bind([1, 2, 3])


def test_sql_message_marks_nulls(stmt):
    stmt.bind([1, None, 'x'])
    message = stmt.sql_message()
    assert stmt.sql in message
    assert '1: **NULL' in message
    assert format_bind_values([None]) == '0: **NULL'
