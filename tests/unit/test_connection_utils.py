import sqlite3

import pytest
from sqldata.connection import check_connection, read_password_file
from sqldata.exceptions import PasswordFileError


def make_flaky(failures, message):
    calls = []

    def func():
        calls.append(1)
        if len(calls) <= failures:
            raise sqlite3.OperationalError(message)
        return 'ok'
    return func, calls


def test_retries_transient_errors():
    func, calls = make_flaky(2, 'connection reset by peer')
    delays = []
    wrapped = check_connection(func, max_retries=3, retry_delay=1, retry_backoff=2,
                               sleep_func=delays.append)
    assert wrapped() == 'ok'
    assert len(calls) == 3
    assert delays == [1, 2]


def test_gives_up_after_max_retries():
    func, calls = make_flaky(5, 'server closed the connection')
    wrapped = check_connection(func, max_retries=2, sleep_func=lambda _: None)
    with pytest.raises(sqlite3.OperationalError):
        wrapped()
    assert len(calls) == 2


def test_fatal_errors_are_not_retried():
    func, calls = make_flaky(5, 'password authentication failed for user "x"')
    wrapped = check_connection(func, max_retries=3, sleep_func=lambda _: None)
    with pytest.raises(sqlite3.OperationalError):
        wrapped()
    assert len(calls) == 1


def test_decorator_syntax():

    @check_connection
    def plain():
        return 1

    @check_connection(max_retries=1)
    def configured():
        return 2

    assert plain() == 1
    assert configured() == 2


def test_read_password_file(tmp_path):
    path = tmp_path / 'pw'
    path.write_text('s3cret\nignored\n')
    assert read_password_file(str(path)) == 's3cret'


def test_password_file_errors(tmp_path):
    with pytest.raises(PasswordFileError):
        read_password_file(str(tmp_path / 'missing'))
    empty = tmp_path / 'empty'
    empty.write_text('')
    with pytest.raises(PasswordFileError) as exc_info:
        read_password_file(str(empty))
    assert exc_info.value.path == str(empty)
