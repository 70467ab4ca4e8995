import datetime

import pytest
import sqldata as db
from sqldata.exceptions import ExecutionError, FieldCountError, FieldTypeError
from sqldata.exceptions import NoTableDefinitionsError, UnexpectedKeyCountError
from sqldata.table import NO_RECORD_STAMP, RecordStamp
from sqldata.types import SqlType


@pytest.fixture
def foo_conn(sl_conn):
    sl_conn.execute_update('CREATE TABLE FOO (_FOO_key INTEGER PRIMARY KEY, label VARCHAR(10))')
    sl_conn.execute_update("INSERT INTO FOO VALUES (100, 'last')")
    return sl_conn


class TestKeyCache:

    def test_keys_continue_from_max(self, foo_conn):
        table = foo_conn.get_table('FOO')
        table.synchronize_key()
        assert table.is_synchronized
        assert [table.get_next_key() for _ in range(3)] == [101, 102, 103]

        again = foo_conn.get_table('FOO')
        assert again is table
        assert again.get_next_key() == 104

    def test_failed_sync_is_retried(self, foo_conn, monkeypatch):
        table = foo_conn.get_table('FOO')
        with monkeypatch.context() as m:
            m.setattr(foo_conn.strategy, 'max_key_sql',
                      lambda table, column: 'SELECT MAX(no_such_column) FROM FOO')
            with pytest.raises(ExecutionError):
                table.get_next_key()
        assert not table.is_synchronized
        assert table.get_next_key() == 101
        assert table.get_next_key() == 102

    def test_synchronize_reloads_max(self, foo_conn):
        table = foo_conn.get_table('FOO')
        assert table.get_next_key() == 101
        foo_conn.execute_update("INSERT INTO FOO VALUES (500, 'jump')")
        table.synchronize_key()
        assert table.get_next_key() == 501

    def test_empty_table_starts_at_one(self, sl_conn):
        sl_conn.execute_update('CREATE TABLE empty_t (id INTEGER PRIMARY KEY)')
        assert sl_conn.get_table('empty_t').get_next_key() == 1

    def test_negative_max_starts_at_one(self, sl_conn):
        sl_conn.execute_update('CREATE TABLE neg_t (id INTEGER PRIMARY KEY)')
        sl_conn.execute_update('INSERT INTO neg_t VALUES (-5)')
        assert sl_conn.get_table('neg_t').get_next_key() == 1

    def test_reset_key(self, foo_conn):
        table = foo_conn.get_table('FOO')
        table.get_next_key()
        table.reset_key()
        assert not table.is_synchronized
        assert table.get_next_key() == 1

    def test_composite_key_is_not_incremental(self, orders_conn):
        table = orders_conn.get_table('test_orders')
        assert not table.has_incremental_key()
        assert table.incremental_key_name is None
        assert [c.name for c in table.get_primary_key_definitions()] == ['order_id', 'line_no']
        table.synchronize_key()
        with pytest.raises(UnexpectedKeyCountError) as exc_info:
            table.get_next_key()
        assert exc_info.value.table == 'test_orders'

    def test_text_key_is_not_incremental(self, sl_conn):
        sl_conn.execute_update('CREATE TABLE codes (code VARCHAR(5) PRIMARY KEY)')
        with pytest.raises(UnexpectedKeyCountError):
            sl_conn.get_table('codes').get_next_key()


class TestMetadata:

    def test_column_definitions(self, types_conn):
        table = types_conn.get_table('test_types')
        columns = table.get_column_definitions()
        assert [c.name for c in columns] == ['_Types_key', 'code', 'label', 'note',
                                             'amount', 'flag', 'created']
        assert [c.sql_type for c in columns] == [
            SqlType.INTEGER, SqlType.CHAR, SqlType.VARCHAR, SqlType.TEXT,
            SqlType.FLOAT, SqlType.BIT, SqlType.TIMESTAMP,
            ]
        assert columns[1].size == 3
        assert not columns[1].nullable
        assert columns[2].nullable
        assert all(c.table == 'test_types' for c in columns)
        assert table.incremental_key_name == '_Types_key'

    def test_definitions_are_copies(self, types_conn):
        table = types_conn.get_table('test_types')
        first = table.get_column_definitions()
        first[0].extra['changed'] = True
        first.clear()
        second = table.get_column_definitions()
        assert len(second) == 7
        assert 'changed' not in second[0].extra

    def test_has_column(self, types_conn):
        table = types_conn.get_table('test_types')
        assert table.has_column('label')
        assert table.has_column('LABEL')
        assert not table.has_column('missing')

    def test_missing_table(self, sl_conn):
        with pytest.raises(NoTableDefinitionsError) as exc_info:
            sl_conn.get_table('no_such_table').get_column_definitions()
        assert exc_info.value.table == 'no_such_table'

    def test_refresh_metadata(self, sl_conn):
        table = sl_conn.get_table('test_table')
        assert not table.has_column('extra')
        sl_conn.execute_update('ALTER TABLE test_table ADD COLUMN extra TEXT')
        table.refresh_metadata()
        assert table.has_column('extra')

    def test_record_stamp_detection(self, sl_conn):
        sl_conn.execute_update('CREATE TABLE stamped (id INTEGER PRIMARY KEY, x TEXT, '
                               '_CreatedBy_key INTEGER, _ModifiedBy_key INTEGER, '
                               'creation_date TIMESTAMP, modification_date TIMESTAMP)')
        assert sl_conn.get_table('stamped').record_stamp == RecordStamp('_CreatedBy_key', 4)
        assert sl_conn.get_table('test_table').record_stamp is NO_RECORD_STAMP


class TestValidateFields:

    ROW = [1, 'abc', 'label', 'a note', 1.5, True, datetime.datetime(2024, 1, 1)]

    def test_matching_row(self, types_conn):
        types_conn.get_table('test_types').validate_fields(list(self.ROW))

    def test_short_row(self, types_conn):
        with pytest.raises(FieldCountError) as exc_info:
            types_conn.get_table('test_types').validate_fields(self.ROW[:-1])
        assert exc_info.value.table == 'test_types'
        assert exc_info.value.found == 6
        assert exc_info.value.expected == 7

    def test_bad_value(self, types_conn):
        row = list(self.ROW)
        row[1] = 'abcd'
        with pytest.raises(FieldTypeError) as exc_info:
            types_conn.get_table('test_types').validate_fields(row)
        assert exc_info.value.column == 'code'

    def test_auto_stamp_counts_missing_fields(self, types_conn):
        table = types_conn.get_table('test_types')
        table.record_stamp = RecordStamp('created', 1)
        table.validate_fields(self.ROW[:-1], auto_stamp=True)
        with pytest.raises(FieldCountError):
            table.validate_fields(list(self.ROW), auto_stamp=True)


def test_registry_reattaches_closed_manager(tmp_path):
    path = str(tmp_path / 'pool.db')
    first = db.connect(drivername='sqlite', database=path)
    first.execute_update('CREATE TABLE t (id INTEGER PRIMARY KEY)')
    first.execute_update('INSERT INTO t VALUES (9)')
    table = first.get_table('t')
    assert table.get_next_key() == 10
    first.close()

    second = db.connect(drivername='sqlite', database=path)
    second.registry = first.registry
    try:
        again = second.get_table('t')
        assert again is table
        assert again.manager is second
        assert again.get_next_key() == 11
    finally:
        second.close()


def test_get_tables_are_pooled(sl_conn):
    assert sl_conn.get_tables()[0] is sl_conn.get_table('test_table')
    assert (sl_conn.identity, 'test_table') in sl_conn.registry
