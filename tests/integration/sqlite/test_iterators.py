import pytest
import sqldata as db
from sqldata.exceptions import InterpretError, PastEndOfResultsError
from sqldata.exceptions import ResourceClosedError, TypeConversionError
from sqldata.interpret import MultiRowInterpreter, ObjectQuery, row_to_dict
from sqldata.iterators import MultiRowIterator, RowDataIterator, _LookaheadIterator

ORDERS = 'SELECT order_id, line_no, item FROM test_orders ORDER BY order_id, line_no'


def lines_by_order(key_as_text=False):
    return MultiRowInterpreter(
        key_of=lambda row: row.get_int('order_id'),
        interpret=lambda row: row.get_string('item'),
        interpret_rows=lambda items: items,
        key_as_text=key_as_text,
        )


class TestRowDataIterator:

    def test_has_next_matches_row_count(self, sl_conn):
        it = RowDataIterator(sl_conn.execute_query('SELECT name FROM test_table'))
        seen = 0
        while it.has_next():
            it.next()
            seen += 1
        assert seen == 3
        assert not it.has_next()
        with pytest.raises(PastEndOfResultsError):
            it.next()
        it.close()

    def test_has_next_does_not_consume(self, sl_conn):
        it = RowDataIterator(sl_conn.execute_query('SELECT name FROM test_table ORDER BY id'),
                             lambda row: row.get_string(0))
        assert it.has_next()
        assert it.has_next()
        assert it.next() == 'Alice'
        it.close()

    def test_empty_result(self, sl_conn):
        with RowDataIterator(sl_conn.execute_query('SELECT * FROM test_table WHERE 1 = 0')) as it:
            assert not it.has_next()
            assert it.to_list() == []

    def test_plain_rows_are_detached(self, sl_conn):
        with RowDataIterator(sl_conn.execute_query('SELECT name FROM test_table ORDER BY id')) as it:
            rows = list(it)
        assert [row.get_string('name') for row in rows] == ['Alice', 'Bob', 'Charlie']
        assert all(row.is_detached for row in rows)

    def test_to_list_closes(self, sl_conn):
        it = RowDataIterator(sl_conn.execute_query('SELECT value FROM test_table ORDER BY id'),
                             lambda row: row.get_int('value'))
        assert it.to_list() == [10, 20, 30]
        assert it.navigator.is_closed
        with pytest.raises(ResourceClosedError):
            it.next()

    def test_interpret_error_breaks_iterator(self, sl_conn):

        def interpret(row):
            if row.get_string('name') == 'Bob':
                raise ValueError('no Bobs')
            return row.get_string('name')

        it = RowDataIterator(sl_conn.execute_query('SELECT name FROM test_table ORDER BY id'),
                             interpret)
        with pytest.raises(InterpretError) as exc_info:
            it.next()
        assert 'no Bobs' in str(exc_info.value)
        assert not it.has_next()
        with pytest.raises(ResourceClosedError):
            it.next()
        it.close()

    def test_failure_on_first_row(self, sl_conn):
        nav = sl_conn.execute_query('SELECT name FROM test_table')
        with pytest.raises(InterpretError):
            RowDataIterator(nav, lambda row: row['missing'])
        nav.close()

    def test_typed_accessor_failure_is_wrapped(self, sl_conn):
        nav = sl_conn.execute_query('SELECT name FROM test_table ORDER BY id')
        with pytest.raises(InterpretError) as exc_info:
            RowDataIterator(nav, lambda row: row.get_int('name'))
        assert isinstance(exc_info.value.__cause__, TypeConversionError)
        assert "'Alice'" in str(exc_info.value)
        nav.close()


class TestMultiRowIterator:

    def test_groups_consecutive_rows(self, orders_conn):
        it = MultiRowIterator(orders_conn.execute_query(ORDERS), lines_by_order())
        groups = it.to_list()
        assert groups == [['apple', 'pear'], ['plum'], ['fig', 'kiwi', 'lime']]
        assert [len(g) for g in groups] == [2, 1, 3]

    def test_has_next_matches_group_count(self, orders_conn):
        with MultiRowIterator(orders_conn.execute_query(ORDERS), lines_by_order(True)) as it:
            count = 0
            while it.has_next():
                it.next()
                count += 1
            assert count == 3
            with pytest.raises(PastEndOfResultsError):
                it.next()

    def test_each_row_interpreted_once(self, orders_conn):
        calls = []

        def interpret(row):
            calls.append(row.get_string('item'))
            return row.get_string('item')

        interpreter = MultiRowInterpreter(lambda row: row['order_id'], interpret, tuple)
        with MultiRowIterator(orders_conn.execute_query(ORDERS), interpreter) as it:
            list(it)
        assert calls == ['apple', 'pear', 'plum', 'fig', 'kiwi', 'lime']

    def test_unordered_keys_split_groups(self, orders_conn):
        sql = 'SELECT order_id, line_no, item FROM test_orders ORDER BY line_no, order_id'
        with MultiRowIterator(orders_conn.execute_query(sql), lines_by_order()) as it:
            sizes = [len(group) for group in it]
        assert sum(sizes) == 6
        assert len(sizes) > 3

    def test_fold_error_breaks_iterator(self, orders_conn):

        def fold(items):
            if len(items) == 1:
                raise KeyError('lonely')
            return items

        interpreter = MultiRowInterpreter(lambda row: row['order_id'], lambda row: row['item'], fold)
        it = MultiRowIterator(orders_conn.execute_query(ORDERS), interpreter)
        assert it.next() == ['apple', 'pear']
        with pytest.raises(InterpretError):
            it.next()
        with pytest.raises(ResourceClosedError):
            it.next()
        it.close()

    def test_typed_accessor_failure_is_wrapped(self, orders_conn):
        interpreter = MultiRowInterpreter(lambda row: row['order_id'],
                                          lambda row: row.get_int('item'), list)
        nav = orders_conn.execute_query(ORDERS)
        with pytest.raises(InterpretError) as exc_info:
            MultiRowIterator(nav, interpreter)
        assert isinstance(exc_info.value.__cause__, TypeConversionError)
        nav.close()

    def test_key_failure_is_wrapped(self, orders_conn):
        interpreter = MultiRowInterpreter(lambda row: row.get_float('item'),
                                          lambda row: row['item'], list)
        nav = orders_conn.execute_query(ORDERS)
        with pytest.raises(InterpretError) as exc_info:
            MultiRowIterator(nav, interpreter)
        assert isinstance(exc_info.value.__cause__, TypeConversionError)
        nav.close()


class TestObjectQuery:

    def test_row_interpreter(self, sl_conn):
        query = ObjectQuery('SELECT name, value FROM test_table WHERE value > ? ORDER BY id',
                            row_to_dict, params=[15])
        with query.execute(sl_conn) as it:
            assert isinstance(it, RowDataIterator)
            assert it.to_list() == [{'name': 'Bob', 'value': 20}, {'name': 'Charlie', 'value': 30}]

    def test_multi_row_interpreter(self, orders_conn):
        with ObjectQuery(ORDERS, lines_by_order()).execute(orders_conn) as it:
            assert isinstance(it, MultiRowIterator)
            assert len(it.to_list()) == 3

    def test_pre_and_post_sql(self, sl_conn):
        query = ObjectQuery(
            'SELECT id FROM scratch ORDER BY id',
            lambda row: row.get_int('id'),
            pre_sql=['CREATE TABLE scratch (id INTEGER)', 'INSERT INTO scratch VALUES (7)'],
            post_sql=["UPDATE test_table SET value = 0 WHERE name = 'Alice'"],
            )
        with query.execute(sl_conn) as it:
            assert it.to_list() == [7]
        with sl_conn.execute_query("SELECT value FROM test_table WHERE name = 'Alice'") as nav:
            nav.next()
            assert nav.get_row_reference().get_int(0) == 0

    def test_iterate_helper(self, sl_conn):
        with db.iterate(sl_conn, 'SELECT name FROM test_table ORDER BY id',
                        lambda row: row.get_string(0)) as it:
            assert it.to_list() == ['Alice', 'Bob', 'Charlie']


def test_lookahead_base_is_abstract(sl_conn):
    with sl_conn.execute_query('SELECT name FROM test_table') as nav:
        with pytest.raises(TypeError):
            _LookaheadIterator(nav)
