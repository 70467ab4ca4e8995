from dataclasses import dataclass

import pytest
from sqldata.interpret import MultiRowInterpreter, row_to_dict, row_to_object
from sqldata.interpret import row_to_string, row_to_tuple
from sqldata.row import RowReference


@dataclass
class Person:
    id: int
    name: str


@pytest.fixture
def row():
    return RowReference((1, 'Alice', None), ['ID', 'Name', 'Note'])


def test_stock_interpreters(row):
    assert row_to_dict(row) == {'ID': 1, 'Name': 'Alice', 'Note': None}
    assert row_to_tuple(row) == (1, 'Alice', None)
    assert row_to_string(',', 'NULL')(row) == '1,Alice,NULL'


def test_row_to_object(row):
    interpret = row_to_object(Person, columns=['ID', 'Name'])
    assert interpret(row) == Person(1, 'Alice')


def test_row_to_object_keeps_case_when_asked():
    row = RowReference((2, 'Bob'), ['id', 'name'])
    assert row_to_object(Person, lowercase=False)(row) == Person(2, 'Bob')


def test_group_key_native_by_default(row):
    interpreter = MultiRowInterpreter(lambda r: r['ID'], row_to_tuple, list)
    assert interpreter.group_key(row) == 1
    assert interpreter.group_key(row) != '1'


def test_group_key_as_text(row):
    interpreter = MultiRowInterpreter(lambda r: r['ID'], row_to_tuple, list, key_as_text=True)
    assert interpreter.group_key(row) == '1'
