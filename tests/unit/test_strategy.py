from types import SimpleNamespace

import pytest
from sqldata.cache import Cache, cacheable_strategy
from sqldata.exceptions import ConfigError
from sqldata.options import DatabaseOptions
from sqldata.strategy import PostgresStrategy, SQLiteStrategy, SQLServerStrategy
from sqldata.strategy import get_available_drivers, get_strategy


def test_registry():
    assert set(get_available_drivers()) >= {'postgresql', 'sqlite', 'mssql'}
    assert isinstance(get_strategy('sqlite'), SQLiteStrategy)
    assert get_strategy('postgresql') is get_strategy('postgresql')
    with pytest.raises(ConfigError):
        get_strategy('oracle')


def test_postgres_url():
    options = DatabaseOptions(server='db1', port=5433, user='me', database='mgd', timeout=15)
    url = PostgresStrategy().build_connection_url(options, 'secret')
    assert url.drivername == 'postgresql+psycopg'
    assert (url.host, url.port, url.username, url.password, url.database) == \
        ('db1', 5433, 'me', 'secret', 'mgd')
    assert url.query['connect_timeout'] == '15'


def test_explicit_url_gets_password():
    options = DatabaseOptions(url='postgresql+psycopg://me@db1/mgd')
    url = PostgresStrategy().build_connection_url(options, 'secret')
    assert url.password == 'secret'
    assert url.host == 'db1'


def test_postgres_schema_search_path():
    options = DatabaseOptions(server='db1', user='me', database='mgd', schema='loads')
    kwargs = PostgresStrategy().get_engine_kwargs(options)
    assert kwargs == {'connect_args': {'options': '-csearch_path=loads'}}


def test_sqlserver_url():
    options = DatabaseOptions(drivername='mssql', server='sql1', user='sa', database='radar')
    url = SQLServerStrategy().build_connection_url(options, 'pw')
    assert url.drivername == 'mssql+pyodbc'
    assert url.database == 'radar'


@pytest.mark.parametrize(('drivername', 'has_params', 'expected'), [
    ('postgresql', True, "SELECT * FROM t WHERE a LIKE 'x%%' AND b = %s"),
    ('postgresql', False, "SELECT * FROM t WHERE a LIKE 'x%' AND b = %s"),
    ('sqlite', True, "SELECT * FROM t WHERE a LIKE 'x%' AND b = ?"),
])
def test_prepare_sql(drivername, has_params, expected):
    sql = "SELECT * FROM t WHERE a LIKE 'x%' AND b = ?"
    assert get_strategy(drivername).prepare_sql(sql, has_params) == expected


def test_max_key_sql():
    assert get_strategy('sqlite').max_key_sql('FOO', '_FOO_key') == 'SELECT MAX("_FOO_key") FROM "FOO"'
    assert get_strategy('mssql').max_key_sql('FOO', '_FOO_key') == 'SELECT MAX([_FOO_key]) FROM [FOO]'


class CountingStrategy:

    def __init__(self):
        self.calls = 0

    @cacheable_strategy('test_keys', ttl=60, maxsize=10)
    def get_primary_keys(self, cn, table, bypass_cache=False):
        self.calls += 1
        return [f'{table}_key']


def test_cacheable_strategy_keys_on_identity():
    strategy = CountingStrategy()
    cn_a = SimpleNamespace(identity='srv/a')
    cn_b = SimpleNamespace(identity='srv/b')

    assert strategy.get_primary_keys(cn_a, 'foo') == ['foo_key']
    strategy.get_primary_keys(cn_a, 'foo')
    assert strategy.calls == 1

    strategy.get_primary_keys(cn_b, 'foo')
    assert strategy.calls == 2

    strategy.get_primary_keys(cn_a, 'foo', bypass_cache=True)
    assert strategy.calls == 3

    Cache.get_instance().clear_for_table('foo')
    strategy.get_primary_keys(cn_a, 'foo')
    assert strategy.calls == 4


class RecordingManager:
    """Stands in for a ConnectionManager on catalog queries."""

    identity = 'sql1/radar'

    def __init__(self, rows):
        self.rows = rows
        self.executed = []

    def _new_cursor(self, action):
        return SimpleNamespace(fetchall=lambda: self.rows, close=lambda: None)

    def _run(self, cursor, sql, params, action):
        self.executed.append((sql, params))


def test_sqlserver_primary_keys_from_index():
    cn = RecordingManager([('_Marker_key',), ('_Refs_key',)])
    keys = SQLServerStrategy().get_primary_keys(cn, 'MRK_Marker', bypass_cache=True)
    assert keys == ['_Marker_key', '_Refs_key']
    [(sql, params)] = cn.executed
    assert 'sys.indexes' in sql
    assert 'is_primary_key = 1' in sql
    assert params == ('MRK_Marker',)
