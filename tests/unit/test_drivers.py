import datetime
from types import SimpleNamespace

import pytest
from sqlbridge.adapters import DisabledTypeConverter
from sqlbridge.drivers import PostgresDriver, SQLiteDriver, create_driver
from sqlbridge.drivers import get_available_drivers, get_driver_class
from sqlbridge.drivers import is_supported_driver
from sqlbridge.drivers.postgres import PostgresResult
from sqlbridge.drivers.sqlite import SQLiteResult
from sqlbridge.exceptions import DriverError, InvalidArgument, NotSupported
from sqlbridge.result import Result
from sqlbridge.sql import LikeSide, SqlType


def test_registry():
    """Test both bundled drivers are registered"""
    assert {'sqlite', 'postgresql'} <= set(get_available_drivers())
    assert is_supported_driver('sqlite')
    assert not is_supported_driver('oracle')
    assert get_driver_class('sqlite') is SQLiteDriver
    assert get_driver_class('postgresql') is PostgresDriver

    with pytest.raises(ValueError):
        get_driver_class('oracle')


def test_create_driver_returns_fresh_instances():
    """Test every created driver owns its own state"""
    first, second = create_driver('sqlite'), create_driver('sqlite')
    assert isinstance(first, SQLiteDriver)
    assert first is not second
    assert not first.connected


@pytest.mark.parametrize(('type_', 'value', 'expected'), [
    (SqlType.TEXT, "O'Brien", "'O''Brien'"),
    (SqlType.BINARY, b'\x00\xff', "X'00ff'"),
    (SqlType.BOOL, True, '1'),
    (SqlType.BOOL, False, '0'),
    (SqlType.IDENTIFIER, 'my table', '"my table"'),
    (SqlType.DATE, datetime.date(2024, 5, 6), "'2024-05-06'"),
    (SqlType.DATETIME, datetime.datetime(2024, 5, 6, 7, 8, 9), "'2024-05-06 07:08:09'"),
    ('s', 'x', "'x'"),
])
def test_sqlite_escape(offline_sqlite_driver, type_, value, expected):
    """Test SQLite literal rendering"""
    assert offline_sqlite_driver.escape(value, type_) == expected


@pytest.mark.parametrize(('type_', 'value', 'expected'), [
    (SqlType.TEXT, "O'Brien", "'O''Brien'"),
    (SqlType.BINARY, b'\x00\xff', "'\\x00ff'::bytea"),
    (SqlType.BOOL, True, 'TRUE'),
    (SqlType.BOOL, 0, 'FALSE'),
    (SqlType.IDENTIFIER, 'public.users', '"public"."users"'),
    (SqlType.DATE, '2024-05-06', "'2024-05-06'"),
])
def test_postgres_escape(postgres_driver, type_, value, expected):
    """Test PostgreSQL literal rendering"""
    assert postgres_driver.escape(value, type_) == expected


@pytest.mark.parametrize('type_', [SqlType.INTEGER, SqlType.FLOAT, 'zz'])
def test_escape_unsupported_type(offline_sqlite_driver, postgres_driver, type_):
    """Test numeric and unknown tags are refused"""
    with pytest.raises(InvalidArgument):
        offline_sqlite_driver.escape(1, type_)
    with pytest.raises(InvalidArgument):
        postgres_driver.escape(1, type_)


def test_escape_like(offline_sqlite_driver, postgres_driver):
    """Test LIKE operands escape wildcards and add the requested ones"""
    assert offline_sqlite_driver.escape_like('a%b', LikeSide.AFTER) == "'a\\%b%' ESCAPE '\\'"
    assert offline_sqlite_driver.escape_like('x', LikeSide.NONE) == "'x' ESCAPE '\\'"
    assert postgres_driver.escape_like('a_b', 'before') == "'%a\\_b'"
    assert postgres_driver.escape_like("it's", LikeSide.BOTH) == "'%it''s%'"


@pytest.mark.parametrize(('limit', 'offset', 'expected'), [
    (10, 20, 'SELECT * FROM t LIMIT 10 OFFSET 20'),
    (10, None, 'SELECT * FROM t LIMIT 10'),
    (None, 20, 'SELECT * FROM t LIMIT -1 OFFSET 20'),
    (None, None, 'SELECT * FROM t'),
    (-1, -1, 'SELECT * FROM t'),
])
def test_sqlite_apply_limit(offline_sqlite_driver, limit, offset, expected):
    """Test SQLite limit injection"""
    assert offline_sqlite_driver.apply_limit('SELECT * FROM t', limit, offset) == expected


@pytest.mark.parametrize(('limit', 'offset', 'expected'), [
    (10, 20, 'SELECT * FROM t LIMIT 10 OFFSET 20'),
    (10, None, 'SELECT * FROM t LIMIT 10'),
    (None, 20, 'SELECT * FROM t OFFSET 20'),
    (0, None, 'SELECT * FROM t LIMIT 0'),
    (None, None, 'SELECT * FROM t'),
])
def test_postgres_apply_limit(postgres_driver, limit, offset, expected):
    """Test PostgreSQL limit injection"""
    assert postgres_driver.apply_limit('SELECT * FROM t', limit, offset) == expected


@pytest.mark.parametrize('driver_cls', [SQLiteDriver, PostgresDriver])
def test_disconnected_operations_fail(driver_cls):
    """Test operations other than connect need a connection"""
    driver = driver_cls()

    with pytest.raises(DriverError) as exc:
        driver.query('SELECT 1')
    assert exc.value.sql == 'SELECT 1'

    with pytest.raises(DriverError):
        driver.get_affected_rows()
    with pytest.raises(DriverError):
        driver.get_insert_id()
    with pytest.raises(DriverError):
        driver.get_reflector()
    with pytest.raises(DriverError) as exc:
        driver.begin()
    assert exc.value.sql == 'BEGIN'
    with pytest.raises(DriverError):
        driver.commit('sp1')

    assert driver.in_transaction is False
    assert driver.get_resource() is None


@pytest.mark.parametrize('driver_cls', [SQLiteDriver, PostgresDriver])
def test_disconnect_is_idempotent(driver_cls):
    """Test disconnecting a disconnected driver is harmless"""
    driver = driver_cls()
    driver.disconnect()
    driver.disconnect()
    assert not driver.connected


def test_postgres_connection_url(postgres_driver):
    """Test the psycopg URL carries timeout and application name"""
    url = postgres_driver.build_connection_url({
        'hostname': 'db.local',
        'username': 'app',
        'password': 'secret',
        'database': 'appdb',
        'port': 5433,
        'timeout': 30,
        'appname': 'reports',
    })
    assert url.drivername == 'postgresql+psycopg'
    assert url.host == 'db.local'
    assert url.port == 5433
    assert url.database == 'appdb'
    assert url.query['connect_timeout'] == '30'
    assert url.query['application_name'] == 'reports'


def test_sqlite_connection_url(offline_sqlite_driver):
    """Test SQLite defaults to an in-memory database"""
    assert offline_sqlite_driver.build_connection_url({}).database == ':memory:'
    assert offline_sqlite_driver.build_connection_url({'database': 'a.db'}).database == 'a.db'


def test_postgres_unescape(postgres_driver):
    """Test bytea values are decoded from hex text"""
    result = PostgresResult(SimpleNamespace(description=None), postgres_driver, 'SELECT 1')
    assert result.unescape('\\x00ff', SqlType.BINARY) == b'\x00\xff'
    assert result.unescape(memoryview(b'ab'), 'bin') == b'ab'
    assert result.unescape(b'ab', SqlType.BINARY) == b'ab'
    assert result.unescape(None, SqlType.BINARY) is None

    with pytest.raises(InvalidArgument):
        result.unescape('x', SqlType.TEXT)


def test_sqlite_unescape():
    """Test SQLite binary values pass through as bytes"""
    result = SQLiteResult(SimpleNamespace(description=None), [])
    assert result.unescape('ab', SqlType.BINARY) == b'ab'
    assert result.unescape(bytearray(b'ab'), SqlType.BINARY) == b'ab'

    with pytest.raises(InvalidArgument):
        result.unescape(1, SqlType.DATE)


def test_result_len_needs_row_count(postgres_driver):
    """Test len() of a result is refused when the backend cannot count rows"""
    cursor = SimpleNamespace(description=None, rowcount=-1)
    result = Result(PostgresResult(cursor, postgres_driver, 'SELECT 1'), DisabledTypeConverter())
    assert result.row_count is None
    with pytest.raises(NotSupported):
        len(result)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
