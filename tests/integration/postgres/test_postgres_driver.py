import datetime
import decimal

import pytest
from sqlbridge.adapters.column_info import ForeignKeyInfo, TableInfo
from sqlbridge.drivers import PostgresDriver
from sqlbridge.exceptions import DriverError
from sqlbridge.sql import SqlType

pytestmark = pytest.mark.postgres


def test_password_is_stripped(pg_conn):
    """Test the password does not outlive the connect call"""
    assert pg_conn.get_config('password') is None
    assert pg_conn.options.password is not None


def test_query_and_seek(pg_conn):
    """Test client-side results know their size and can seek"""
    with pg_conn.query('SELECT id, name FROM test_authors ORDER BY id') as result:
        assert result.row_count == 3
        assert result.fetch()['name'] == 'Alice'
        assert result.seek(2)
        assert result.fetch()['name'] == 'Charlie'
        assert result.fetch() is None
        assert not result.seek(3)
        assert [col.native_type for col in result.columns] == ['int4', 'varchar']


def test_affected_rows_and_insert_id(pg_conn):
    """Test affected rows and sequence values"""
    assert pg_conn.query("UPDATE test_authors SET name = name || '!'") == 3
    pg_conn.query("INSERT INTO test_authors (name) VALUES ('Dave')")
    assert pg_conn.get_insert_id() == 4
    assert pg_conn.get_insert_id('test_authors_id_seq') == 4


def test_insert_id_failure_keeps_transaction(pg_conn):
    """Test a failed insert id lookup does not abort the open transaction"""
    with pg_conn.transaction():
        assert pg_conn.get_insert_id('no_such_seq') is False
        pg_conn.query("INSERT INTO test_authors (name) VALUES ('Dave')")
    assert pg_conn.fetch_single('SELECT COUNT(*) FROM test_authors') == 4


def test_values_roundtrip(pg_conn):
    """Test binary, date and numeric literals"""
    cover = b'\x00\xffcover'
    pg_conn.query(
        'INSERT INTO test_books (author_id, title, cover, published, price) VALUES '
        f"(1, {pg_conn.to_sql('Book')}, {pg_conn.to_sql(cover)}, "
        f"{pg_conn.to_sql(datetime.date(2024, 5, 6))}, {pg_conn.to_sql(decimal.Decimal('9.99'))})")

    row = pg_conn.fetch('SELECT title, cover, published, price FROM test_books')
    assert row == {
        'title': 'Book',
        'cover': cover,
        'published': datetime.date(2024, 5, 6),
        'price': decimal.Decimal('9.99'),
        }


def test_result_outlives_connection(pg_conn):
    """Test columns and free still work once the driver has disconnected"""
    driver = PostgresDriver()
    driver.connect(pg_conn.options.to_config())
    result = driver.query("SELECT 1::int4 AS one, 'x'::text AS label")
    driver.disconnect()

    assert [col.native_type for col in result.get_result_columns()] == ['int4', 'text']
    result.free()
    result.free()
    assert result.freed


def test_error_code(pg_conn):
    """Test SQLSTATE codes are carried as integers when numeric"""
    with pytest.raises(DriverError) as exc:
        pg_conn.query("INSERT INTO test_authors (name) VALUES ('Alice')")
    assert exc.value.code == 23505
    assert 'SQL: INSERT' in str(exc.value)


def test_transactions_and_savepoints(pg_conn):
    """Test commit, rollback and savepoints"""
    with pg_conn.transaction():
        pg_conn.query("INSERT INTO test_authors (name) VALUES ('Dave')")
        with pytest.raises(DriverError):
            with pg_conn.transaction('sp'):
                pg_conn.query("INSERT INTO test_authors (name) VALUES ('Alice')")
    names = [row['name'] for row in pg_conn.fetch_all('SELECT name FROM test_authors ORDER BY id')]
    assert names == ['Alice', 'Bob', 'Charlie', 'Dave']

    with pytest.raises(DriverError):
        pg_conn.commit()


def test_escape_like(pg_conn):
    """Test LIKE wildcards match literally"""
    pg_conn.query("INSERT INTO test_authors (name) VALUES ('50%')")
    sql = f"SELECT name FROM test_authors WHERE name LIKE {pg_conn.escape_like('%', 'before')}"
    assert pg_conn.fetch_all(sql) == [{'name': '50%'}]


def test_apply_limit(pg_conn):
    """Test limit and offset injection"""
    sql = pg_conn.apply_limit('SELECT name FROM test_authors ORDER BY id', None, 2)
    assert pg_conn.fetch_all(sql) == [{'name': 'Charlie'}]


def test_reflector(pg_conn):
    """Test schema introspection"""
    reflector = pg_conn.get_reflector()
    tables = reflector.get_tables()
    assert TableInfo(name='test_authors') in tables

    columns = {col.name: col for col in reflector.get_columns('test_books')}
    assert columns['id'].autoincrement is True
    assert columns['title'].native_type == 'text'
    assert columns['cover'].native_type == 'bytea'
    assert columns['author_id'].nullable is True
    assert reflector.get_columns('test_authors')[0].autoincrement is True
    assert reflector.get_columns('test_authors')[1].size == 50

    indexes = {index.name: index for index in reflector.get_indexes('test_books')}
    assert indexes['test_books_pkey'].primary is True
    assert indexes['idx_test_books_title'].columns == ('title',)

    assert reflector.get_foreign_keys('test_books') == [
        ForeignKeyInfo(name='test_books_author_id_fkey', local=('author_id',),
                       table='test_authors', foreign=('id',),
                       on_delete='CASCADE', on_update='NO ACTION'),
    ]


def test_unescape_hex_text(pg_conn):
    """Test hex text in a bytea result column is decoded"""
    with pg_conn.query("SELECT '\\x6869'::text AS \"data\"") as result:
        driver_result = result.get_result_driver()
        assert driver_result.unescape(result.fetch()['data'], SqlType.BINARY) == b'hi'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
