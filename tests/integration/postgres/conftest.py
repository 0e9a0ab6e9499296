"""
Fixtures for PostgreSQL integration tests.

Connection settings come from the standard libpq environment variables and
default to a local ``postgres`` server. Tests are skipped when no server is
reachable.
"""
import os

import pytest
import sqlbridge as db
from sqlbridge.exceptions import ConnectionFailure
from sqlbridge.options import iterdict_data_loader


def postgres_config():
    return {
        'drivername': 'postgresql',
        'hostname': os.getenv('PGHOST', 'localhost'),
        'username': os.getenv('PGUSER', 'postgres'),
        'password': os.getenv('PGPASSWORD', 'postgres'),
        'database': os.getenv('PGDATABASE', 'test_db'),
        'port': int(os.getenv('PGPORT', '5432')),
        'timeout': 5,
        'data_loader': iterdict_data_loader,
    }


@pytest.fixture
def pg_conn():
    """PostgreSQL connection with a fresh test table"""
    try:
        conn = db.connect(postgres_config())
    except ConnectionFailure as e:
        pytest.skip(f'PostgreSQL not available: {e}')

    conn.query('DROP TABLE IF EXISTS test_books')
    conn.query('DROP TABLE IF EXISTS test_authors')
    conn.query("""
    CREATE TABLE test_authors (
        id SERIAL PRIMARY KEY,
        name VARCHAR(50) NOT NULL UNIQUE
    )
    """)
    conn.query("""
    CREATE TABLE test_books (
        id INTEGER GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        author_id INTEGER REFERENCES test_authors (id) ON DELETE CASCADE,
        title TEXT,
        cover BYTEA,
        published DATE,
        price NUMERIC(8, 2)
    )
    """)
    conn.query('CREATE INDEX idx_test_books_title ON test_books (title)')
    conn.query("INSERT INTO test_authors (name) VALUES ('Alice'), ('Bob'), ('Charlie')")

    yield conn

    if conn.in_transaction:
        conn.rollback()
    conn.query('DROP TABLE IF EXISTS test_books')
    conn.query('DROP TABLE IF EXISTS test_authors')
    conn.close()
