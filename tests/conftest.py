import pytest
import sqlbridge as db
from sqlbridge import events
from sqlbridge.drivers import PostgresDriver, SQLiteDriver
from sqlbridge.options import iterdict_data_loader


@pytest.fixture(autouse=True)
def clear_observers():
    """Clear the observer registry before and after each test to ensure test isolation."""
    events.clear()
    yield
    events.clear()


@pytest.fixture
def sqlite_driver():
    """Connected SQLite driver on an in-memory database"""
    driver = SQLiteDriver()
    driver.connect({'database': ':memory:'})
    driver.query("""
    CREATE TABLE test_table (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        value INTEGER NOT NULL
    )
    """)
    driver.query("""
    INSERT INTO test_table (name, value) VALUES
    ('Alice', 10),
    ('Bob', 20),
    ('Charlie', 30)
    """)
    yield driver
    driver.disconnect()


@pytest.fixture
def sqlite_conn():
    """Create an in-memory SQLite connection for testing"""
    conn = db.connect({
        'drivername': 'sqlite',
        'database': ':memory:',
        'data_loader': iterdict_data_loader,
    })

    conn.query("""
    CREATE TABLE test_table (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        value INTEGER NOT NULL
    )
    """)
    conn.query("""
    INSERT INTO test_table (name, value) VALUES
    ('Alice', 10),
    ('Bob', 20),
    ('Charlie', 30)
    """)

    yield conn
    conn.close()


@pytest.fixture
def postgres_driver():
    """Disconnected PostgreSQL driver, enough for literal rendering"""
    return PostgresDriver()


@pytest.fixture
def offline_sqlite_driver():
    """Disconnected SQLite driver, enough for literal rendering"""
    return SQLiteDriver()
