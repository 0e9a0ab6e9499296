"""
Database connection handling.

This module provides the primary interfaces for talking to a database:
1. The `connect()` function for creating connected connections
2. The `Connection` class that owns one driver and one type converter

The driver does the backend work (executing SQL, escaping, transactions);
the connection converts application values on the way in and decodes result
values on the way out, and tracks query statistics.
"""
import datetime
import decimal
import logging
import time
from collections.abc import Iterable
from typing import Any, Self

import numpy as np
from sqlbridge import events
from sqlbridge.adapters.type_conversion import ConversionContext, TypeConverter
from sqlbridge.adapters.type_conversion import get_type_converter
from sqlbridge.drivers import Driver, Reflector, create_driver
from sqlbridge.exceptions import InvalidArgument
from sqlbridge.options import DatabaseOptions
from sqlbridge.result import Result
from sqlbridge.sql import LikeSide, SqlType
from sqlbridge.transaction import Transaction

logger = logging.getLogger(__name__)

__all__ = ['Connection', 'connect']


class Connection:
    """One database connection: a driver plus a type converter.

    The converter is injected on construction, so its conversion tables are
    loaded from the ``type_converter`` configuration entry and frozen before
    the first query runs.

    Examples
        with connect(drivername='sqlite') as cn:
            cn.query('CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)')
            cn.query(f"INSERT INTO t (name) VALUES ({cn.to_sql('x')})")
            rows = cn.query('SELECT * FROM t').fetch_all()
    """

    def __init__(self, options: DatabaseOptions | dict[str, Any] | None = None,
                 driver: Driver | None = None,
                 converter: TypeConverter | None = None) -> None:
        if options is None:
            options = DatabaseOptions()
        elif not isinstance(options, DatabaseOptions):
            options = DatabaseOptions.from_config(options)
        self.options = options
        self._config = options.to_config()
        self.driver = driver or create_driver(options.drivername)
        self.converter = converter or get_type_converter(options.converter)
        self.converter.inject_connection(self)
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        state = 'connected' if self.connected else 'disconnected'
        return f'<Connection {self.options.drivername} {state}>'

    def get_config(self, key: str, default: Any = None) -> Any:
        """Return a connection configuration entry."""
        return self._config.get(key, default)

    @property
    def connected(self) -> bool:
        return self.driver.connected

    def connect(self) -> Self:
        """Open the backend connection.

        Raises
            ConnectionFailure: If the backend cannot be reached
            InvalidState: If already connected
        """
        self.driver.connect(self._config)
        events.notify(events.Event.CONNECTED, self)
        return self

    def disconnect(self) -> None:
        """Close the backend connection. Safe to call when disconnected."""
        if not self.connected:
            return
        self.driver.disconnect()
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1,self.calls):.3f}s per query)')

    close = disconnect

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics"""
        self.time += elapsed
        self.calls += 1

    def query(self, sql: str) -> Result | int:
        """Execute one SQL statement.

        Returns a :class:`Result` for statements producing rows, otherwise
        the number of affected rows (0 when the backend cannot tell).
        """
        start = time.time()
        try:
            driver_result = self.driver.query(sql)
        finally:
            self.addcall(time.time() - start)

        if driver_result is None:
            affected = self.driver.get_affected_rows()
            return affected if affected is not False else 0
        return Result(driver_result, self.converter, self.options.data_loader)

    def fetch(self, sql: str) -> dict[str, Any] | None:
        """Return the first row of a query."""
        with self.query(sql) as result:
            return result.fetch()

    def fetch_all(self, sql: str) -> list[dict[str, Any]]:
        """Return every row of a query."""
        with self.query(sql) as result:
            return result.fetch_all()

    def fetch_single(self, sql: str) -> Any:
        """Return the first value of the first row of a query."""
        with self.query(sql) as result:
            return result.fetch_single()

    def to_sql(self, value: Any, modifier: SqlType | str | None = None) -> str:
        """Render an application value as a SQL literal.

        The type converter runs first and may substitute the value and
        rewrite ``modifier``. Without a modifier the literal type follows
        the Python type of the value. Iterables render as a comma-separated
        list.

        Raises
            InvalidArgument: For values that have no SQL rendering
        """
        context = ConversionContext(modifier)
        if self.converter.can_convert_to(value, context):
            value = self.converter.convert_to(value, context)
        modifier = context.modifier

        if value is None:
            return 'NULL'
        if isinstance(value, np.generic):
            value = value.item()
        if modifier is not None:
            return self._render(value, SqlType.coerce(modifier))
        return self._render(value, self._infer_type(value))

    def _infer_type(self, value: Any) -> SqlType | None:
        if isinstance(value, bool):
            return SqlType.BOOL
        if isinstance(value, int):
            return SqlType.INTEGER
        if isinstance(value, float | decimal.Decimal):
            return SqlType.FLOAT
        if isinstance(value, str):
            return SqlType.TEXT
        if isinstance(value, bytes | bytearray | memoryview):
            return SqlType.BINARY
        if isinstance(value, datetime.datetime):
            return SqlType.DATETIME
        if isinstance(value, datetime.date):
            return SqlType.DATE
        return None

    def _render(self, value: Any, sql_type: SqlType | None) -> str:
        if value is None:
            return 'NULL'
        try:
            if sql_type is SqlType.INTEGER:
                return str(int(value))
            if sql_type is SqlType.FLOAT:
                return str(value) if isinstance(value, decimal.Decimal) else repr(float(value))
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidArgument(f'Cannot render {value!r} as {sql_type.name.lower()}: {e}') from e
        if sql_type is not None:
            return self.driver.escape(value, sql_type)
        if isinstance(value, Iterable):
            return ', '.join(self.to_sql(item) for item in value)
        raise InvalidArgument(f'Cannot render {type(value).__name__} as SQL')

    def escape_like(self, value: Any, side: LikeSide | str = LikeSide.BOTH) -> str:
        return self.driver.escape_like(value, side)

    def apply_limit(self, sql: str, limit: int | None = None, offset: int | None = None) -> str:
        return self.driver.apply_limit(sql, limit, offset)

    def get_affected_rows(self) -> int | bool:
        return self.driver.get_affected_rows()

    def get_insert_id(self, sequence: str | None = None) -> int | bool:
        return self.driver.get_insert_id(sequence)

    def begin(self, savepoint: str | None = None) -> None:
        self.driver.begin(savepoint)

    def commit(self, savepoint: str | None = None) -> None:
        self.driver.commit(savepoint)

    def rollback(self, savepoint: str | None = None) -> None:
        self.driver.rollback(savepoint)

    @property
    def in_transaction(self) -> bool:
        return self.driver.in_transaction

    def transaction(self, savepoint: str | None = None) -> Transaction:
        """Return a context manager committing on success and rolling back on error."""
        return Transaction(self, savepoint)

    def get_reflector(self) -> Reflector:
        return self.driver.get_reflector()


def connect(options: DatabaseOptions | dict[str, Any] | None = None, **kw: Any) -> Connection:
    """Create and open a connection.

    Options may be given as a :class:`DatabaseOptions`, a dict, keyword
    arguments, or a dict updated by keyword arguments.

    Examples
        cn = connect(drivername='postgresql', hostname='localhost',
                     username='app', database='app', port=5432)
    """
    if isinstance(options, DatabaseOptions):
        if kw:
            raise InvalidArgument('Cannot combine DatabaseOptions with keyword options')
    else:
        options = DatabaseOptions.from_config({**(options or {}), **kw})
    return Connection(options).connect()
