"""
Base driver interfaces.

Defines the abstract contracts every backend binding implements:

- ``Driver``: one backend connection (lifecycle, queries, transactions,
  escaping, limit injection, reflector factory)
- ``ResultDriver``: the cursor of one executed query
- ``Reflector``: read-only schema introspection

Concrete drivers register themselves by name with :func:`register_driver`
so connections can be created from configuration alone.
"""
import logging
import time
from abc import ABC, abstractmethod
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

import sqlalchemy as sa

from sqlbridge.adapters.column_info import ColumnInfo, ForeignKeyInfo
from sqlbridge.adapters.column_info import IndexInfo, TableInfo
from sqlbridge.exceptions import DriverError, InvalidArgument, InvalidState
from sqlbridge.sql import LikeSide, SqlType, escape_like_pattern, format_date
from sqlbridge.sql import format_datetime, quote_identifier, quote_text
from sqlbridge.sql import wrap_like

if TYPE_CHECKING:
    from sqlbridge.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Registry of driver name -> driver class
# Defined here to avoid circular imports (concrete drivers import from base)
_DRIVER_REGISTRY: dict[str, type['Driver']] = {}


def register_driver(name: str):
    """Decorator to register a driver class under a name.

    Usage:
        @register_driver('postgresql')
        class PostgresDriver(Driver):
            ...
    """
    def decorator(cls: type['Driver']) -> type['Driver']:
        _DRIVER_REGISTRY[name] = cls
        return cls
    return decorator


def dumpsql(func):
    """Decorator for logging SQL statements and their execution time."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}')
            raise
        finally:
            logger.debug(f'Query time: {time.time() - start:.4f}s')
    return wrapper


class ResultDriver(ABC):
    """Cursor over the rows of one executed query.

    A result must be released with :meth:`free` (or by using it as a context
    manager) and cannot be used afterwards.
    """

    def __init__(self, resource: Any) -> None:
        self._resource = resource
        self._freed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.free()

    @property
    def freed(self) -> bool:
        return self._freed

    def _require_open(self) -> None:
        if self._freed:
            raise InvalidState('Result has already been freed.')

    def free(self) -> None:
        """Release the backend cursor. Safe to call more than once."""
        if self._freed:
            return
        try:
            self._free()
        finally:
            self._freed = True

    def get_result_resource(self) -> Any:
        """Return the raw backend cursor."""
        self._require_open()
        return self._resource

    @abstractmethod
    def _free(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def get_row_count(self) -> int | None:
        """Number of rows in the result, or None if the backend cannot tell.
        """

    @abstractmethod
    def seek(self, row: int) -> bool:
        """Move the cursor to a 0-based row without fetching it.

        Returns False when seeking is unsupported or the row is out of range.
        """

    @abstractmethod
    def fetch(self, associative: bool = True) -> dict[str, Any] | tuple | None:
        """Fetch the row at the cursor and advance.

        Returns a column-name keyed dict, or a tuple when ``associative`` is
        False, or None past the last row.
        """

    @abstractmethod
    def get_result_columns(self) -> list[ColumnInfo]:
        """Return metadata for all columns in the result."""

    @abstractmethod
    def unescape(self, value: Any, type: SqlType | str) -> Any:
        """Decode a value read from the result (binary data only).

        Raises InvalidArgument for unsupported type tags.
        """


class Reflector(ABC):
    """Read-only schema introspection for one connection.
    """

    def __init__(self, driver: 'Driver') -> None:
        self._driver = driver

    def _fetch_all(self, sql: str) -> list[dict[str, Any]]:
        """Run a catalog query through the driver and return its rows."""
        result = self._driver.query(sql)
        if result is None:
            return []
        rows = []
        with result:
            row = result.fetch(True)
            while row is not None:
                rows.append(row)
                row = result.fetch(True)
        return rows

    @abstractmethod
    def get_tables(self) -> list[TableInfo]:
        """Return tables and views."""

    @abstractmethod
    def get_columns(self, table: str) -> list[ColumnInfo]:
        """Return metadata for all columns in a table."""

    @abstractmethod
    def get_indexes(self, table: str) -> list[IndexInfo]:
        """Return metadata for all indexes in a table."""

    @abstractmethod
    def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        """Return metadata for all foreign keys in a table."""


class Driver(ABC):
    """Base class for backend connection drivers.

    A driver serves one backend connection and is not thread-safe. Every
    operation other than :meth:`connect` fails with DriverError while
    disconnected.
    """

    def __init__(self) -> None:
        self._resource: Any = None
        self._reflector: Reflector | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.disconnect()

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @property
    def connected(self) -> bool:
        return self._resource is not None

    def _require_connection(self, sql: str | None = None) -> None:
        if not self.connected:
            raise DriverError('Not connected to database.', sql=sql)

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this driver.
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this driver.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    @abstractmethod
    def build_connection_url(self, config: dict[str, Any]) -> sa.URL:
        """Build the SQLAlchemy connection URL from connection configuration.
        """

    def get_engine_kwargs(self, config: dict[str, Any]) -> dict[str, Any]:
        """Return additional SQLAlchemy create_engine kwargs."""
        return {}

    @abstractmethod
    def connect(self, config: dict[str, Any]) -> None:
        """Connect to the database.

        ``config`` is modified in place: entries the driver consumed may be
        normalized or removed.

        Raises
            ConnectionFailure: If the backend cannot be reached
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database. Safe to call when disconnected.
        """

    @abstractmethod
    def query(self, sql: str) -> ResultDriver | None:
        """Execute one SQL statement.

        Returns a result driver for statements producing a row set and None
        otherwise.

        Raises
            DriverError: carrying ``sql`` on any backend failure
        """

    @abstractmethod
    def get_affected_rows(self) -> int | bool:
        """Rows affected by the last statement, or False if unknown."""

    @abstractmethod
    def get_insert_id(self, sequence: str | None = None) -> int | bool:
        """Last generated identifier, or False if unavailable."""

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """Whether a transaction is open on the connection."""

    def begin(self, savepoint: str | None = None) -> None:
        """Begin a transaction, or set a savepoint inside one.
        """
        if savepoint:
            self.query(f'SAVEPOINT {self.escape(savepoint, SqlType.IDENTIFIER)}')
            return
        self._require_connection('BEGIN')
        if self.in_transaction:
            raise DriverError('A transaction is already in progress.', sql='BEGIN')
        self.query('BEGIN')

    def commit(self, savepoint: str | None = None) -> None:
        """Commit the transaction, or release a savepoint.
        """
        if savepoint:
            self.query(f'RELEASE SAVEPOINT {self.escape(savepoint, SqlType.IDENTIFIER)}')
            return
        self._require_connection('COMMIT')
        if not self.in_transaction:
            raise DriverError('There is no transaction in progress.', sql='COMMIT')
        self.query('COMMIT')

    def rollback(self, savepoint: str | None = None) -> None:
        """Roll back the transaction, or roll back to a savepoint and release it.

        A savepoint set outside a transaction opens one, so releasing it
        after the rollback leaves no transaction behind.
        """
        if savepoint:
            name = self.escape(savepoint, SqlType.IDENTIFIER)
            self.query(f'ROLLBACK TO SAVEPOINT {name}')
            self.query(f'RELEASE SAVEPOINT {name}')
            return
        self._require_connection('ROLLBACK')
        if not self.in_transaction:
            raise DriverError('There is no transaction in progress.', sql='ROLLBACK')
        self.query('ROLLBACK')

    def get_resource(self) -> Any:
        """Return the raw DBAPI connection (still owned by the driver)."""
        return self._resource

    def get_reflector(self) -> Reflector:
        """Return the reflector bound to this connection."""
        self._require_connection()
        if self._reflector is None:
            self._reflector = self._create_reflector()
        return self._reflector

    @abstractmethod
    def _create_reflector(self) -> Reflector:
        """Build the reflector for this driver."""

    def escape(self, value: Any, type: SqlType | str) -> str:
        """Encode a value as a SQL literal of the given type.

        Raises
            InvalidArgument: For unsupported type tags
        """
        sql_type = SqlType.coerce(type)
        if sql_type is SqlType.TEXT:
            return quote_text(value)
        if sql_type is SqlType.BINARY:
            return self._escape_binary(value)
        if sql_type is SqlType.IDENTIFIER:
            return quote_identifier(value, self.dialect_name)
        if sql_type is SqlType.BOOL:
            return self._escape_bool(value)
        if sql_type is SqlType.DATE:
            return format_date(value)
        if sql_type is SqlType.DATETIME:
            return format_datetime(value)
        raise InvalidArgument(f'Unsupported type for escaping: {sql_type.name}')

    @abstractmethod
    def _escape_binary(self, value: Any) -> str:
        """Render a binary literal."""

    @abstractmethod
    def _escape_bool(self, value: Any) -> str:
        """Render a boolean literal."""

    def escape_like(self, value: Any, side: LikeSide | str) -> str:
        """Encode a value as a LIKE pattern literal.

        ``%``, ``_`` and ``\\`` inside the value match literally; ``side``
        decides where wildcards are added.
        """
        return wrap_like(escape_like_pattern(value), side)

    @abstractmethod
    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        """Return ``sql`` with LIMIT/OFFSET injected.

        None or negative values mean unset; with both unset ``sql`` is
        returned unchanged.
        """
