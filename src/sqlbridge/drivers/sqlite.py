"""
SQLite driver implementation.

This module implements the Driver interface for SQLite through the standard
library ``sqlite3`` module. It handles SQLite's particular features such as:
- Autocommit connections with explicit ``BEGIN``/``SAVEPOINT`` statements
- Buffered result sets (row count and seeking are always available)
- Column native types taken from a ``"name [type]"`` alias or, failing that,
  from the storage class of the first row
- Metadata retrieval using ``sqlite_master`` and ``pragma_*`` functions
"""
import datetime
import logging
import re
import sqlite3
from typing import Any

import sqlalchemy as sa

from sqlbridge.adapters.column_info import ColumnInfo, ForeignKeyInfo
from sqlbridge.adapters.column_info import IndexInfo, TableInfo
from sqlbridge.drivers.base import Driver, Reflector, ResultDriver, dumpsql
from sqlbridge.drivers.base import register_driver
from sqlbridge.exceptions import ConnectionFailure, DriverError, InvalidArgument
from sqlbridge.exceptions import InvalidState
from sqlbridge.sql import LikeSide, SqlType, normalize_limit
from sqlbridge.types import convert_date, convert_datetime
from sqlbridge.utils.connection_utils import get_raw_connection
from sqlbridge.utils.connection_utils import open_connection
from sqlbridge.utils.connection_utils import release_connection

logger = logging.getLogger(__name__)

_TYPED_COLUMN = re.compile(r'^(?P<name>.*?)\s*\[(?P<type>[^\]]+)\]\s*$')
_SIZED_TYPE = re.compile(r'^(?P<type>[^(]*?)\s*\((?P<size>\d+)')


def _driver_error(err: Exception, sql: str) -> DriverError:
    return DriverError(str(err), getattr(err, 'sqlite_errorcode', 0), sql)


def _storage_class(value: Any) -> str:
    """Native type tag for a value SQLite handed back."""
    if value is None:
        return 'null'
    if isinstance(value, bool | int):
        return 'integer'
    if isinstance(value, float):
        return 'real'
    if isinstance(value, bytes | bytearray | memoryview):
        return 'blob'
    if isinstance(value, datetime.datetime):
        return 'datetime'
    if isinstance(value, datetime.date):
        return 'date'
    return 'text'


def _split_declared_type(declared: str | None) -> tuple[str | None, int | None]:
    """Split ``VARCHAR(50)`` into ``('varchar', 50)``."""
    if not declared:
        return None, None
    match = _SIZED_TYPE.match(declared)
    if match:
        return match.group('type').lower(), int(match.group('size'))
    return declared.strip().lower(), None


class SQLiteResult(ResultDriver):
    """Buffered SQLite result set.
    """

    def __init__(self, cursor: sqlite3.Cursor, rows: list[tuple]) -> None:
        super().__init__(cursor)
        self._description = cursor.description
        self._rows = rows
        self._position = 0
        self._columns: list[ColumnInfo] | None = None

    def _free(self) -> None:
        self._rows = []

    def get_row_count(self) -> int:
        self._require_open()
        return len(self._rows)

    def seek(self, row: int) -> bool:
        self._require_open()
        if not 0 <= row < len(self._rows):
            return False
        self._position = row
        return True

    def fetch(self, associative: bool = True) -> dict[str, Any] | tuple | None:
        self._require_open()
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        if associative:
            return dict(zip(ColumnInfo.get_names(self.get_result_columns()), row))
        return tuple(row)

    def get_result_columns(self) -> list[ColumnInfo]:
        self._require_open()
        if self._columns is None:
            first = self._rows[0] if self._rows else None
            columns = []
            for i, desc in enumerate(self._description or ()):
                name, native_type = desc[0], None
                match = _TYPED_COLUMN.match(name)
                if match:
                    name, native_type = match.group('name'), match.group('type').strip().lower()
                storage = _storage_class(first[i]) if first is not None else None
                columns.append(ColumnInfo(
                    name=name,
                    native_type=native_type or storage,
                    vendor={'storage_class': storage},
                    ))
            self._columns = columns
        return self._columns

    def unescape(self, value: Any, type: SqlType | str) -> Any:
        if SqlType.coerce(type) is not SqlType.BINARY:
            raise InvalidArgument(f'Unsupported type for unescaping: {type!r}')
        if value is None or isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode()
        return bytes(value)


class SQLiteReflector(Reflector):
    """Schema introspection through ``sqlite_master`` and pragma functions.
    """

    def _text(self, value: str) -> str:
        return self._driver.escape(value, SqlType.TEXT)

    def get_tables(self) -> list[TableInfo]:
        rows = self._fetch_all("""
SELECT name, type FROM sqlite_master
WHERE type IN ('table', 'view') AND substr(name, 1, 7) <> 'sqlite_'
ORDER BY name
""")
        return [TableInfo(name=row['name'], is_view=row['type'] == 'view') for row in rows]

    def get_columns(self, table: str) -> list[ColumnInfo]:
        rows = self._fetch_all(f'SELECT * FROM pragma_table_info({self._text(table)}) ORDER BY cid')
        columns = []
        for row in rows:
            native_type, size = _split_declared_type(row['type'])
            columns.append(ColumnInfo(
                name=row['name'],
                native_type=native_type,
                table=table,
                size=size,
                nullable=not row['notnull'],
                default=row['dflt_value'],
                autoincrement=bool(row['pk']) and native_type == 'integer',
                vendor=row,
                ))
        return columns

    def get_indexes(self, table: str) -> list[IndexInfo]:
        indexes = []
        for row in self._fetch_all(f'SELECT * FROM pragma_index_list({self._text(table)}) ORDER BY seq'):
            info = self._fetch_all(f"SELECT name FROM pragma_index_info({self._text(row['name'])}) ORDER BY seqno")
            indexes.append(IndexInfo(
                name=row['name'],
                columns=tuple(col['name'] for col in info),
                unique=bool(row['unique']),
                primary=row['origin'] == 'pk',
                ))

        if not any(index.primary for index in indexes):
            # INTEGER PRIMARY KEY aliases the rowid and has no index of its own
            pk_rows = self._fetch_all(
                f'SELECT name, pk FROM pragma_table_info({self._text(table)}) WHERE pk > 0 ORDER BY pk')
            if pk_rows:
                indexes.insert(0, IndexInfo(
                    name='PRIMARY',
                    columns=tuple(row['name'] for row in pk_rows),
                    unique=True,
                    primary=True,
                    ))
        return indexes

    def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        rows = self._fetch_all(
            f'SELECT * FROM pragma_foreign_key_list({self._text(table)}) ORDER BY id, seq')
        grouped: dict[int, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row['id'], []).append(row)

        return [
            ForeignKeyInfo(
                name=None,
                local=tuple(row['from'] for row in parts),
                table=parts[0]['table'],
                foreign=tuple(row['to'] for row in parts),
                on_delete=parts[0]['on_delete'],
                on_update=parts[0]['on_update'],
                )
            for parts in grouped.values()
            ]


@register_driver('sqlite')
class SQLiteDriver(Driver):
    """SQLite connection driver.
    """

    def __init__(self) -> None:
        super().__init__()
        self._engine = None
        self._sa_connection = None
        self._affected_rows: int | bool = False

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections (none, in-memory by default)."""
        return []

    def build_connection_url(self, config: dict[str, Any]) -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=config.get('database') or ':memory:')

    def get_engine_kwargs(self, config: dict[str, Any]) -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        connect_args = {'detect_types': sqlite3.PARSE_DECLTYPES}
        if config.get('timeout'):
            connect_args['timeout'] = config['timeout']
        return {'connect_args': connect_args}

    def connect(self, config: dict[str, Any]) -> None:
        if self.connected:
            raise InvalidState('Driver is already connected.')

        config['database'] = config.get('database') or ':memory:'
        engine, sa_connection = open_connection(
            self.build_connection_url(config), **self.get_engine_kwargs(config))

        raw_conn = get_raw_connection(sa_connection)
        try:
            self.register_type_adapters(raw_conn)
            self.configure_connection(raw_conn)
        except sqlite3.Error as e:
            release_connection(engine, sa_connection)
            raise ConnectionFailure(f'Cannot configure SQLite connection: {e}') from e

        self._engine = engine
        self._sa_connection = sa_connection
        self._resource = raw_conn
        logger.debug(f"Connected to SQLite database {config['database']}")

    def register_type_adapters(self, connection: sqlite3.Connection) -> None:
        """Register converters turning declared date columns into Python dates."""
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

    def configure_connection(self, connection: sqlite3.Connection) -> None:
        """Enable foreign keys and autocommit (transactions are explicit)."""
        connection.isolation_level = None
        connection.execute('PRAGMA foreign_keys = ON')

    def disconnect(self) -> None:
        engine, sa_connection = self._engine, self._sa_connection
        self._engine = self._sa_connection = self._resource = None
        self._reflector = None
        release_connection(engine, sa_connection)

    @dumpsql
    def query(self, sql: str) -> SQLiteResult | None:
        self._require_connection(sql)
        cursor = self._resource.cursor()
        try:
            cursor.execute(sql)
            rows = cursor.fetchall() if cursor.description is not None else None
        except (sqlite3.Error, ValueError) as e:
            cursor.close()
            raise _driver_error(e, sql) from e

        self._affected_rows = cursor.rowcount if cursor.rowcount >= 0 else False

        # rows are buffered, the cursor is not needed past this point
        result = SQLiteResult(cursor, rows) if rows is not None else None
        cursor.close()
        return result

    def get_affected_rows(self) -> int | bool:
        self._require_connection()
        return self._affected_rows

    def get_insert_id(self, sequence: str | None = None) -> int | bool:
        self._require_connection()
        row = self._resource.execute('SELECT last_insert_rowid()').fetchone()
        return row[0] or False

    @property
    def in_transaction(self) -> bool:
        return self.connected and self._resource.in_transaction

    def _create_reflector(self) -> SQLiteReflector:
        return SQLiteReflector(self)

    def _escape_binary(self, value: Any) -> str:
        if isinstance(value, str):
            value = value.encode()
        return f"X'{bytes(value).hex()}'"

    def _escape_bool(self, value: Any) -> str:
        return '1' if value else '0'

    def escape_like(self, value: Any, side: LikeSide | str) -> str:
        return super().escape_like(value, side) + " ESCAPE '\\'"

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        limit, offset = normalize_limit(limit), normalize_limit(offset)
        if limit is None and offset is None:
            return sql
        # SQLite only accepts OFFSET after a LIMIT clause
        sql = f'{sql} LIMIT {limit if limit is not None else -1}'
        if offset is not None:
            sql = f'{sql} OFFSET {offset}'
        return sql
