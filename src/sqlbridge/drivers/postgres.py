"""
PostgreSQL driver implementation.

This module implements the Driver interface for PostgreSQL through psycopg 3.
It handles PostgreSQL-specific behavior such as:
- Autocommit connections with explicit ``BEGIN``/``SAVEPOINT`` statements
- Client-side cursors (row count known up front, absolute scrolling)
- Native type names resolved from the connection's type registry
- ``bytea`` hex literals and ``currval``/``lastval`` insert ids
- Metadata retrieval using ``information_schema`` and ``pg_catalog``
"""
import logging
from typing import Any

import psycopg
import sqlalchemy as sa
from psycopg.pq import TransactionStatus

from sqlbridge.adapters.column_info import ColumnInfo, ForeignKeyInfo
from sqlbridge.adapters.column_info import IndexInfo, TableInfo
from sqlbridge.drivers.base import Driver, Reflector, ResultDriver, dumpsql
from sqlbridge.drivers.base import register_driver
from sqlbridge.exceptions import ConnectionFailure, DriverError, InvalidArgument
from sqlbridge.exceptions import InvalidState
from sqlbridge.sql import SqlType, normalize_limit, quote_identifier
from sqlbridge.utils.connection_utils import get_raw_connection
from sqlbridge.utils.connection_utils import open_connection
from sqlbridge.utils.connection_utils import release_connection

logger = logging.getLogger(__name__)

_FK_ACTIONS = {
    'a': 'NO ACTION',
    'r': 'RESTRICT',
    'c': 'CASCADE',
    'n': 'SET NULL',
    'd': 'SET DEFAULT',
}


def _driver_error(err: psycopg.Error, sql: str) -> DriverError:
    sqlstate = err.sqlstate or ''
    code = int(sqlstate) if sqlstate.isdigit() else 0
    return DriverError(str(err).strip(), code, sql)


class PostgresResult(ResultDriver):
    """Result set backed by a client-side psycopg cursor.
    """

    def __init__(self, cursor: psycopg.Cursor, driver: 'PostgresDriver', sql: str) -> None:
        super().__init__(cursor)
        self._driver = driver
        self._sql = sql
        self._columns = self._describe()

    def _describe(self) -> list[ColumnInfo]:
        return [
            ColumnInfo(
                name=col.name,
                native_type=self._driver.get_type_name(col.type_code),
                size=col.internal_size if col.internal_size and col.internal_size > 0 else None,
                vendor={
                    'type_code': col.type_code,
                    'display_size': col.display_size,
                    'precision': col.precision,
                    'scale': col.scale,
                    },
                )
            for col in self._resource.description or ()
            ]

    def _free(self) -> None:
        try:
            self._resource.close()
        except psycopg.Error as e:
            raise _driver_error(e, self._sql) from e

    def get_row_count(self) -> int | None:
        self._require_open()
        rowcount = self._resource.rowcount
        return rowcount if rowcount >= 0 else None

    def seek(self, row: int) -> bool:
        self._require_open()
        rowcount = self._resource.rowcount
        if not 0 <= row < rowcount:
            return False
        self._resource.scroll(row, mode='absolute')
        return True

    def fetch(self, associative: bool = True) -> dict[str, Any] | tuple | None:
        self._require_open()
        try:
            row = self._resource.fetchone()
        except psycopg.Error as e:
            raise _driver_error(e, self._sql) from e
        if row is None:
            return None
        if associative:
            return dict(zip(ColumnInfo.get_names(self.get_result_columns()), row))
        return tuple(row)

    def get_result_columns(self) -> list[ColumnInfo]:
        self._require_open()
        return self._columns

    def unescape(self, value: Any, type: SqlType | str) -> Any:
        if SqlType.coerce(type) is not SqlType.BINARY:
            raise InvalidArgument(f'Unsupported type for unescaping: {type!r}')
        if value is None or isinstance(value, bytes):
            return value
        if isinstance(value, str):
            if value.startswith('\\x'):
                return bytes.fromhex(value[2:])
            return value.encode()
        return bytes(value)


class PostgresReflector(Reflector):
    """Schema introspection through ``information_schema`` and ``pg_catalog``.
    """

    def _text(self, value: str) -> str:
        return self._driver.escape(value, SqlType.TEXT)

    def _regclass(self, table: str) -> str:
        return f"{self._text(quote_identifier(table, 'postgresql'))}::regclass"

    def get_tables(self) -> list[TableInfo]:
        rows = self._fetch_all("""
SELECT table_name, table_type FROM information_schema.tables
WHERE table_schema = current_schema()
ORDER BY table_name
""")
        return [TableInfo(name=row['table_name'], is_view=row['table_type'] == 'VIEW')
                for row in rows]

    def get_columns(self, table: str) -> list[ColumnInfo]:
        rows = self._fetch_all(f"""
SELECT column_name, udt_name, character_maximum_length, numeric_precision,
       is_nullable, column_default, is_identity
FROM information_schema.columns
WHERE table_schema = current_schema() AND table_name = {self._text(table)}
ORDER BY ordinal_position
""")
        return [
            ColumnInfo(
                name=row['column_name'],
                native_type=row['udt_name'],
                table=table,
                size=row['character_maximum_length'] or row['numeric_precision'],
                nullable=row['is_nullable'] == 'YES',
                default=row['column_default'],
                autoincrement=(row['is_identity'] == 'YES'
                               or str(row['column_default'] or '').startswith('nextval(')),
                vendor=row,
                )
            for row in rows
            ]

    def get_indexes(self, table: str) -> list[IndexInfo]:
        rows = self._fetch_all(f"""
SELECT i.relname AS index_name, ix.indisunique AS is_unique,
       ix.indisprimary AS is_primary, a.attname AS column_name
FROM pg_catalog.pg_index ix
JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
JOIN pg_catalog.pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = ANY(ix.indkey)
WHERE ix.indrelid = {self._regclass(table)}
ORDER BY i.relname, array_position(ix.indkey::int2[], a.attnum)
""")
        indexes: dict[str, dict[str, Any]] = {}
        for row in rows:
            index = indexes.setdefault(row['index_name'], {
                'columns': [],
                'unique': row['is_unique'],
                'primary': row['is_primary'],
                })
            index['columns'].append(row['column_name'])

        return [
            IndexInfo(name=name, columns=tuple(index['columns']),
                      unique=index['unique'], primary=index['primary'])
            for name, index in indexes.items()
            ]

    def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        rows = self._fetch_all(f"""
SELECT con.conname AS constraint_name, fc.relname AS foreign_table,
       con.confdeltype AS on_delete, con.confupdtype AS on_update,
       la.attname AS local_column, fa.attname AS foreign_column
FROM pg_catalog.pg_constraint con
JOIN pg_catalog.pg_class fc ON fc.oid = con.confrelid
CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(local_num, foreign_num, pos)
JOIN pg_catalog.pg_attribute la ON la.attrelid = con.conrelid AND la.attnum = k.local_num
JOIN pg_catalog.pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.foreign_num
WHERE con.contype = 'f' AND con.conrelid = {self._regclass(table)}
ORDER BY con.conname, k.pos
""")
        keys: dict[str, dict[str, Any]] = {}
        for row in rows:
            key = keys.setdefault(row['constraint_name'], {
                'table': row['foreign_table'],
                'local': [],
                'foreign': [],
                'on_delete': _FK_ACTIONS.get(row['on_delete']),
                'on_update': _FK_ACTIONS.get(row['on_update']),
                })
            key['local'].append(row['local_column'])
            key['foreign'].append(row['foreign_column'])

        return [
            ForeignKeyInfo(name=name, local=tuple(key['local']), table=key['table'],
                           foreign=tuple(key['foreign']), on_delete=key['on_delete'],
                           on_update=key['on_update'])
            for name, key in keys.items()
            ]


@register_driver('postgresql')
class PostgresDriver(Driver):
    """PostgreSQL connection driver.
    """

    def __init__(self) -> None:
        super().__init__()
        self._engine = None
        self._sa_connection = None
        self._affected_rows: int | bool = False
        self._type_names: dict[int, str | None] = {}

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'database', 'port']

    def build_connection_url(self, config: dict[str, Any]) -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL with psycopg."""
        query = {}
        if config.get('timeout'):
            query['connect_timeout'] = str(config['timeout'])
        if config.get('appname'):
            query['application_name'] = config['appname']

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=config.get('username'),
            password=config.get('password'),
            host=config.get('hostname'),
            port=config.get('port') or None,
            database=config.get('database'),
            query=query,
        )

    def connect(self, config: dict[str, Any]) -> None:
        if self.connected:
            raise InvalidState('Driver is already connected.')

        engine, sa_connection = open_connection(self.build_connection_url(config))
        # the secret is not needed once connected
        config.pop('password', None)

        raw_conn = get_raw_connection(sa_connection)
        try:
            self.configure_connection(raw_conn)
        except psycopg.Error as e:
            release_connection(engine, sa_connection)
            raise ConnectionFailure(f'Cannot configure PostgreSQL connection: {e}') from e

        self._engine = engine
        self._sa_connection = sa_connection
        self._resource = raw_conn
        logger.debug(f"Connected to PostgreSQL database {config.get('database')}")

    def configure_connection(self, connection: psycopg.Connection) -> None:
        """Switch to autocommit (transactions are explicit)."""
        if connection.info.transaction_status != TransactionStatus.IDLE:
            connection.rollback()
        connection.autocommit = True

    def disconnect(self) -> None:
        engine, sa_connection = self._engine, self._sa_connection
        self._engine = self._sa_connection = self._resource = None
        self._reflector = None
        self._type_names.clear()
        release_connection(engine, sa_connection)

    @dumpsql
    def query(self, sql: str) -> PostgresResult | None:
        self._require_connection(sql)
        cursor = self._resource.cursor()
        try:
            cursor.execute(sql)
        except psycopg.Error as e:
            cursor.close()
            raise _driver_error(e, sql) from e

        self._affected_rows = cursor.rowcount if cursor.rowcount >= 0 else False

        if cursor.description is None:
            cursor.close()
            return None
        return PostgresResult(cursor, self, sql)

    def get_type_name(self, oid: int) -> str | None:
        """Resolve a type OID to its name, asking the catalog for unknown types."""
        if oid in self._type_names:
            return self._type_names[oid]

        info = self._resource.adapters.types.get(oid)
        name = info.name if info is not None else None
        if name is None:
            sql = 'SELECT typname FROM pg_catalog.pg_type WHERE oid = %s'
            try:
                with self._resource.cursor() as cursor:
                    cursor.execute(sql, (oid,))
                    row = cursor.fetchone()
            except psycopg.Error as e:
                raise _driver_error(e, sql) from e
            name = row[0] if row else None

        self._type_names[oid] = name
        return name

    def get_affected_rows(self) -> int | bool:
        self._require_connection()
        return self._affected_rows

    def get_insert_id(self, sequence: str | None = None) -> int | bool:
        self._require_connection()
        if sequence:
            sql = f'SELECT currval({self.escape(sequence, SqlType.TEXT)})'
        else:
            sql = 'SELECT lastval()'

        # a failing statement would abort an open transaction
        guard = self.in_transaction
        with self._resource.cursor() as cursor:
            if guard:
                cursor.execute('SAVEPOINT sqlbridge_insert_id')
            try:
                cursor.execute(sql)
                row = cursor.fetchone()
            except psycopg.Error as e:
                if guard:
                    cursor.execute('ROLLBACK TO SAVEPOINT sqlbridge_insert_id')
                logger.debug(f'Insert id unavailable: {e}')
                return False
            if guard:
                cursor.execute('RELEASE SAVEPOINT sqlbridge_insert_id')
        return int(row[0]) if row and row[0] is not None else False

    @property
    def in_transaction(self) -> bool:
        if not self.connected:
            return False
        return self._resource.info.transaction_status != TransactionStatus.IDLE

    def _create_reflector(self) -> PostgresReflector:
        return PostgresReflector(self)

    def _escape_binary(self, value: Any) -> str:
        if isinstance(value, str):
            value = value.encode()
        return f"'\\x{bytes(value).hex()}'::bytea"

    def _escape_bool(self, value: Any) -> str:
        return 'TRUE' if value else 'FALSE'

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        limit, offset = normalize_limit(limit), normalize_limit(offset)
        if limit is not None:
            sql = f'{sql} LIMIT {limit}'
        if offset is not None:
            sql = f'{sql} OFFSET {offset}'
        return sql
