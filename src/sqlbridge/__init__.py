"""
Database abstraction layer with support for PostgreSQL and SQLite.

One connection owns one driver (the backend binding) and one type converter
(the bridge between application types and SQL values):

    cn = sqlbridge.connect(drivername='sqlite', database=':memory:')
    with cn.query('SELECT 1 AS one') as result:
        result.fetch_single()
"""
__version__ = '0.1.0'

from sqlbridge import events
from sqlbridge.adapters import ColumnInfo, Constructor, ConversionContext
from sqlbridge.adapters import DisabledTypeConverter, ForeignKeyInfo, Function
from sqlbridge.adapters import IndexInfo, Method, TableInfo, TableTypeConverter
from sqlbridge.adapters import TypeConverter, get_type_converter
from sqlbridge.connection import Connection, connect
from sqlbridge.drivers import Driver, Reflector, ResultDriver, create_driver
from sqlbridge.drivers import get_available_drivers, register_driver
from sqlbridge.exceptions import ConnectionFailure, DatabaseError, DriverError
from sqlbridge.exceptions import InvalidArgument, InvalidState, NotSupported
from sqlbridge.options import DatabaseOptions
from sqlbridge.result import Result
from sqlbridge.sql import LikeSide, SqlType
from sqlbridge.transaction import Transaction as transaction
