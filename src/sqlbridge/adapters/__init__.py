"""
Adapters package.

This package provides the following components:

- column_info: Column, table, index and foreign key metadata records
- type_conversion: Pluggable bidirectional value conversion

Type conversion principles:
1. Database -> Python: drivers decode natively, then the connection's
   converter reconstructs application types by native column type
2. Python -> Database: the converter turns registered application types into
   SQL-ready values before the driver escapes them

The metadata records do NOT perform conversions.
"""
from sqlbridge.adapters.column_info import ColumnInfo, ForeignKeyInfo
from sqlbridge.adapters.column_info import IndexInfo, TableInfo
from sqlbridge.adapters.type_conversion import Constructor, ConversionContext
from sqlbridge.adapters.type_conversion import DisabledTypeConverter, Function
from sqlbridge.adapters.type_conversion import Method, Rule, TableTypeConverter
from sqlbridge.adapters.type_conversion import TypeConverter, get_type_converter

__all__ = [
    'ColumnInfo',
    'TableInfo',
    'IndexInfo',
    'ForeignKeyInfo',
    'ConversionContext',
    'Rule',
    'Constructor',
    'Function',
    'Method',
    'TypeConverter',
    'TableTypeConverter',
    'DisabledTypeConverter',
    'get_type_converter',
]
