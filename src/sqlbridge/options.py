import sys
from collections.abc import Callable
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import pandas as pd
import pyarrow as pa
from sqlbridge.adapters.column_info import ColumnInfo
from sqlbridge.adapters.type_conversion import get_available_converters
from sqlbridge.drivers import get_available_drivers, get_driver_class
from sqlbridge.drivers import is_supported_driver

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]


def _scriptname() -> str | None:
    """Name of the running script, without extension."""
    argv0 = sys.argv[0] if sys.argv else ''
    return Path(argv0).stem or None


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame with column metadata."""
    df = pd.DataFrame(columns=ColumnInfo.get_names(columns))
    df.attrs['column_types'] = ColumnInfo.get_column_types_dict(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Includes type information in the DataFrame.attrs attribute.
    """
    if not data:
        return _empty_dataframe(columns)

    df = pd.DataFrame.from_records(list(data), columns=ColumnInfo.get_names(columns))
    df.attrs['column_types'] = ColumnInfo.get_column_types_dict(columns)
    return df


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    column_names = ColumnInfo.get_names(columns)
    columns_data = [[row[col] for row in data] for col in column_names]
    df = pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)
    df.attrs['column_types'] = ColumnInfo.get_column_types_dict(columns)
    return df


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `sqlite`, `postgresql`

    Type conversion options:
    - converter: converter variant, `table` (default) or `disabled`
    - type_converter: conversion rules, a mapping with optional `from`
      (native type -> rule) and `to` (class -> rule) tables
    """
    drivername: str = 'sqlite'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    converter: str = 'table'
    type_converter: dict[str, Any] | None = None
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        if not is_supported_driver(self.drivername):
            available = get_available_drivers()
            raise ValueError(f'drivername must be one of: {available}')
        if self.converter not in get_available_converters():
            available = get_available_converters()
            raise ValueError(f'converter must be one of: {available}')
        self.appname = self.appname or _scriptname() or 'python_console'
        driver_cls = get_driver_class(self.drivername)
        driver_cls.validate_options(self)
        if self.data_loader is None:
            self.data_loader = pandas_numpy_data_loader

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> Self:
        """Build options from a mapping, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config.items() if k in names})

    def to_config(self) -> dict[str, Any]:
        """Return a fresh connection configuration dict.

        Drivers may strip entries from it while connecting.
        """
        config = {f.name: getattr(self, f.name) for f in fields(self)}
        config['type_converter'] = dict(self.type_converter or {})
        return config
