"""
Decoded result sets.

A :class:`Result` wraps the driver cursor of one query and hands rows back
as application values: binary columns delivered as text are unescaped by the
driver, then every non-NULL value is offered to the connection's type
converter.
"""
import logging
from collections.abc import Callable, Iterator
from typing import Any, Self

from sqlbridge.adapters.column_info import ColumnInfo
from sqlbridge.adapters.type_conversion import TypeConverter
from sqlbridge.drivers.base import ResultDriver
from sqlbridge.exceptions import NotSupported
from sqlbridge.options import pandas_numpy_data_loader
from sqlbridge.sql import SqlType

logger = logging.getLogger(__name__)

__all__ = ['Result', 'BINARY_NATIVE_TYPES']

BINARY_NATIVE_TYPES = frozenset({'blob', 'bytea', 'binary', 'varbinary', 'longblob'})


class Result:
    """Rows of one executed query, decoded on read.

    Examples
        with cn.query('SELECT id, name FROM users') as result:
            for row in result:
                print(row['name'])
    """

    def __init__(self, driver_result: ResultDriver, converter: TypeConverter,
                 data_loader: Callable[..., Any] | None = None) -> None:
        self._driver_result = driver_result
        self._converter = converter
        self._data_loader = data_loader

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.free()

    def __iter__(self) -> Iterator[dict[str, Any]]:
        row = self.fetch()
        while row is not None:
            yield row
            row = self.fetch()

    def __len__(self) -> int:
        count = self._driver_result.get_row_count()
        if count is None:
            raise NotSupported('Row count is not available for this result.')
        return count

    @property
    def columns(self) -> list[ColumnInfo]:
        return self._driver_result.get_result_columns()

    @property
    def row_count(self) -> int | None:
        return self._driver_result.get_row_count()

    @property
    def freed(self) -> bool:
        return self._driver_result.freed

    def get_result_driver(self) -> ResultDriver:
        """Return the underlying driver cursor."""
        return self._driver_result

    def seek(self, row: int) -> bool:
        return self._driver_result.seek(row)

    def _decode(self, value: Any, column: ColumnInfo) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and column.native_type in BINARY_NATIVE_TYPES:
            value = self._driver_result.unescape(value, SqlType.BINARY)
        if self._converter.can_convert_from(value, column):
            return self._converter.convert_from(value, column)
        return value

    def fetch(self, associative: bool = True) -> dict[str, Any] | tuple | None:
        """Fetch the next row, decoded, or None past the last row."""
        raw = self._driver_result.fetch(False)
        if raw is None:
            return None
        columns = self.columns
        values = [self._decode(value, column) for value, column in zip(raw, columns)]
        if associative:
            return dict(zip(ColumnInfo.get_names(columns), values))
        return tuple(values)

    def fetch_all(self, associative: bool = True) -> list[dict[str, Any] | tuple]:
        """Fetch every remaining row."""
        rows = []
        row = self.fetch(associative)
        while row is not None:
            rows.append(row)
            row = self.fetch(associative)
        return rows

    def fetch_single(self) -> Any:
        """Return the first value of the next row, or None when exhausted."""
        row = self.fetch(False)
        return row[0] if row else None

    def fetch_frame(self, loader: Callable[..., Any] | None = None) -> Any:
        """Load the remaining rows through a data loader (a DataFrame by default).
        """
        loader = loader or self._data_loader or pandas_numpy_data_loader
        return loader(self.fetch_all(), self.columns)

    def free(self) -> None:
        self._driver_result.free()
