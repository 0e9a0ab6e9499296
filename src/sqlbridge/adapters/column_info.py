"""
Column information abstraction across database backends.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Self

logger = logging.getLogger(__name__)

__all__ = [
    'ColumnInfo',
    'TableInfo',
    'IndexInfo',
    'ForeignKeyInfo',
]


@dataclass(frozen=True)
class ColumnInfo:
    """Immutable description of one result-set or table column.

    Technical implementation details:
    - ``native_type`` is the backend's own type tag (lower-cased by the
      bundled drivers) and is the lookup key of the from-SQL conversion table
    - ``full_name`` defaults to ``table.name`` when a table is known
    - ``vendor`` holds backend extras; it is exposed as a read-only mapping

    Instances are produced by result drivers and reflectors only.
    """

    name: str
    native_type: str | None = None
    table: str | None = None
    full_name: str | None = None
    size: int | None = None
    nullable: bool = True
    default: Any = None
    autoincrement: bool = False
    vendor: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError('Column name is required')
        if self.full_name is None and self.table:
            object.__setattr__(self, 'full_name', f'{self.table}.{self.name}')
        object.__setattr__(self, 'vendor', MappingProxyType(dict(self.vendor or {})))

    def __repr__(self) -> str:
        return (f'ColumnInfo(name={self.name!r}, native_type={self.native_type!r}, '
                f'table={self.table!r})')

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization.
        """
        return {
            'name': self.name,
            'native_type': self.native_type,
            'table': self.table,
            'full_name': self.full_name,
            'size': self.size,
            'nullable': self.nullable,
            'default': self.default,
            'autoincrement': self.autoincrement,
            'vendor': dict(self.vendor),
            }

    @staticmethod
    def get_names(columns: list[Self]) -> list[str]:
        """Get column names from a list of ColumnInfo objects.
        """
        return [col.name for col in columns]

    @staticmethod
    def get_column_types_dict(columns: list[Self]) -> dict[str, dict[str, Any]]:
        """Get a dictionary of column metadata indexed by name.
        """
        return {col.name: col.to_dict() for col in columns}


@dataclass(frozen=True)
class TableInfo:
    """A table or view reported by a reflector."""

    name: str
    is_view: bool = False


@dataclass(frozen=True)
class IndexInfo:
    """An index reported by a reflector."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False
    primary: bool = False


@dataclass(frozen=True)
class ForeignKeyInfo:
    """A foreign key reported by a reflector.

    ``local`` and ``foreign`` are positionally paired column names.
    """

    name: str | None
    local: tuple[str, ...]
    table: str
    foreign: tuple[str, ...]
    on_delete: str | None = None
    on_update: str | None = None
