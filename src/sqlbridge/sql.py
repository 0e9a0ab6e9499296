"""
SQL literal rendering helpers shared by the drivers.

Drivers decide the dialect-specific pieces (binary literals, booleans, LIKE
escape clauses); everything that is identical across engines lives here.
"""
import datetime
import logging
from enum import Enum
from typing import Any

import dateutil.parser

from sqlbridge.exceptions import InvalidArgument

__all__ = [
    'SqlType',
    'LikeSide',
    'quote_identifier',
    'quote_text',
    'escape_like_pattern',
    'wrap_like',
    'format_date',
    'format_datetime',
    'normalize_limit',
]

logger = logging.getLogger(__name__)


class SqlType(str, Enum):
    """Value type tags understood by ``Driver.escape``."""

    TEXT = 's'
    BINARY = 'bin'
    BOOL = 'b'
    INTEGER = 'i'
    FLOAT = 'f'
    DATE = 'd'
    DATETIME = 't'
    IDENTIFIER = 'n'

    @classmethod
    def coerce(cls, value: Any) -> 'SqlType':
        """Turn a tag (enum member, value or name) into a member.

        Raises InvalidArgument for unknown tags.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        if isinstance(value, str) and value.upper() in cls.__members__:
            return cls[value.upper()]
        raise InvalidArgument(f'Unknown SQL type tag: {value!r}')


class LikeSide(Enum):
    """Where wildcards go around a LIKE operand."""

    NONE = 'none'
    BEFORE = 'before'
    AFTER = 'after'
    BOTH = 'both'


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    Dotted names are quoted part by part and a bare ``*`` is left alone, so
    ``schema.table.*`` renders as ``"schema"."table".*``.

    Parameters
        identifier: Table or column name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        InvalidArgument: If dialect is unsupported
    """
    if dialect not in {'postgresql', 'sqlite'}:
        raise InvalidArgument(f'Unknown dialect: {dialect}')

    parts = []
    for part in str(identifier).split('.'):
        if part == '*':
            parts.append(part)
        else:
            parts.append('"' + part.replace('"', '""') + '"')
    return '.'.join(parts)


def quote_text(value: Any) -> str:
    """Render a string literal with standard SQL quote doubling."""
    return "'" + str(value).replace("'", "''") + "'"


def escape_like_pattern(value: Any, escape_char: str = '\\') -> str:
    """Escape LIKE wildcards (and the escape character itself) in a value."""
    text = str(value)
    text = text.replace(escape_char, escape_char * 2)
    return text.replace('%', escape_char + '%').replace('_', escape_char + '_')


def wrap_like(escaped: str, side: LikeSide | str) -> str:
    """Add ``%`` wildcards around an already escaped LIKE operand and quote it.
    """
    side = LikeSide(side)
    before = '%' if side in {LikeSide.BEFORE, LikeSide.BOTH} else ''
    after = '%' if side in {LikeSide.AFTER, LikeSide.BOTH} else ''
    return quote_text(f'{before}{escaped}{after}')


def _to_datetime(value: Any) -> datetime.datetime | datetime.date:
    """Coerce dates, timestamps and parseable strings."""
    if isinstance(value, datetime.datetime | datetime.date):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.datetime.fromtimestamp(value)
    if isinstance(value, str):
        try:
            return dateutil.parser.parse(value)
        except (ValueError, OverflowError) as e:
            raise InvalidArgument(f'Cannot interpret {value!r} as a date: {e}') from e
    raise InvalidArgument(f'Cannot interpret {type(value).__name__} as a date')


def format_date(value: Any) -> str:
    """Render a quoted ``YYYY-MM-DD`` literal."""
    value = _to_datetime(value)
    return quote_text(value.strftime('%Y-%m-%d'))


def format_datetime(value: Any) -> str:
    """Render a quoted ``YYYY-MM-DD HH:MM:SS[.ffffff]`` literal."""
    value = _to_datetime(value)
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time())
    fmt = '%Y-%m-%d %H:%M:%S.%f' if value.microsecond else '%Y-%m-%d %H:%M:%S'
    return quote_text(value.strftime(fmt))


def normalize_limit(value: int | None) -> int | None:
    """Map ``None`` and negative values to ``None`` (unset)."""
    if value is None:
        return None
    value = int(value)
    return value if value >= 0 else None
