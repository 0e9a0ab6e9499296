"""
Native value decoders registered with DBAPI drivers.
"""
import datetime

import dateutil.parser

__all__ = ['convert_date', 'convert_datetime']


def _text(val: bytes | str) -> str:
    return val.decode() if isinstance(val, bytes | bytearray) else val


def convert_date(val: bytes | str) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(_text(val)).date()


def convert_datetime(val: bytes | str) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(_text(val))
