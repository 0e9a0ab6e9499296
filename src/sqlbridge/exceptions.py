"""
Database-specific exception classes.
"""
from sqlbridge import events

__all__ = [
    'DatabaseError',
    'DriverError',
    'ConnectionFailure',
    'NotSupported',
    'InvalidArgument',
    'InvalidState',
]


class DatabaseError(Exception):
    """Base class for all sqlbridge errors.

    Carries a message and a numeric code (``0`` when the source gives none).
    """

    def __init__(self, message: str | None = None, code: int | None = 0) -> None:
        self._message = '' if message is None else str(message)
        self._code = int(code or 0)
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> int:
        return self._code

    def __str__(self) -> str:
        return self._message


class DriverError(DatabaseError):
    """Error raised by a backend while executing a statement.

    The offending SQL is kept so the failure can be diagnosed without
    re-running the query. Constructing one broadcasts an
    :attr:`~sqlbridge.events.Event.EXCEPTION` event to registered observers.
    """

    def __init__(self, message: str | None = None, code: int | None = 0,
                 sql: str | None = None) -> None:
        super().__init__(message, code)
        self._sql = sql
        events.notify(events.Event.EXCEPTION, self)

    @property
    def sql(self) -> str | None:
        return self._sql

    def __str__(self) -> str:
        text = super().__str__()
        if self._sql:
            return f'{text}\nSQL: {self._sql}'
        return text


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class NotSupported(DatabaseError):
    """No conversion rule or capability exists for the given input.
    """


class InvalidArgument(DatabaseError, ValueError):
    """Invalid value passed to a wiring or escaping call.
    """


class InvalidState(DatabaseError, RuntimeError):
    """Operation issued in a state that does not allow it.
    """
