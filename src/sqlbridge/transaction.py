"""
Transaction handling for connections.
"""
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlbridge.connection import Connection

logger = logging.getLogger(__name__)


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Commits when the block exits normally and rolls back when it raises. With
    a ``savepoint`` name the block runs inside a savepoint of an already open
    transaction instead.

    Examples
        with Transaction(cn) as tx:
            tx.query('DELETE FROM ...')
            tx.query('UPDATE ...')
    """

    def __init__(self, connection: 'Connection', savepoint: str | None = None) -> None:
        self.connection = connection
        self.savepoint = savepoint

    def __enter__(self) -> 'Transaction':
        self.connection.begin(self.savepoint)
        logger.debug(f'Started transaction{self._label} for connection {id(self.connection)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        if exc_type is not None:
            logger.warning(f'Rolling back the current transaction{self._label}')
            self.connection.rollback(self.savepoint)
        else:
            self.connection.commit(self.savepoint)
            logger.debug(f'Committed transaction{self._label} for connection {id(self.connection)}')

    @property
    def _label(self) -> str:
        return f' (savepoint {self.savepoint})' if self.savepoint else ''

    def query(self, sql: str) -> Any:
        """Execute SQL within the transaction."""
        return self.connection.query(sql)
