"""
Backend connection management with SQLAlchemy.

Drivers open their DBAPI connection through a SQLAlchemy engine created with
``NullPool``: every engine hands out exactly one connection and closing it
closes the backend connection. Pooling is left to callers.

This module provides:
1. Engine creation from a driver's URL and engine arguments
2. A thread-safe registry of live engines, disposed at interpreter exit
3. Extraction of the raw DBAPI connection from a SQLAlchemy connection
"""
import atexit
import logging
import threading
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from sqlbridge.exceptions import ConnectionFailure

__all__ = [
    'open_connection',
    'release_connection',
    'dispose_all_engines',
    'get_raw_connection',
]

logger = logging.getLogger(__name__)

# Thread-safe engine registry
_engine_registry: dict[int, Engine] = {}
_engine_registry_lock = threading.RLock()


def get_raw_connection(sa_connection: sa.engine.Connection) -> Any:
    """Return the driver-level connection behind a SQLAlchemy connection."""
    return sa_connection.connection.driver_connection


def open_connection(url: sa.URL, engine_factory=sa.create_engine,
                    **kwargs: Any) -> tuple[Engine, sa.engine.Connection]:
    """Create an unpooled engine for ``url`` and connect it.

    Args:
        url: SQLAlchemy URL built by the driver
        engine_factory: Function used to create engines (default: sqlalchemy.create_engine)
        **kwargs: Additional arguments passed to the engine factory

    Returns
        The engine and its single open connection

    Raises
        ConnectionFailure: If the engine cannot be created or connected
    """
    engine_kwargs = {'echo': False, 'poolclass': NullPool}
    engine_kwargs.update(kwargs)

    try:
        engine = engine_factory(url, **engine_kwargs)
    except (sa.exc.SQLAlchemyError, ImportError) as e:
        raise ConnectionFailure(f'Cannot create engine for {url.drivername}: {e}') from e

    try:
        sa_connection = engine.connect()
    except sa.exc.SQLAlchemyError as e:
        engine.dispose()
        orig = getattr(e, 'orig', None) or e
        raise ConnectionFailure(f'Cannot connect to {url.render_as_string()}: {orig}') from e

    with _engine_registry_lock:
        _engine_registry[id(engine)] = engine
    logger.debug(f'Opened {url.drivername} connection to {url.database}')

    return engine, sa_connection


def release_connection(engine: Engine | None,
                       sa_connection: sa.engine.Connection | None) -> None:
    """Close a connection opened with :func:`open_connection` and dispose its engine.

    The engine is always disposed, even when closing the connection fails.
    """
    try:
        if sa_connection is not None and not sa_connection.closed:
            sa_connection.close()
    finally:
        if engine is not None:
            with _engine_registry_lock:
                _engine_registry.pop(id(engine), None)
            engine.dispose()


def dispose_all_engines():
    """Dispose all engines in the registry."""
    with _engine_registry_lock:
        for key, engine in list(_engine_registry.items()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


# Register cleanup function to run at program exit
atexit.register(dispose_all_engines)
