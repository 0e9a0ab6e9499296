"""
Process-wide notification of database events.

Observers (loggers, profilers, test spies) subscribe a callable which is
invoked synchronously as ``callback(event, subject)`` whenever the core
broadcasts an event. Broadcasting is best-effort: an observer that raises is
logged and skipped, so it can never mask the error being reported.

The registry is created at import time and cleared at interpreter exit.

Usage:
    def on_error(event, error):
        print(event, error.sql)

    events.subscribe(on_error)
"""
import atexit
import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

__all__ = [
    'Event',
    'subscribe',
    'unsubscribe',
    'clear',
    'notify',
    'subscribers',
]

logger = logging.getLogger(__name__)


class Event(str, Enum):
    """Events broadcast by the core."""

    EXCEPTION = 'exception'
    CONNECTED = 'connected'


Observer = Callable[[Event, Any], Any]

_subscribers: list[Observer] = []
_subscribers_lock = threading.RLock()


def subscribe(callback: Observer) -> Observer:
    """Register an observer. Subscribing twice has no extra effect.

    Returns the callback so this can be used as a decorator.
    """
    if not callable(callback):
        raise TypeError(f'Observer must be callable, got {type(callback).__name__}')
    with _subscribers_lock:
        if callback not in _subscribers:
            _subscribers.append(callback)
    return callback


def unsubscribe(callback: Observer) -> None:
    """Remove an observer; unknown observers are ignored."""
    with _subscribers_lock:
        if callback in _subscribers:
            _subscribers.remove(callback)


def clear() -> None:
    """Remove every observer."""
    with _subscribers_lock:
        _subscribers.clear()


def subscribers() -> list[Observer]:
    """Return a snapshot of the registered observers."""
    with _subscribers_lock:
        return list(_subscribers)


def notify(event: Event, subject: Any = None) -> None:
    """Broadcast an event to all observers.
    """
    for callback in subscribers():
        try:
            callback(event, subject)
        except Exception as e:
            logger.warning(f'Observer {callback!r} failed on {event.value} event: {e}')


atexit.register(clear)
