"""
Driver factory for backend connections.
"""
from sqlbridge.drivers.base import _DRIVER_REGISTRY
from sqlbridge.drivers.base import Driver as Driver
from sqlbridge.drivers.base import Reflector as Reflector
from sqlbridge.drivers.base import ResultDriver as ResultDriver
from sqlbridge.drivers.base import register_driver as register_driver
from sqlbridge.drivers.postgres import PostgresDriver as PostgresDriver
from sqlbridge.drivers.sqlite import SQLiteDriver as SQLiteDriver


def _validate_driver(name: str) -> None:
    """Raise ValueError if the driver name is not registered."""
    if name not in _DRIVER_REGISTRY:
        available = list(_DRIVER_REGISTRY.keys())
        raise ValueError(f'Unsupported driver: {name}. Available: {available}')


def get_available_drivers() -> list[str]:
    """Return list of registered driver names."""
    return list(_DRIVER_REGISTRY.keys())


def is_supported_driver(name: str) -> bool:
    """Check if a driver name is registered."""
    return name in _DRIVER_REGISTRY


def get_driver_class(name: str) -> type[Driver]:
    """Get the driver class for a name without instantiating."""
    _validate_driver(name)
    return _DRIVER_REGISTRY[name]


def create_driver(name: str) -> Driver:
    """Create a new, disconnected driver instance."""
    return get_driver_class(name)()
