"""Persistence gateways."""

from .gateway import PersistenceError, PersistenceGateway
from .memory import MemoryGateway
from .sqlite import SqliteGateway

__all__ = [
    "MemoryGateway",
    "PersistenceError",
    "PersistenceGateway",
    "SqliteGateway",
]
