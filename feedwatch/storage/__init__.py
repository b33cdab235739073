"""Persistence for watch targets, tenant plans and delivery outcomes."""

from feedwatch.storage.database import Database
from feedwatch.storage.factory import create_store
from feedwatch.storage.interfaces import (
    CONFIG_FIELDS,
    TargetNotFoundError,
    WatchTargetStore,
)
from feedwatch.storage.memory import InMemoryStore
from feedwatch.storage.repository import PostgresStore

__all__ = [
    "CONFIG_FIELDS",
    "Database",
    "InMemoryStore",
    "PostgresStore",
    "TargetNotFoundError",
    "WatchTargetStore",
    "create_store",
]
