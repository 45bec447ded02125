"""Event store adapters: protocol, in-memory fake, and SQLite backend."""

from ngfwstats.store.base import EventStore, Update, UpdateResult
from ngfwstats.store.memory import InMemoryEventStore
from ngfwstats.store.sqlite import SQLiteEventStore

__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "SQLiteEventStore",
    "Update",
    "UpdateResult",
]
