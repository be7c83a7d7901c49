"""Database layer for Gift Registry."""

from gift_registry.db.memory import InMemoryStore
from gift_registry.db.store import RegistryStore, ScopeTransaction

__all__ = ["InMemoryStore", "RegistryStore", "ScopeTransaction", "get_store"]


# Global store instance
_store: RegistryStore | None = None


def get_store() -> RegistryStore:
    """Get the global store, selected by STORE_BACKEND."""
    global _store
    if _store is None:
        from gift_registry.config import get_settings

        if get_settings().store.backend == "postgres":
            from gift_registry.db.postgres import PostgresDB

            _store = PostgresDB()
        else:
            _store = InMemoryStore()
    return _store
