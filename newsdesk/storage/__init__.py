"""Content persistence: record codec, backend adapters and the gateway."""

from newsdesk.storage.base import BackendKind, CursorItem, StorageBackend
from newsdesk.storage.gateway import PersistenceGateway, select_backend

__all__ = [
    "BackendKind",
    "CursorItem",
    "StorageBackend",
    "PersistenceGateway",
    "select_backend",
]
