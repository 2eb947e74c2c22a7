"""
Backend factory: StoreConfig → DocumentStore.
"""

from __future__ import annotations

from trustmesh.core.config import StoreConfig
from trustmesh.core.errors import TrustMeshError
from trustmesh.core.types import Result, Ok, Err
from trustmesh.storage.backends import InMemoryDocumentStore
from trustmesh.storage.config import BackendType
from trustmesh.storage.protocols import DocumentStore
from trustmesh.storage.redis_store import RedisDocumentStore

_BACKENDS = {
    "memory": BackendType.IN_MEMORY,
    "redis": BackendType.REDIS,
}


def backend_type(config: StoreConfig) -> BackendType:
    try:
        return _BACKENDS[config.backend]
    except KeyError:
        raise ValueError(f"Unknown store backend: {config.backend!r}") from None


async def open_document_store(config: StoreConfig) -> Result[DocumentStore, TrustMeshError]:
    """Create and, for network backends, connect the configured store."""
    kind = backend_type(config)
    if kind is BackendType.IN_MEMORY:
        return Ok(InMemoryDocumentStore())

    store = RedisDocumentStore(config.redis)
    connected = await store.connect()
    if connected.is_err():
        return Err(connected.error)
    return Ok(store)
