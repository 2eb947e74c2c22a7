"""
Storage module: document store protocol, query model and backends.
"""

from trustmesh.storage.backends import InMemoryDocumentStore
from trustmesh.storage.config import BackendType, RedisConfig, RedisMode
from trustmesh.storage.protocols import DocumentStore, WatchHandle, generate_document_id
from trustmesh.storage.query import Document, FieldFilter, FilterOp, OrderBy, Query
from trustmesh.storage.redis_store import RedisDocumentStore

__all__ = [
    "BackendType",
    "Document",
    "DocumentStore",
    "FieldFilter",
    "FilterOp",
    "InMemoryDocumentStore",
    "OrderBy",
    "Query",
    "RedisConfig",
    "RedisDocumentStore",
    "RedisMode",
    "WatchHandle",
    "generate_document_id",
]
