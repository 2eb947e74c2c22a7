"""
Document Store Protocol Definitions

Structural subtyping protocol (PEP 544) for pluggable document stores:
- DocumentStore: async CRUD, query, count and live watch over collections

Design Principles:
    - Zero-exception control flow via Result[T, TrustMeshError]
    - Async-first; watch listeners are plain callables run on the loop
    - Documents are JSON-compatible dicts; reads include the "id" key
"""

from __future__ import annotations

import secrets
import string
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from trustmesh.core import constants as C
from trustmesh.core.errors import TrustMeshError
from trustmesh.core.types import Result
from trustmesh.storage.query import Document, Query

WatchListener = Callable[[List[Document]], None]
WatchErrorListener = Callable[[TrustMeshError], None]

_ID_ALPHABET = string.ascii_letters + string.digits


def generate_document_id(length: int = C.DOCUMENT_ID_LENGTH) -> str:
    """Random alphanumeric document id."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def with_id(doc_id: str, data: Dict[str, Any]) -> Document:
    """Copy of data carrying its document id."""
    doc = dict(data)
    doc["id"] = doc_id
    return doc


class WatchHandle:
    """Live query registration; cancel() is idempotent."""

    __slots__ = ("_on_cancel", "_active")

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()


@runtime_checkable
class DocumentStore(Protocol):
    """
    Remote, eventually-consistent document store.

    All fallible operations return Result; nothing raises for store errors.
    """

    def new_id(self, collection: str) -> str:
        """Allocate a fresh document id."""
        ...

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TrustMeshError]:
        """Write a document; merge=True updates only the given fields."""
        ...

    async def get(
        self,
        collection: str,
        doc_id: str,
    ) -> Result[Optional[Document], TrustMeshError]:
        ...

    async def delete(self, collection: str, doc_id: str) -> Result[None, TrustMeshError]:
        ...

    async def query(self, query: Query) -> Result[List[Document], TrustMeshError]:
        ...

    async def count(self, query: Query) -> Result[int, TrustMeshError]:
        ...

    async def watch(
        self,
        query: Query,
        listener: WatchListener,
        on_error: Optional[WatchErrorListener] = None,
    ) -> Result[WatchHandle, TrustMeshError]:
        """
        Deliver the query result now and after every change that alters it.
        """
        ...
