"""
In-Memory Document Store: Development and Testing Implementation

Provides a DocumentStore that keeps collections in process memory:
- Full protocol compliance for seamless swap with the Redis store
- Safe under concurrent tasks via an asyncio lock
- Optional latency simulation
- Fault injection for exercising retry and error paths

Watches are re-evaluated after every committed mutation; a listener is
called only when its query result actually changed.

Author: Planetary AI Systems
License: MIT
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from trustmesh.core.errors import TrustMeshError, classify
from trustmesh.core.types import Result, Ok, Err
from trustmesh.storage.protocols import (
    WatchErrorListener,
    WatchHandle,
    WatchListener,
    generate_document_id,
    with_id,
)
from trustmesh.storage.query import Document, Query

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================
DEFAULT_SIMULATED_LATENCY_NS: int = 50_000  # 50 microseconds
ANY_OPERATION: str = "*"


@dataclass
class _Watch:
    query: Query
    listener: WatchListener
    on_error: Optional[WatchErrorListener] = None
    last: Optional[List[Document]] = None


@dataclass
class _Fault:
    error: BaseException
    remaining: Optional[int]  # None: until cleared


@dataclass
class _FaultTable:
    """Pending injected failures per operation name."""

    queues: Dict[str, Deque[_Fault]] = field(default_factory=dict)

    def add(self, operation: str, fault: _Fault) -> None:
        self.queues.setdefault(operation, deque()).append(fault)

    def take(self, operation: str) -> Optional[BaseException]:
        for key in (operation, ANY_OPERATION):
            queue = self.queues.get(key)
            if not queue:
                continue
            fault = queue[0]
            if fault.remaining is not None:
                fault.remaining -= 1
                if fault.remaining <= 0:
                    queue.popleft()
            return fault.error
        return None

    def clear(self) -> None:
        self.queues.clear()


class InMemoryDocumentStore:
    """
    In-memory document store.

    Example:
        store = InMemoryDocumentStore()
        await store.set("quantum_sessions", "abc", {"sessionName": "x"})

        # Next two counts fail as if the network dropped
        store.inject_fault("count", ConnectionError("offline"), times=2)
    """

    __slots__ = (
        "_collections",
        "_lock",
        "_watches",
        "_next_watch_key",
        "_faults",
        "_simulate_latency",
        "_calls",
    )

    def __init__(self, simulate_latency: bool = False) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self._watches: Dict[int, _Watch] = {}
        self._next_watch_key = 0
        self._faults = _FaultTable()
        self._simulate_latency = simulate_latency
        self._calls: Counter = Counter()

    # -------------------------------------------------------------------------
    # Test hooks
    # -------------------------------------------------------------------------

    def inject_fault(
        self,
        operation: str,
        error: BaseException,
        times: Optional[int] = 1,
    ) -> None:
        """
        Make the next `times` calls of `operation` fail with `error`.

        operation is a method name ("set", "get", "delete", "query",
        "count", "watch") or "*" for any. times=None fails until
        clear_faults().
        """
        self._faults.add(operation, _Fault(error=error, remaining=times))

    def clear_faults(self) -> None:
        self._faults.clear()

    def emit_watch_error(self, collection: str, error: BaseException) -> int:
        """Push an error to every watch on collection; returns how many."""
        classified = classify(error, "watch")
        notified = 0
        for watch in list(self._watches.values()):
            if watch.query.collection != collection or watch.on_error is None:
                continue
            notified += 1
            try:
                watch.on_error(classified)
            except Exception:
                logger.exception("Watch error listener raised")
        return notified

    @property
    def calls(self) -> Counter:
        """Per-operation call counts."""
        return self._calls

    @property
    def active_watch_count(self) -> int:
        return len(self._watches)

    def snapshot(self, collection: str) -> Dict[str, Document]:
        """Deep copy of a collection keyed by id."""
        return {
            doc_id: with_id(doc_id, copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _simulate_network_latency(self) -> None:
        if self._simulate_latency:
            await asyncio.sleep(DEFAULT_SIMULATED_LATENCY_NS / 1_000_000_000)

    async def _enter(self, operation: str) -> Optional[TrustMeshError]:
        """Count the call, simulate latency, surface any injected fault."""
        self._calls[operation] += 1
        await self._simulate_network_latency()
        error = self._faults.take(operation)
        if error is not None:
            return classify(error, operation)
        return None

    def _documents(self, collection: str) -> List[Document]:
        return [
            with_id(doc_id, copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

    def _dispatch(self, collection: str) -> None:
        """Re-run affected watches; deliver changed results."""
        docs = self._documents(collection)
        for key, watch in list(self._watches.items()):
            if key not in self._watches or watch.query.collection != collection:
                continue
            self._deliver(watch, watch.query.apply(docs))

    @staticmethod
    def _deliver(watch: _Watch, results: List[Document]) -> None:
        if watch.last is not None and results == watch.last:
            return
        watch.last = results
        try:
            watch.listener(copy.deepcopy(results))
        except Exception:
            logger.exception("Watch listener raised")

    # -------------------------------------------------------------------------
    # DocumentStore implementation
    # -------------------------------------------------------------------------

    def new_id(self, collection: str) -> str:
        existing = self._collections.get(collection, {})
        while True:
            doc_id = generate_document_id()
            if doc_id not in existing:
                return doc_id

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TrustMeshError]:
        error = await self._enter("set")
        if error is not None:
            return Err(error)

        async with self._lock:
            docs = self._collections.setdefault(collection, {})
            payload = {k: copy.deepcopy(v) for k, v in data.items() if k != "id"}
            if merge and doc_id in docs:
                docs[doc_id].update(payload)
            else:
                docs[doc_id] = payload

        self._dispatch(collection)
        return Ok(None)

    async def get(
        self,
        collection: str,
        doc_id: str,
    ) -> Result[Optional[Document], TrustMeshError]:
        error = await self._enter("get")
        if error is not None:
            return Err(error)

        async with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return Ok(None)
            return Ok(with_id(doc_id, copy.deepcopy(data)))

    async def delete(self, collection: str, doc_id: str) -> Result[None, TrustMeshError]:
        error = await self._enter("delete")
        if error is not None:
            return Err(error)

        async with self._lock:
            removed = self._collections.get(collection, {}).pop(doc_id, None)

        if removed is not None:
            self._dispatch(collection)
        return Ok(None)

    async def query(self, query: Query) -> Result[List[Document], TrustMeshError]:
        error = await self._enter("query")
        if error is not None:
            return Err(error)

        async with self._lock:
            return Ok(query.apply(self._documents(query.collection)))

    async def count(self, query: Query) -> Result[int, TrustMeshError]:
        error = await self._enter("count")
        if error is not None:
            return Err(error)

        async with self._lock:
            return Ok(len(query.apply(self._documents(query.collection))))

    async def watch(
        self,
        query: Query,
        listener: WatchListener,
        on_error: Optional[WatchErrorListener] = None,
    ) -> Result[WatchHandle, TrustMeshError]:
        error = await self._enter("watch")
        if error is not None:
            return Err(error)

        key = self._next_watch_key
        self._next_watch_key += 1
        watch = _Watch(query=query, listener=listener, on_error=on_error)
        self._watches[key] = watch

        # Initial snapshot
        self._deliver(watch, query.apply(self._documents(query.collection)))
        return Ok(WatchHandle(lambda: self._watches.pop(key, None)))
