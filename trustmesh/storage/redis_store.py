"""
Redis Document Store
====================

Production Redis/Valkey implementation of DocumentStore.

Layout:
-------
| Key                                   | Type   | Content                 |
|---------------------------------------|--------|-------------------------|
| {prefix}:{collection}:doc:{id}        | string | JSON document           |
| {prefix}:{collection}:ids             | set    | ids in the collection   |
| {prefix}:{collection}:changes         | pubsub | id of each changed doc  |

Queries load the collection and evaluate filters/ordering client-side with
the same semantics as the in-memory store. Watches subscribe to the change
channel; every notification re-runs the watched queries of that collection
and delivers results that differ from the last delivery.

Error Mapping:
--------------
- authentication / ACL rejections  → PermissionDenied
- connection drops, timeouts       → StoreUnavailable
- anything else                    → Unclassified

Author: Planetary AI Systems
License: MIT
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from trustmesh.core.errors import (
    PermissionDenied,
    StoreUnavailable,
    TrustMeshError,
    classify,
)
from trustmesh.core.types import Result, Ok, Err
from trustmesh.storage.config import RedisConfig, RedisMode
from trustmesh.storage.protocols import (
    WatchErrorListener,
    WatchHandle,
    WatchListener,
    generate_document_id,
    with_id,
)
from trustmesh.storage.query import Document, Query

# Lazy import for optional redis dependency
if TYPE_CHECKING:
    import redis.asyncio as aioredis
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

BACKEND_NAME = "redis"

# redis-py exception class names, checked by name so this module imports
# without redis installed.
_PERMISSION_ERRORS = frozenset({"AuthenticationError", "NoPermissionError", "AuthorizationError"})
_UNAVAILABLE_ERRORS = frozenset({"ConnectionError", "TimeoutError", "BusyLoadingError", "ReadOnlyError"})


def map_redis_error(error: BaseException, operation: str) -> TrustMeshError:
    """Map a redis-py exception (or anything else) onto the taxonomy."""
    names = {cls.__name__ for cls in type(error).__mro__}
    if names & _PERMISSION_ERRORS:
        return PermissionDenied.rejected(operation, cause=error)
    if names & _UNAVAILABLE_ERRORS:
        return StoreUnavailable.unreachable(operation, cause=error)
    return classify(error, operation)


@dataclass
class _Watch:
    query: Query
    listener: WatchListener
    on_error: Optional[WatchErrorListener] = None
    last: Optional[List[Document]] = None


class RedisDocumentStore:
    """
    Document store backed by Redis.

    Example:
        >>> store = RedisDocumentStore(RedisConfig(host="redis.example.com"))
        >>> await store.connect()
        >>> await store.set("quantum_sessions", "abc", {"sessionName": "x"})
        >>> await store.close()
    """

    __slots__ = (
        "_config",
        "_pool",
        "_pubsub",
        "_listener_task",
        "_watches",
        "_next_watch_key",
        "_connected",
    )

    def __init__(self, config: RedisConfig, client: Optional["aioredis.Redis"] = None) -> None:
        """
        Args:
            config: Redis connection configuration.
            client: Already-connected redis.asyncio client; skips connect().

        Note:
            Without a client, call `connect()` before performing operations.
        """
        self._config = config
        self._pool: Optional["aioredis.Redis"] = client
        self._pubsub: Optional["PubSub"] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._watches: Dict[int, _Watch] = {}
        self._next_watch_key = 0
        self._connected = client is not None

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, TrustMeshError]:
        """
        Establish connection pool to Redis.

        Returns:
            Ok(None) on success, Err(StoreUnavailable) on failure.
        """
        try:
            import redis.asyncio as aioredis
        except ImportError as e:
            return Err(StoreUnavailable.unreachable(
                "connect (redis package not installed: pip install redis)", cause=e,
            ))

        try:
            kwargs = self._config.get_connection_kwargs()

            if self._config.mode == RedisMode.SENTINEL:
                from redis.asyncio.sentinel import Sentinel
                sentinel = Sentinel(
                    list(self._config.sentinel_hosts),
                    socket_timeout=self._config.socket_timeout_ms / 1000,
                )
                kwargs.pop("host", None)
                kwargs.pop("port", None)
                self._pool = sentinel.master_for(
                    self._config.sentinel_master,
                    redis_class=aioredis.Redis,
                    **kwargs,
                )
            else:
                self._pool = aioredis.Redis(**kwargs)

            await self._pool.ping()
            self._connected = True
            logger.info("Connected to redis at %s:%d", self._config.host, self._config.port)
            return Ok(None)

        except Exception as e:
            return Err(map_redis_error(e, "connect"))

    async def close(self) -> None:
        """
        Close connections and stop the change listener.

        Safe to call multiple times.
        """
        self._watches.clear()
        await self._stop_listener()

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    # -------------------------------------------------------------------------
    # KEYS
    # -------------------------------------------------------------------------

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self._config.key_prefix}:{collection}:doc:{doc_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self._config.key_prefix}:{collection}:ids"

    def _channel(self, collection: str) -> str:
        return f"{self._config.key_prefix}:{collection}:changes"

    def _collection_of(self, channel: str) -> str:
        prefix = f"{self._config.key_prefix}:"
        return channel[len(prefix):].rsplit(":", 1)[0]

    # -------------------------------------------------------------------------
    # DocumentStore implementation
    # -------------------------------------------------------------------------

    def new_id(self, collection: str) -> str:
        return generate_document_id()

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TrustMeshError]:
        if not self._connected or not self._pool:
            return Err(StoreUnavailable.not_connected(BACKEND_NAME))

        key = self._doc_key(collection, doc_id)
        payload = {k: v for k, v in data.items() if k != "id"}

        try:
            if merge:
                existing = await self._pool.get(key)
                if existing:
                    merged = json.loads(existing)
                    merged.update(payload)
                    payload = merged

            async with self._pool.pipeline(transaction=True) as pipe:
                pipe.set(key, json.dumps(payload))
                pipe.sadd(self._index_key(collection), doc_id)
                pipe.publish(self._channel(collection), doc_id)
                await pipe.execute()
            return Ok(None)

        except Exception as e:
            return Err(map_redis_error(e, "set"))

    async def get(
        self,
        collection: str,
        doc_id: str,
    ) -> Result[Optional[Document], TrustMeshError]:
        if not self._connected or not self._pool:
            return Err(StoreUnavailable.not_connected(BACKEND_NAME))

        try:
            raw = await self._pool.get(self._doc_key(collection, doc_id))
            if raw is None:
                return Ok(None)
            return Ok(with_id(doc_id, json.loads(raw)))
        except Exception as e:
            return Err(map_redis_error(e, "get"))

    async def delete(self, collection: str, doc_id: str) -> Result[None, TrustMeshError]:
        if not self._connected or not self._pool:
            return Err(StoreUnavailable.not_connected(BACKEND_NAME))

        try:
            async with self._pool.pipeline(transaction=True) as pipe:
                pipe.delete(self._doc_key(collection, doc_id))
                pipe.srem(self._index_key(collection), doc_id)
                pipe.publish(self._channel(collection), doc_id)
                await pipe.execute()
            return Ok(None)
        except Exception as e:
            return Err(map_redis_error(e, "delete"))

    async def _load(self, collection: str) -> List[Document]:
        """All documents of a collection. Raises redis errors."""
        assert self._pool is not None
        ids = sorted(await self._pool.smembers(self._index_key(collection)))
        if not ids:
            return []
        raws = await self._pool.mget([self._doc_key(collection, i) for i in ids])
        docs: List[Document] = []
        for doc_id, raw in zip(ids, raws):
            if raw is None:
                continue
            try:
                docs.append(with_id(doc_id, json.loads(raw)))
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable document %s/%s", collection, doc_id)
        return docs

    async def query(self, query: Query) -> Result[List[Document], TrustMeshError]:
        if not self._connected or not self._pool:
            return Err(StoreUnavailable.not_connected(BACKEND_NAME))

        try:
            return Ok(query.apply(await self._load(query.collection)))
        except Exception as e:
            return Err(map_redis_error(e, "query"))

    async def count(self, query: Query) -> Result[int, TrustMeshError]:
        result = await self.query(query)
        if result.is_err():
            return result
        return Ok(len(result.unwrap()))

    # -------------------------------------------------------------------------
    # WATCH
    # -------------------------------------------------------------------------

    async def watch(
        self,
        query: Query,
        listener: WatchListener,
        on_error: Optional[WatchErrorListener] = None,
    ) -> Result[WatchHandle, TrustMeshError]:
        if not self._connected or not self._pool:
            return Err(StoreUnavailable.not_connected(BACKEND_NAME))

        try:
            if self._pubsub is None:
                self._pubsub = self._pool.pubsub()
            await self._pubsub.subscribe(self._channel(query.collection))
            if self._listener_task is None or self._listener_task.done():
                self._listener_task = asyncio.create_task(self._listen())

            initial = query.apply(await self._load(query.collection))
        except Exception as e:
            return Err(map_redis_error(e, "watch"))

        key = self._next_watch_key
        self._next_watch_key += 1
        watch = _Watch(query=query, listener=listener, on_error=on_error)
        self._watches[key] = watch
        self._deliver(watch, initial)
        return Ok(WatchHandle(lambda: self._watches.pop(key, None)))

    @staticmethod
    def _deliver(watch: _Watch, results: List[Document]) -> None:
        if watch.last is not None and results == watch.last:
            return
        watch.last = results
        try:
            watch.listener(results)
        except Exception:
            logger.exception("Watch listener raised")

    async def _refresh(self, collection: str) -> None:
        keys = [k for k, w in self._watches.items() if w.query.collection == collection]
        if not keys:
            return
        docs = await self._load(collection)
        for key in keys:
            watch = self._watches.get(key)
            if watch is not None:
                self._deliver(watch, watch.query.apply(docs))

    async def _listen(self) -> None:
        """Background task: fan change notifications out to watches."""
        assert self._pubsub is not None
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self._refresh(self._collection_of(message["channel"]))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = map_redis_error(e, "watch")
            logger.error("Change listener stopped: %s", error)
            for watch in list(self._watches.values()):
                if watch.on_error is None:
                    continue
                try:
                    watch.on_error(error)
                except Exception:
                    logger.exception("Watch error listener raised")

    async def _stop_listener(self) -> None:
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
