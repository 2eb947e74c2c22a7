"""
Shared test doubles: controllable randomness, recorded sleeps, flaky stores
and an in-process stand-in for the redis.asyncio client.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, List, Optional, Set, Tuple

from trustmesh.alerts.reporter import ErrorReporter, LoggingNotificationSink
from trustmesh.core.config import ReadinessConfig, TrustParameters
from trustmesh.core.errors import StoreUnavailable, TrustMeshError
from trustmesh.core.types import Result, Err, Timestamp
from trustmesh.session.coordinator import SessionTrustCoordinator
from trustmesh.session.store import SessionStore
from trustmesh.storage.backends import InMemoryDocumentStore
from trustmesh.trust.auth_hash import AuthHashGenerator
from trustmesh.trust.fingerprint import FingerprintVerifier
from trustmesh.trust.identity import IdentityResolver, LocalIdentityProvider

# Tolerance tight enough that the noise extremes fail while a centred
# draw (random() == 0.5) still passes.
STRICT_PARAMS = TrustParameters(tolerance=0.0001)


class FixedRandom(random.Random):
    """random() returns `value` until changed."""

    def __init__(self, value: float = 0.5) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class StepClock:
    """Clock returning queued timestamps, then repeating the last one."""

    def __init__(self, *millis: int) -> None:
        self._queue = [Timestamp.from_millis(m) for m in millis]

    def __call__(self) -> Timestamp:
        if len(self._queue) > 1:
            return self._queue.pop(0)
        return self._queue[0]


class WriteLimitedStore(InMemoryDocumentStore):
    """Accepts `limit` writes, then every further set() fails."""

    def __init__(self, limit: int) -> None:
        super().__init__()
        self.limit = limit
        self.writes = 0

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TrustMeshError]:
        if self.writes >= self.limit:
            return Err(StoreUnavailable.unreachable("set", ConnectionError("link down")))
        self.writes += 1
        return await super().set(collection, doc_id, data, merge)


def make_session_store(
    documents: Optional[InMemoryDocumentStore] = None,
    rng: Optional[random.Random] = None,
    params: TrustParameters = STRICT_PARAMS,
) -> SessionStore:
    rng = rng or FixedRandom()
    return SessionStore(
        documents if documents is not None else InMemoryDocumentStore(),
        FingerprintVerifier(params, rng),
        AuthHashGenerator(params, rng),
        params=params,
    )


def make_coordinator(
    documents: Optional[InMemoryDocumentStore] = None,
    identity: Optional[LocalIdentityProvider] = None,
    rng: Optional[random.Random] = None,
    params: TrustParameters = STRICT_PARAMS,
    sleep: Optional[SleepRecorder] = None,
    protocol: Any = None,
) -> SessionTrustCoordinator:
    rng = rng or FixedRandom()
    verifier = FingerprintVerifier(params, rng)
    store = SessionStore(
        documents if documents is not None else InMemoryDocumentStore(),
        verifier,
        AuthHashGenerator(params, rng),
        params=params,
    )
    return SessionTrustCoordinator(
        store=store,
        identity=identity or LocalIdentityProvider(),
        reporter=ErrorReporter(LoggingNotificationSink(), console_url="https://console.example/p"),
        verifier=verifier,
        resolver=IdentityResolver(params, rng),
        params=params,
        readiness=ReadinessConfig(),
        protocol=protocol,
        sleep=sleep or SleepRecorder(),
    )


class FakeRedisPubSub:
    """Channel subscriptions fed by FakeRedis.publish()."""

    def __init__(self, server: "FakeRedis") -> None:
        self._server = server
        self._queue: asyncio.Queue = asyncio.Queue()
        self.channels: Set[str] = set()
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        self.channels.add(channel)
        if self not in self._server.subscribers:
            self._server.subscribers.append(self)
        self._queue.put_nowait({"type": "subscribe", "channel": channel, "data": 1})

    def deliver(self, channel: str, data: str) -> None:
        if channel in self.channels:
            self._queue.put_nowait({"type": "message", "channel": channel, "data": data})

    async def listen(self):
        while True:
            message = await self._queue.get()
            if isinstance(message, BaseException):
                raise message
            yield message

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    async def aclose(self) -> None:
        self.closed = True


class FakeRedisPipeline:
    """Buffers commands; execute() applies them in order."""

    def __init__(self, server: "FakeRedis") -> None:
        self._server = server
        self._commands: List[Tuple[str, tuple]] = []

    async def __aenter__(self) -> "FakeRedisPipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._commands.clear()

    def __getattr__(self, name: str):
        def _buffer(*args: Any) -> "FakeRedisPipeline":
            self._commands.append((name, args))
            return self
        return _buffer

    async def execute(self) -> List[Any]:
        if self._server.fail_writes is not None:
            raise self._server.fail_writes
        return [getattr(self._server, f"_{name}")(*args) for name, args in self._commands]


class FakeRedis:
    """
    Subset of the redis.asyncio client used by RedisDocumentStore:
    strings, sets, pipelines and pub/sub.
    """

    def __init__(self) -> None:
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.subscribers: List[FakeRedisPubSub] = []
        self.published: List[Tuple[str, str]] = []
        self.fail_writes: Optional[BaseException] = None
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self.strings.get(key)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self.strings.get(k) for k in keys]

    async def smembers(self, key: str) -> Set[str]:
        return set(self.sets.get(key, set()))

    def pipeline(self, transaction: bool = True) -> FakeRedisPipeline:
        return FakeRedisPipeline(self)

    def pubsub(self) -> FakeRedisPubSub:
        return FakeRedisPubSub(self)

    async def aclose(self) -> None:
        self.closed = True

    def _set(self, key: str, value: str) -> bool:
        self.strings[key] = value
        return True

    def _delete(self, key: str) -> int:
        return 1 if self.strings.pop(key, None) is not None else 0

    def _sadd(self, key: str, member: str) -> int:
        members = self.sets.setdefault(key, set())
        added = member not in members
        members.add(member)
        return int(added)

    def _srem(self, key: str, member: str) -> int:
        members = self.sets.get(key, set())
        removed = member in members
        members.discard(member)
        return int(removed)

    def _publish(self, channel: str, data: str) -> int:
        self.published.append((channel, data))
        for subscriber in self.subscribers:
            subscriber.deliver(channel, data)
        return len(self.subscribers)


async def settle(rounds: int = 5) -> None:
    """Let background tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)
