"""
Readiness Loader

Counted-load-with-retry sequence that detects store readiness:

    IDLE ──start()──▶ CHECKING ──count ok──▶ READY
                         │
                         └──retries exhausted──▶ FAILED

1. Count active sessions, retried with exponential backoff
   (1000ms, 2000ms, 3000ms, 3000ms, ... for up to 15 retries, no jitter).
2. On success publish readiness true. A zero count publishes [] without
   opening a stream; otherwise the live session stream is republished.
3. On exhaustion report StoreUnavailable once and publish []; readiness
   stays false. PermissionDenied is reported without retrying.

A new start() supersedes the running sequence: its task is cancelled, its
stream released, and anything it still delivers is dropped.
"""

from __future__ import annotations

import asyncio
from enum import Enum, auto
from typing import List, Optional

from trustmesh.alerts.reporter import ErrorReporter
from trustmesh.core.config import ReadinessConfig
from trustmesh.core.errors import PermissionDenied, StoreUnavailable, TrustMeshError
from trustmesh.observability.logging import StructuredLogger
from trustmesh.reliability.retry import RetryPolicy, RetryStats, Sleeper, retry_with_backoff
from trustmesh.session.models import Session
from trustmesh.session.store import SessionStore
from trustmesh.storage.protocols import WatchHandle
from trustmesh.streams.channel import BehaviorSubject

logger = StructuredLogger(__name__)


class ReadinessState(Enum):
    IDLE = auto()
    CHECKING = auto()
    READY = auto()
    FAILED = auto()


class ReadinessLoader:
    """
    Drives the session list and readiness flag from the store.

    Example:
        loader = ReadinessLoader(store, sessions, ready, reporter)
        loader.start()
        await loader.wait()
    """

    def __init__(
        self,
        store: SessionStore,
        sessions: BehaviorSubject[List[Session]],
        ready: BehaviorSubject[bool],
        reporter: ErrorReporter,
        config: Optional[ReadinessConfig] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._ready = ready
        self._reporter = reporter
        self._config = config or ReadinessConfig()
        self._sleep = sleep

        self._state = ReadinessState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._watch: Optional[WatchHandle] = None
        self._last_stats: Optional[RetryStats] = None

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def streaming(self) -> bool:
        """True while a live session stream is open."""
        return self._watch is not None and self._watch.active

    @property
    def last_stats(self) -> Optional[RetryStats]:
        """Attempt statistics of the most recent readiness check."""
        return self._last_stats

    def policy(self) -> RetryPolicy:
        return RetryPolicy.readiness(
            initial_delay_ms=self._config.initial_delay_ms,
            max_delay_ms=self._config.max_delay_ms,
            max_retries=self._config.max_retries,
            non_retryable_exceptions=(PermissionDenied,),
        )

    def start(self) -> asyncio.Task:
        """Start (or restart) the sequence. Requires a running loop."""
        self._release()
        self._generation += 1
        self._state = ReadinessState.CHECKING
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        return self._task

    async def wait(self) -> None:
        """Wait for the current sequence to settle."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def stop(self) -> None:
        task = self._task
        self._release()
        self._generation += 1
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._state = ReadinessState.IDLE

    def _release(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None

    def _current(self, generation: int) -> bool:
        return generation == self._generation

    async def _count_active(self) -> int:
        result = await self._store.count_active_sessions()
        if result.is_err():
            raise result.error
        return result.unwrap()

    async def _run(self, generation: int) -> None:
        stats = RetryStats()
        self._last_stats = stats
        result = await retry_with_backoff(self._count_active, self.policy(), sleep=self._sleep, stats=stats)
        if not self._current(generation):
            return

        if result.is_err():
            self._fail(result.error.cause, stats.total_attempts)
            return

        count = result.unwrap()
        self._state = ReadinessState.READY
        logger.info("Store ready", active_sessions=count, attempts=stats.total_attempts)
        self._ready.publish(True)

        if count == 0:
            self._sessions.publish([])
            return

        def _on_sessions(sessions: List[Session]) -> None:
            if self._current(generation):
                self._sessions.publish(sessions)

        def _on_error(error: TrustMeshError) -> None:
            if self._current(generation):
                self._reporter.report(error)
                self._sessions.publish([])

        watch = await self._store.stream_sessions(_on_sessions, _on_error)
        if watch.is_err():
            if self._current(generation):
                _on_error(watch.error)
            return

        handle = watch.unwrap()
        if not self._current(generation):
            handle.cancel()
            return
        self._watch = handle

    def _fail(self, cause: Optional[BaseException], attempts: int) -> None:
        self._state = ReadinessState.FAILED
        if isinstance(cause, PermissionDenied):
            error: TrustMeshError = cause
        else:
            error = StoreUnavailable.retries_exhausted(attempts, cause=cause)
        logger.error("Store readiness check failed", attempts=attempts, error_code=error.code.name)
        self._reporter.report(error)
        self._sessions.publish([])
