"""
Unit Tests: Readiness Loader and Retry

Tests:
    - Backoff schedule and retry helper
    - Zero-count load without a live stream
    - Recovery within the retry budget
    - Exhaustion reported exactly once
    - Non-retryable permission errors
    - Restart supersedes the running sequence
"""

import asyncio

import pytest

from trustmesh.alerts.reporter import ErrorReporter, LoggingNotificationSink
from trustmesh.core.config import ReadinessConfig
from trustmesh.core.errors import PermissionDenied, ReliabilityError, StoreUnavailable
from trustmesh.reliability.retry import (
    RetryPolicy,
    RetryStats,
    calculate_backoff,
    retry_with_backoff,
)
from trustmesh.session.loader import ReadinessLoader, ReadinessState
from trustmesh.session.models import SessionDraft, SecurityLevel
from trustmesh.storage.backends import InMemoryDocumentStore
from trustmesh.streams.channel import BehaviorSubject
from trustmesh.tests.support import SleepRecorder, make_session_store

PERMISSION_MESSAGE = "Missing or insufficient permissions."


def _loader(documents, sleep=None):
    store = make_session_store(documents)
    sessions = BehaviorSubject([])
    ready = BehaviorSubject(False)
    reporter = ErrorReporter(LoggingNotificationSink())
    loader = ReadinessLoader(
        store, sessions, ready, reporter,
        config=ReadinessConfig(), sleep=sleep or SleepRecorder(),
    )
    return loader, store, sessions, ready, reporter


class TestBackoff:
    """Tests for the retry schedule."""

    def test_readiness_schedule(self):
        delays = [calculate_backoff(i, 1000, 3000, 2.0, jitter=False) for i in range(5)]
        assert delays == [1000, 2000, 3000, 3000, 3000]

    def test_jitter_bounded(self):
        for attempt in range(6):
            assert 0 <= calculate_backoff(attempt, 100, 1000, 2.0, jitter=True) <= 1000

    def test_retry_succeeds_after_failures(self):
        async def scenario():
            calls = []

            async def flaky():
                calls.append(1)
                if len(calls) < 3:
                    raise ConnectionError("down")
                return "ok"

            sleep = SleepRecorder()
            stats = RetryStats()
            result = await retry_with_backoff(flaky, RetryPolicy.readiness(), sleep=sleep, stats=stats)

            assert result.unwrap() == "ok"
            assert sleep.delays == [1.0, 2.0]
            assert stats.total_attempts == 3

        asyncio.run(scenario())

    def test_retry_exhausted_keeps_last_cause(self):
        async def scenario():
            async def always_down():
                raise ConnectionError("down")

            policy = RetryPolicy.readiness(max_retries=2)
            result = await retry_with_backoff(always_down, policy, sleep=SleepRecorder())

            assert isinstance(result.error, ReliabilityError)
            assert isinstance(result.error.cause, ConnectionError)
            assert result.error.context["attempts"] == 3

        asyncio.run(scenario())

    def test_non_retryable_stops_immediately(self):
        async def scenario():
            calls = []

            async def denied():
                calls.append(1)
                raise PermissionError("nope")

            policy = RetryPolicy.readiness(non_retryable_exceptions=(PermissionError,))
            result = await retry_with_backoff(denied, policy, sleep=SleepRecorder())

            assert result.is_err()
            assert len(calls) == 1

        asyncio.run(scenario())


class TestReadinessLoader:
    """Tests for the counted load with retry."""

    def test_zero_count_publishes_empty_without_stream(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            loader, _, sessions, ready, reporter = _loader(documents)

            loader.start()
            await loader.wait()

            assert ready.value is True
            assert sessions.value == []
            assert loader.state is ReadinessState.READY
            assert not loader.streaming
            assert documents.calls["watch"] == 0
            assert reporter.reported == []

        asyncio.run(scenario())

    def test_nonzero_count_streams_sessions(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            loader, store, sessions, ready, _ = _loader(documents)
            await store.create_session(SessionDraft("a", SecurityLevel.HIGH), "owner")

            loader.start()
            await loader.wait()
            assert loader.streaming
            assert [s.session_name for s in sessions.value] == ["a"]

            await store.create_session(SessionDraft("b", SecurityLevel.LOW), "owner")
            assert {s.session_name for s in sessions.value} == {"a", "b"}

        asyncio.run(scenario())

    def test_fourteen_failures_then_ready(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            documents.inject_fault("count", ConnectionError("offline"), times=14)
            sleep = SleepRecorder()
            loader, _, sessions, ready, reporter = _loader(documents, sleep)

            loader.start()
            await loader.wait()

            assert ready.value is True
            assert loader.state is ReadinessState.READY
            assert documents.calls["count"] == 15
            assert sleep.delays == [1.0, 2.0] + [3.0] * 12
            assert reporter.reported == []
            assert loader.last_stats.total_attempts == 15

        asyncio.run(scenario())

    def test_sixteen_failures_reported_once(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            documents.inject_fault("count", ConnectionError("offline"), times=16)
            sleep = SleepRecorder()
            loader, _, sessions, ready, reporter = _loader(documents, sleep)
            published = []
            sessions.subscribe(published.append)

            loader.start()
            await loader.wait()

            assert ready.value is False
            assert loader.state is ReadinessState.FAILED
            assert documents.calls["count"] == 16
            assert len(sleep.delays) == 15
            assert len(reporter.reported) == 1
            assert isinstance(reporter.reported[0], StoreUnavailable)
            assert published == [[], []]  # replay, then the failure publication
            assert not loader.streaming

        asyncio.run(scenario())

    def test_permission_denied_not_retried(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            documents.inject_fault("count", Exception(PERMISSION_MESSAGE), times=None)
            sleep = SleepRecorder()
            loader, _, sessions, ready, reporter = _loader(documents, sleep)

            loader.start()
            await loader.wait()

            assert documents.calls["count"] == 1
            assert sleep.delays == []
            assert ready.value is False
            assert [type(e) for e in reporter.reported] == [PermissionDenied]

        asyncio.run(scenario())

    def test_restart_supersedes_previous_sequence(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            loader, store, sessions, ready, _ = _loader(documents)
            await store.create_session(SessionDraft("a", SecurityLevel.HIGH), "owner")

            first = loader.start()
            second = loader.start()
            await loader.wait()

            assert first.cancelled()
            assert not second.cancelled()
            assert documents.active_watch_count == 1

            loader.start()
            await loader.wait()
            assert documents.active_watch_count == 1

            await loader.stop()
            assert documents.active_watch_count == 0
            assert loader.state is ReadinessState.IDLE

        asyncio.run(scenario())

    def test_stream_error_degrades_to_empty(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            loader, store, sessions, _, reporter = _loader(documents)
            await store.create_session(SessionDraft("a", SecurityLevel.HIGH), "owner")

            loader.start()
            await loader.wait()
            assert len(sessions.value) == 1

            documents.emit_watch_error(store.collection, ConnectionError("dropped"))
            assert sessions.value == []
            assert isinstance(reporter.reported[-1], StoreUnavailable)

        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
