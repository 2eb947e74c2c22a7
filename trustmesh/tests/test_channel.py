"""
Unit Tests: Publish/Subscribe Channels
"""

import asyncio

from trustmesh.streams.channel import BehaviorSubject, Subject


class TestSubject:
    """Tests for the multicast channel."""

    def test_delivers_to_all_observers(self):
        subject = Subject()
        a, b = [], []
        subject.subscribe(a.append)
        subject.subscribe(b.append)

        subject.publish(1)

        assert a == [1] and b == [1]
        assert subject.observer_count == 2

    def test_no_replay(self):
        subject = Subject()
        subject.publish("early")
        seen = []
        subject.subscribe(seen.append)
        assert seen == []

    def test_unsubscribe_is_idempotent(self):
        subject = Subject()
        seen = []
        subscription = subject.subscribe(seen.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        subject.publish(1)

        assert seen == []
        assert subscription.closed
        assert subject.observer_count == 0

    def test_raising_observer_is_skipped(self):
        subject = Subject()
        seen = []

        def broken(_value):
            raise RuntimeError("observer bug")

        subject.subscribe(broken)
        subject.subscribe(seen.append)
        subject.publish("x")

        assert seen == ["x"]

    def test_close_stops_delivery(self):
        subject = Subject()
        seen = []
        subject.subscribe(seen.append)
        subject.close()
        subject.publish(1)

        assert seen == []
        assert subject.closed

    def test_first_matching_value(self):
        async def scenario():
            subject = Subject()
            future = subject.first(lambda v: v > 1)
            subject.publish(1)
            subject.publish(2)
            subject.publish(3)

            assert await future == 2
            assert subject.observer_count == 0

        asyncio.run(scenario())


class TestBehaviorSubject:
    """Tests for the latest-value channel."""

    def test_replays_latest_value(self):
        subject = BehaviorSubject(False)
        subject.publish(True)
        seen = []
        subject.subscribe(seen.append)

        assert seen == [True]
        assert subject.value is True

    def test_first_resolves_from_replay(self):
        async def scenario():
            ready = BehaviorSubject(True)
            assert await ready.first(bool) is True
            assert ready.observer_count == 0

        asyncio.run(scenario())

    def test_closed_subject_keeps_last_value(self):
        subject = BehaviorSubject([])
        subject.publish([1])
        subject.close()
        subject.publish([2])

        assert subject.value == [1]
