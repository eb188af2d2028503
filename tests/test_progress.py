import asyncio

import pytest

from receiptsync.models import Phase, ProgressSnapshot
from receiptsync.progress import ProgressPublisher, progress_message


class TestProgressMessage:
    def test_snapshot(self):
        snapshot = ProgressSnapshot(
            phase=Phase.FETCHING, current=1, total=4, message="Fetching"
        )
        assert progress_message(snapshot) == {
            "type": "progress",
            "progress": {
                "phase": "fetching",
                "current": 1,
                "total": 4,
                "message": "Fetching",
            },
        }

    def test_listing_omits_counts(self):
        message = progress_message(ProgressSnapshot(phase=Phase.LISTING))
        assert message["progress"] == {"phase": "listing", "message": ""}

    def test_cleared(self):
        assert progress_message(None) == {"type": "progress", "progress": None}


class TestPublisher:
    def test_fan_out(self):
        publisher = ProgressPublisher()
        first, second = [], []
        publisher.subscribe(first.append)
        publisher.subscribe(second.append)

        publisher.publish(None)
        assert len(first) == len(second) == 1

    def test_unsubscribe(self):
        publisher = ProgressPublisher()
        seen = []
        unsubscribe = publisher.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        publisher.publish(None)
        assert seen == []
        assert publisher.observer_count == 0

    def test_no_observers(self):
        ProgressPublisher().publish(ProgressSnapshot(phase=Phase.IMPORTING))

    def test_failing_observer_is_isolated(self):
        publisher = ProgressPublisher()
        seen = []

        def broken(message):
            raise RuntimeError("popup closed")

        publisher.subscribe(broken)
        publisher.subscribe(seen.append)

        publisher.publish(None)
        assert len(seen) == 1


@pytest.mark.asyncio
class TestAsyncObservers:
    async def test_coroutine_observer(self):
        publisher = ProgressPublisher()
        seen = []

        async def observer(message):
            seen.append(message)

        publisher.subscribe(observer)
        publisher.publish(ProgressSnapshot(phase=Phase.LISTING))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert seen[0]["progress"]["phase"] == "listing"

    async def test_failing_coroutine_observer(self):
        publisher = ProgressPublisher()

        async def observer(message):
            raise ConnectionResetError("gone")

        publisher.subscribe(observer)
        publisher.publish(None)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
