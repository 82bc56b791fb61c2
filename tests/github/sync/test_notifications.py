"""Tests for sync notifiers."""

from datetime import UTC, datetime

import pytest

from devmetrics.github.sync import (
    LoggingNotifier,
    NullNotifier,
    QueueNotifier,
    SafeNotifier,
    SyncEvent,
    SyncNotifier,
    SyncResult,
)
from tests.conftest import NOW


@pytest.fixture
def result() -> SyncResult:
    return SyncResult(account_id="acme", started_at=NOW, completed_at=NOW)


class TestQueueNotifier:
    async def test_fan_out(self, result):
        notifier = QueueNotifier()
        first, second = notifier.subscribe(), notifier.subscribe()

        await notifier.sync_started("acme")
        await notifier.sync_completed("acme", result)

        for queue in (first, second):
            started = queue.get_nowait()
            completed = queue.get_nowait()
            assert (started.type, started.account_id) == ("sync_started", "acme")
            assert completed.type == "sync_completed"
            assert completed.payload["account_id"] == "acme"
            assert completed.sent_at.tzinfo is UTC

    async def test_full_queue_drops_for_that_subscriber_only(self):
        notifier = QueueNotifier(maxsize=1)
        slow, fast = notifier.subscribe(), notifier.subscribe()

        await notifier.sync_started("acme")
        fast.get_nowait()
        await notifier.metrics_updated("acme")

        assert slow.qsize() == 1
        assert slow.get_nowait().type == "sync_started"
        assert fast.get_nowait().type == "metrics_updated"

    async def test_unsubscribe(self):
        notifier = QueueNotifier()
        queue = notifier.subscribe()

        notifier.unsubscribe(queue)
        await notifier.sync_started("acme")

        assert notifier.subscriber_count == 0
        assert queue.empty()


class TestSafeNotifier:
    async def test_swallows_delivery_failure(self, result):
        class Broken:
            async def sync_started(self, account_id):
                raise ConnectionError("refused")

            async def sync_completed(self, account_id, result):
                raise ValueError("bad payload")

            async def metrics_updated(self, account_id):
                raise RuntimeError("boom")

        notifier = SafeNotifier(Broken())

        await notifier.sync_started("acme")
        await notifier.sync_completed("acme", result)
        await notifier.metrics_updated("acme")

    async def test_delegates(self, result):
        inner = QueueNotifier()
        queue = inner.subscribe()

        await SafeNotifier(inner).sync_completed("acme", result)

        assert queue.get_nowait().type == "sync_completed"

    async def test_defaults_to_null(self):
        await SafeNotifier().sync_started("acme")


@pytest.mark.parametrize("notifier_class", [NullNotifier, LoggingNotifier, QueueNotifier])
def test_implements_protocol(notifier_class):
    assert isinstance(notifier_class(), SyncNotifier)


async def test_logging_notifier(result):
    notifier = LoggingNotifier()

    await notifier.sync_started("acme")
    await notifier.sync_completed("acme", result)
    await notifier.metrics_updated("acme")


def test_event_defaults():
    before = datetime.now(UTC)

    event = SyncEvent("sync_started", "acme")

    assert event.payload == {}
    assert event.sent_at >= before
