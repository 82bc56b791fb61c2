"""Best-effort sync notifications.

The orchestrator announces "sync started", "sync completed" and "metrics
updated" through a ``SyncNotifier``. Delivery is fire-and-forget: it always
goes through ``SafeNotifier``, which logs and drops delivery failures so a
notification fault is never mistaken for a sync fault.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from devmetrics.logging import get_logger

if TYPE_CHECKING:
    from .results import SyncResult

logger = get_logger(__name__)


@runtime_checkable
class SyncNotifier(Protocol):
    """Receiver of sync lifecycle events."""

    async def sync_started(self, account_id: str) -> None: ...

    async def sync_completed(self, account_id: str, result: SyncResult) -> None: ...

    async def metrics_updated(self, account_id: str) -> None: ...


class NullNotifier:
    """Notifier that does nothing."""

    async def sync_started(self, account_id: str) -> None:
        return None

    async def sync_completed(self, account_id: str, result: SyncResult) -> None:
        return None

    async def metrics_updated(self, account_id: str) -> None:
        return None


class LoggingNotifier:
    """Notifier that writes each event to the log."""

    async def sync_started(self, account_id: str) -> None:
        logger.info("Sync started for {}", account_id)

    async def sync_completed(self, account_id: str, result: SyncResult) -> None:
        logger.info(
            "Sync completed for {}: success={}, commits={}, pull_requests={}",
            account_id,
            result.success,
            result.commits_synced,
            result.pull_requests_synced,
        )

    async def metrics_updated(self, account_id: str) -> None:
        logger.info("Metrics updated for {}", account_id)


@dataclass(frozen=True)
class SyncEvent:
    """Event delivered to QueueNotifier subscribers."""

    type: str
    account_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class QueueNotifier:
    """In-process fan-out of events to subscriber queues.

    Each subscriber gets a bounded ``asyncio.Queue``. A full queue drops the
    event for that subscriber only.

    Usage:
        notifier = QueueNotifier()
        queue = notifier.subscribe()
        ...
        event = await queue.get()
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[SyncEvent]] = set()

    def subscribe(self) -> asyncio.Queue[SyncEvent]:
        queue: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[SyncEvent]) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, event: SyncEvent) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping {} event for a slow subscriber", event.type)

    async def sync_started(self, account_id: str) -> None:
        self._publish(SyncEvent("sync_started", account_id))

    async def sync_completed(self, account_id: str, result: SyncResult) -> None:
        self._publish(SyncEvent("sync_completed", account_id, result.to_dict()["summary"]))

    async def metrics_updated(self, account_id: str) -> None:
        self._publish(SyncEvent("metrics_updated", account_id))


class SafeNotifier:
    """Wraps any notifier so delivery can never fail the caller."""

    def __init__(self, inner: SyncNotifier | None = None) -> None:
        self._inner: SyncNotifier = inner or NullNotifier()

    async def _deliver(self, event: str, call: Callable[[], Awaitable[None]]) -> None:
        try:
            await call()
        except Exception as e:
            logger.warning("Notification {} failed: {}", event, e)

    async def sync_started(self, account_id: str) -> None:
        await self._deliver("sync_started", lambda: self._inner.sync_started(account_id))

    async def sync_completed(self, account_id: str, result: SyncResult) -> None:
        await self._deliver(
            "sync_completed", lambda: self._inner.sync_completed(account_id, result)
        )

    async def metrics_updated(self, account_id: str) -> None:
        await self._deliver("metrics_updated", lambda: self._inner.metrics_updated(account_id))
