"""Repository for cached Metric rows."""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import Metric, MetricType, utc_now

from .base import BaseRepository


class MetricRepository(BaseRepository[Metric]):
    """Repository for Metric entities.

    At most one row per (developer_id, metric_type); writes overwrite.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Metric)

    async def get_current(self, developer_id: int, metric_type: MetricType) -> Metric | None:
        """Get the current value of one metric for a developer."""
        rows = await self.find(
            Metric.developer_id == developer_id,
            Metric.metric_type == metric_type,
        )
        return rows[0] if rows else None

    async def for_developer(self, developer_id: int) -> dict[MetricType, Metric]:
        """All current metrics for a developer, keyed by type."""
        rows = await self.find(Metric.developer_id == developer_id)
        return {m.metric_type: m for m in rows}

    async def upsert(
        self,
        developer_id: int,
        metric_type: MetricType,
        value: float,
        *,
        metadata: dict[str, Any] | None = None,
        repository_id: int | None = None,
        timestamp: datetime | None = None,
    ) -> tuple[Metric, bool]:
        """Create or overwrite the (developer, type) metric.

        Args:
            developer_id: Developer the metric belongs to
            metric_type: Kind of metric
            value: New value
            metadata: Free-form metadata (e.g. the window it covers)
            repository_id: Optional repository scope
            timestamp: When it was computed (defaults to now)

        Returns:
            Tuple of (metric, created)
        """
        ts = timestamp or utc_now()
        existing = await self.get_current(developer_id, metric_type)
        if existing is not None:
            self.update(
                existing,
                value=value,
                timestamp=ts,
                metadata_json=dict(metadata or {}),
                repository_id=repository_id,
            )
            return existing, False

        metric = Metric(
            developer_id=developer_id,
            repository_id=repository_id,
            metric_type=metric_type,
            value=value,
            timestamp=ts,
            metadata_json=dict(metadata or {}),
        )
        self.add(metric)
        return metric, True
