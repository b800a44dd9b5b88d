"""Outbound API usage recording and aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.api_usage import ApiUsage


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    """Terminal outcome of one outbound call."""
    tenant_id: str
    provider: str
    endpoint: str
    method: str
    status: str  # success|error
    duration_ms: int
    units: int = 1
    status_code: Optional[int] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class UsageSink(Protocol):
    """Receives exactly one record per terminal outcome.

    Implementations must not raise into the caller; write failures are logged.
    """

    async def record(self, record: UsageRecord) -> None:
        ...


class DatabaseUsageSink:
    """Writes usage records to the ``api_usage`` table in their own session."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def record(self, record: UsageRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(ApiUsage(
                    tenant_id=record.tenant_id,
                    provider=record.provider,
                    endpoint=record.endpoint,
                    method=record.method,
                    units=record.units,
                    status=record.status,
                    status_code=record.status_code,
                    duration_ms=record.duration_ms,
                    error=record.error,
                    created_at=record.created_at,
                ))
                await session.commit()
        except Exception:
            # Usage logging never fails the call it meters
            logger.exception(
                "Failed to log API usage for %s %s",
                record.method,
                record.endpoint,
                extra={"tenant_id": record.tenant_id, "provider": record.provider},
            )


class InMemoryUsageSink:
    """Keeps usage records in memory (tests and local development)."""

    def __init__(self):
        self.records: List[UsageRecord] = []

    async def record(self, record: UsageRecord) -> None:
        self.records.append(record)


async def get_usage_summary(
    db: AsyncSession,
    tenant_id: str,
    *,
    provider: Optional[str] = None,
    since: Optional[datetime] = None
) -> dict:
    """Aggregate usage totals for a tenant."""
    query = select(
        func.count(ApiUsage.id).label("total_calls"),
        func.coalesce(func.sum(case((ApiUsage.status == "success", 1), else_=0)), 0).label("success_calls"),
        func.coalesce(func.sum(case((ApiUsage.status == "error", 1), else_=0)), 0).label("error_calls"),
        func.coalesce(func.sum(ApiUsage.units), 0).label("total_units"),
        func.avg(ApiUsage.duration_ms).label("avg_duration_ms"),
    ).where(ApiUsage.tenant_id == tenant_id)

    if provider:
        query = query.where(ApiUsage.provider == provider)
    if since:
        query = query.where(ApiUsage.created_at >= since)

    row = (await db.execute(query)).one()
    return {
        "total_calls": int(row.total_calls or 0),
        "success_calls": int(row.success_calls or 0),
        "error_calls": int(row.error_calls or 0),
        "total_units": int(row.total_units or 0),
        "avg_duration_ms": float(row.avg_duration_ms) if row.avg_duration_ms is not None else None,
    }
