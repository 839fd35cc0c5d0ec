"""Webhook delivery log persistence and queries."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.webhook_log import WebhookLog, WebhookStatus


async def create_log(
    session: AsyncSession,
    *,
    endpoint: str,
    source: str,
    http_method: str = "POST",
    headers: dict[str, Any] | None = None,
    raw_payload: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    status: WebhookStatus = WebhookStatus.RECEIVED,
    error_message: str | None = None,
    processing_time_ms: int | None = None,
) -> str:
    """Insert a delivery log row and return its identifier."""

    now = datetime.utcnow()
    log = WebhookLog(
        id=str(uuid4()),
        endpoint=endpoint,
        source=source,
        status=status,
        http_method=http_method,
        headers=headers,
        raw_payload=raw_payload,
        ip_address=ip_address,
        user_agent=user_agent,
        error_message=error_message,
        processing_time_ms=processing_time_ms,
        created_at=now,
        updated_at=now,
    )
    session.add(log)
    await session.flush()
    return log.id


async def update_log(session: AsyncSession, log_id: str, **fields: Any) -> None:
    """Update columns of an existing log row."""

    fields["updated_at"] = datetime.utcnow()
    stmt = update(WebhookLog).where(WebhookLog.id == log_id).values(**fields)
    await session.execute(stmt)


async def has_processed(
    session: AsyncSession,
    *,
    event_source: str | None,
    event_type: str | None,
    event_id: str,
) -> bool:
    """Return True if an identical event was already stored by any process."""

    stmt: Select[tuple[int]] = select(func.count(WebhookLog.id)).where(
        WebhookLog.event_id == event_id,
        WebhookLog.status == WebhookStatus.STORED,
    )
    stmt = stmt.where(
        WebhookLog.event_source.is_(None) if event_source is None else WebhookLog.event_source == event_source
    )
    stmt = stmt.where(
        WebhookLog.event_type.is_(None) if event_type is None else WebhookLog.event_type == event_type
    )
    count = await session.execute(stmt)
    return count.scalar_one() > 0


async def get_by_id(session: AsyncSession, log_id: str) -> WebhookLog | None:
    """Return a log row by identifier."""

    return await session.get(WebhookLog, log_id)


async def list_logs(
    session: AsyncSession,
    *,
    limit: int,
    offset: int,
    status: WebhookStatus | None = None,
    endpoint: str | None = None,
) -> tuple[list[WebhookLog], int]:
    """Return a page of logs, newest first, and the filtered total."""

    filters = []
    if status is not None:
        filters.append(WebhookLog.status == status)
    if endpoint:
        filters.append(WebhookLog.endpoint == endpoint)

    stmt = (
        select(WebhookLog)
        .where(*filters)
        .order_by(WebhookLog.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    logs = list(result.scalars().all())

    total = await session.execute(select(func.count(WebhookLog.id)).where(*filters))
    return logs, int(total.scalar_one())


async def aggregate_stats(session: AsyncSession) -> dict[str, Any]:
    """Return counts per status, average processing time, and AI usage."""

    by_status_stmt = select(WebhookLog.status, func.count(WebhookLog.id)).group_by(WebhookLog.status)
    by_status_rows = (await session.execute(by_status_stmt)).all()

    totals_stmt = select(
        func.count(WebhookLog.id),
        func.avg(WebhookLog.processing_time_ms),
        func.count(WebhookLog.id).filter(WebhookLog.ai_parsing_used.is_(True)),
    )
    total, avg_ms, ai_count = (await session.execute(totals_stmt)).one()

    by_status = {status.value: 0 for status in WebhookStatus}
    for status, count in by_status_rows:
        key = status.value if isinstance(status, WebhookStatus) else str(status)
        by_status[key] = int(count)

    return {
        "total": int(total or 0),
        "by_status": by_status,
        "avg_processing_time_ms": round(float(avg_ms or 0)),
        "ai_parsed_count": int(ai_count or 0),
    }
