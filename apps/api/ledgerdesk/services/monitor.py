"""Read-side queries over webhook delivery logs."""
from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.webhook_log import WebhookStatus
from ..repositories import webhook_logs as webhook_logs_repo
from ..schemas import monitor as schemas

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


async def list_webhook_logs(
    session: AsyncSession,
    *,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    status_filter: WebhookStatus | None = None,
    endpoint: str | None = None,
) -> schemas.WebhookMonitorResponse:
    """Return a page of recent deliveries with aggregate stats."""

    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)

    logs, total = await webhook_logs_repo.list_logs(
        session,
        limit=limit,
        offset=offset,
        status=status_filter,
        endpoint=endpoint,
    )
    stats = await webhook_logs_repo.aggregate_stats(session)

    return schemas.WebhookMonitorResponse(
        data=schemas.WebhookMonitorData(
            logs=[schemas.WebhookLogSummary.model_validate(log) for log in logs],
            pagination=schemas.Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(logs) < total,
            ),
            stats=schemas.WebhookStats(**stats),
        )
    )


async def get_webhook_log(session: AsyncSession, log_id: str) -> schemas.WebhookLogDetail:
    """Return one delivery with its full payload."""

    log = await webhook_logs_repo.get_by_id(session, log_id)
    if log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook log not found")
    return schemas.WebhookLogDetail.model_validate(log)
