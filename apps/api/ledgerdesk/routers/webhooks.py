"""Webhook ingestion and monitoring endpoints."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.webhook_log import WebhookStatus
from ..schemas import monitor as monitor_schema
from ..services import monitor as monitor_service
from ..services import webhooks as webhook_service

router = APIRouter()


@router.post("/goto")
async def receive_goto_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> JSONResponse:
    """Ingest a GoTo Connect notification."""

    raw_body = await request.body()
    result = await webhook_service.handle_goto_webhook(
        session,
        raw_body=raw_body,
        headers=request.headers,
        remote_addr=request.client.host if request.client else None,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/goto")
async def describe_goto_webhook() -> dict[str, object]:
    """Health and usage description for the GoTo endpoint."""

    return {
        "status": "healthy",
        "endpoint": webhook_service.ENDPOINT,
        "description": "GoTo Connect webhook receiver for call reports, call events, and recordings",
        "supportedMethods": ["POST"],
        "usage": {
            "signatureHeader": "X-Webhook-Signature",
            "signature": "hex HMAC-SHA256 of the raw body, optionally prefixed with sha256=",
            "events": [
                "call-events-report/REPORT_SUMMARY",
                "call-events/STARTING|ACTIVE|ENDING",
                "recording/RECORDING_READY|TRANSCRIPTION_READY",
            ],
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/monitor", response_model=monitor_schema.WebhookMonitorResponse, response_model_by_alias=True)
async def monitor_webhooks(
    limit: int = Query(default=monitor_service.DEFAULT_LIMIT, ge=1),
    offset: int = Query(default=0, ge=0),
    status: WebhookStatus | None = None,
    endpoint: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> monitor_schema.WebhookMonitorResponse:
    """List recent webhook deliveries with stats."""

    return await monitor_service.list_webhook_logs(
        session,
        limit=limit,
        offset=offset,
        status_filter=status,
        endpoint=endpoint,
    )


@router.get("/monitor/{log_id}", response_model=monitor_schema.WebhookLogDetail, response_model_by_alias=True)
async def get_webhook_log(
    log_id: str,
    session: AsyncSession = Depends(get_session),
) -> monitor_schema.WebhookLogDetail:
    """Return a single delivery including headers and payload."""

    return await monitor_service.get_webhook_log(session, log_id)
