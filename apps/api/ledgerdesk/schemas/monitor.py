"""Schemas for the webhook monitor API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.webhook_log import WebhookStatus


class _MonitorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)


class WebhookLogSummary(_MonitorModel):
    id: str
    endpoint: str
    source: str | None = None
    event_id: str | None = None
    event_type: str | None = None
    status: WebhookStatus
    http_method: str
    ai_parsing_used: bool = False
    ai_confidence: int | None = None
    ai_summary: str | None = None
    error_message: str | None = None
    processing_time_ms: int | None = None
    result_call_id: str | None = None
    ip_address: str | None = None
    created_at: datetime


class WebhookLogDetail(WebhookLogSummary):
    headers: dict[str, Any] | None = None
    raw_payload: dict[str, Any] | None = None
    parsed_data: dict[str, Any] | None = None
    ai_category: str | None = None
    error_stack: str | None = None
    user_agent: str | None = None


class Pagination(_MonitorModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class WebhookStats(_MonitorModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    avg_processing_time_ms: int = 0
    ai_parsed_count: int = 0


class WebhookMonitorData(_MonitorModel):
    logs: list[WebhookLogSummary]
    pagination: Pagination
    stats: WebhookStats


class WebhookMonitorResponse(_MonitorModel):
    success: bool = True
    data: WebhookMonitorData
