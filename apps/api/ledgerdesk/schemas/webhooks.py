"""Response contracts for webhook endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WebhookAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    success: bool = True
    message: str
    record_id: str | None = None
    event_id: str | None = None
    event_type: str | None = None
    duplicate: bool | None = None
    processing_time_ms: int | None = None

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class WebhookError(BaseModel):
    error: str
    details: str | None = None

    def to_body(self) -> dict:
        return self.model_dump(exclude_none=True)
