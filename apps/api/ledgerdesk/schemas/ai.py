"""Structured result of AI webhook parsing."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WebhookSource = Literal["phone_call", "web_form", "email", "sms", "chat", "unknown"]
Sentiment = Literal["positive", "neutral", "negative", "unknown"]
Urgency = Literal["low", "medium", "high", "urgent"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")


class ParsedContact(_CamelModel):
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None
    company: str | None = None


class ParsedCall(_CamelModel):
    direction: Literal["inbound", "outbound"] | None = None
    duration: int | None = Field(default=None, ge=0)
    transcript: str | None = None
    summary: str | None = None
    recording_url: str | None = None
    started_at: str | None = None
    ended_at: str | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def _lower_direction(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in {"inbound", "outbound"} else None
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _round_duration(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0, round(value))
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None


class ClientMatchHint(_CamelModel):
    possible_match: bool = False
    search_terms: list[str] = Field(default_factory=list)


class CallAnalysis(_CamelModel):
    category: str = "other"
    sentiment: Sentiment = "unknown"
    urgency: Urgency = "medium"
    summary: str = "Unable to generate summary"
    key_points: list[str] = Field(default_factory=list)
    suggested_actions: list[str] = Field(default_factory=list)
    client_match: ClientMatchHint | None = None

    @field_validator("sentiment", mode="before")
    @classmethod
    def _known_sentiment(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"positive", "neutral", "negative"}:
            return value.strip().lower()
        return "unknown"

    @field_validator("urgency", mode="before")
    @classmethod
    def _known_urgency(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"low", "medium", "high", "urgent"}:
            return value.strip().lower()
        return "medium"

    @field_validator("key_points", "suggested_actions", mode="before")
    @classmethod
    def _string_list(cls, value: object) -> object:
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if item is not None and str(item).strip()]


class ParsedWebhookData(_CamelModel):
    """What the AI parser extracted from a webhook payload."""

    source: WebhookSource = "unknown"
    source_provider: str | None = None
    contact: ParsedContact = Field(default_factory=ParsedContact)
    call: ParsedCall | None = None
    analysis: CallAnalysis = Field(default_factory=CallAnalysis)
    confidence: float = Field(default=0.5, ge=0, le=1)
    parsed_at: str | None = None

    @field_validator("source", mode="before")
    @classmethod
    def _known_source(cls, value: object) -> object:
        allowed = {"phone_call", "web_form", "email", "sms", "chat"}
        if isinstance(value, str) and value.strip().lower() in allowed:
            return value.strip().lower()
        return "unknown"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(1.0, max(0.0, float(value))) or 0.5
        return 0.5

    def as_log_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
