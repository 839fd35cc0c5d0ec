"""Schemas for call maintenance endpoints."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CallsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class TranscriptStats(_CallsModel):
    total_calls: int = 0
    with_transcripts: int = 0
    missing_transcripts: int = 0


class MissingTranscriptCall(_CallsModel):
    id: str
    caller_phone: str | None = None
    caller_name: str | None = None
    duration: int | None = None
    has_recording: bool = False
    recording_ids: list[str] = Field(default_factory=list)
    created_at: datetime


class MissingTranscriptsResponse(_CallsModel):
    success: bool = True
    stats: TranscriptStats
    calls_missing_transcripts: list[MissingTranscriptCall]


class TranscriptRetryRequest(_CallsModel):
    call_id: str | None = None
    retry_all: bool = False


class TranscriptRetryResult(_CallsModel):
    call_id: str
    success: bool
    error: str | None = None
    transcript_length: int | None = None


class TranscriptRetryResponse(_CallsModel):
    success: bool = True
    message: str
    results: list[TranscriptRetryResult]
