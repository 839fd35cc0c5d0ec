"""GoTo Connect notification payloads, normalized at the HTTP boundary.

GoTo delivers several payload shapes for the same concepts (caller info, recording
identifiers, analysis). The models here accept all of the shapes we have seen and
expose a single internal view so the handlers never have to probe raw dicts.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

SOURCE_CALL_REPORT = "call-events-report"
SOURCE_CALL_EVENTS = "call-events"
SOURCE_RECORDING = "recording"

TYPE_REPORT_SUMMARY = "REPORT_SUMMARY"
TYPE_RECORDING_READY = "RECORDING_READY"
TYPE_TRANSCRIPTION_READY = "TRANSCRIPTION_READY"
TYPE_ENDING = "ENDING"
TYPE_STARTING = "STARTING"


class _ProviderModel(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class GoToNotification(BaseModel):
    """Envelope of a GoTo notification: ``{data: {source, type, timestamp, content}}``."""

    source: str | None = None
    type: str | None = None
    timestamp: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)
    envelope: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GoToNotification":
        envelope = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return cls(
            source=_as_str(envelope.get("source")),
            type=_as_str(envelope.get("type")),
            timestamp=_as_str(envelope.get("timestamp")),
            content=_as_dict(envelope.get("content")),
            envelope=envelope,
        )


class RecordingRef(_ProviderModel):
    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "recordingId"))


class CallParty(_ProviderModel):
    """Caller or participant entry from a call report."""

    id: str | None = None
    number: str | None = None
    phone_number: str | None = None
    name: str | None = None
    originator: bool | None = False
    type: str | None = None
    recording_id: str | None = None
    recordings: list[RecordingRef] = Field(default_factory=list)

    @field_validator("recordings", mode="before")
    @classmethod
    def _drop_malformed(cls, value: object) -> object:
        if not isinstance(value, list):
            return []
        return [item if isinstance(item, dict) else {"id": item} for item in value if item is not None]

    @property
    def phone(self) -> str | None:
        return self.number or self.phone_number

    def recording_ids(self) -> list[str]:
        ids = [self.recording_id] if self.recording_id else []
        ids.extend(ref.id for ref in self.recordings if ref.id)
        return ids


class CallReport(_ProviderModel):
    """Call report assembled from the notification content and the fetched report."""

    conversation_space_id: str | None = None
    call_created: str | None = None
    call_ended: str | None = None
    direction: str | None = None
    account_key: str | None = None
    caller: CallParty | None = None
    participants: list[CallParty] = Field(default_factory=list)
    recording_id: str | None = None
    recording_ids: list[str] = Field(default_factory=list)
    ai_analysis: dict[str, Any] | None = None

    @field_validator("caller", mode="before")
    @classmethod
    def _caller_dict(cls, value: object) -> object:
        return value if isinstance(value, dict) else None

    @field_validator("participants", mode="before")
    @classmethod
    def _participant_dicts(cls, value: object) -> object:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("recording_ids", mode="before")
    @classmethod
    def _id_list(cls, value: object) -> object:
        if not isinstance(value, list):
            return []
        return [item for item in (_as_str(v) for v in value) if item]

    @field_validator("ai_analysis", mode="before")
    @classmethod
    def _analysis_dict(cls, value: object) -> object:
        return value if isinstance(value, dict) and value else None

    @classmethod
    def from_sources(cls, content: dict[str, Any], fetched: dict[str, Any] | None = None) -> "CallReport":
        """Merge notification content with the fetched report; fetched keys win."""

        merged = {**content, **{k: v for k, v in (fetched or {}).items() if v is not None}}
        try:
            return cls.model_validate(merged)
        except ValidationError:
            # Keep the identifiers even when optional sections are unusable.
            return cls(
                conversation_space_id=_as_str(merged.get("conversationSpaceId")),
                direction=_as_str(merged.get("direction")),
                account_key=_as_str(merged.get("accountKey")),
            )

    @property
    def is_outbound(self) -> bool:
        return (self.direction or "").upper() == "OUTBOUND"

    @property
    def originator(self) -> CallParty | None:
        return next((p for p in self.participants if p.originator), None)

    def duration_seconds(self) -> int | None:
        start = parse_timestamp(self.call_created)
        end = parse_timestamp(self.call_ended)
        if start is None or end is None:
            return None
        return max(0, round((end - start).total_seconds()))

    def caller_phone(self) -> str | None:
        if self.caller and self.caller.phone:
            return self.caller.phone
        originator = self.originator
        if originator:
            return originator.phone or originator.id
        return None

    def caller_name(self) -> str | None:
        if self.caller and self.caller.name:
            return self.caller.name
        originator = self.originator
        return originator.name if originator else None

    def candidate_recording_ids(self) -> list[str]:
        """Recording ids from every known shape, in order, without duplicates."""

        ids: list[str] = []
        if self.recording_id:
            ids.append(self.recording_id)
        ids.extend(self.recording_ids)
        if self.caller:
            ids.extend(self.caller.recording_ids())
        for participant in self.participants:
            ids.extend(participant.recording_ids())
        return list(dict.fromkeys(ids))


class CallEventDetails(BaseModel):
    """Fields of a real-time call event (``STARTING``/``ACTIVE``/``ENDING``)."""

    conversation_space_id: str | None = None
    direction: str | None = None
    caller_phone: str | None = None

    @classmethod
    def from_notification(cls, notification: GoToNotification) -> "CallEventDetails":
        content = notification.content
        state = _as_dict(content.get("state")) or _as_dict(notification.envelope.get("state"))
        metadata = _as_dict(content.get("metadata")) or _as_dict(notification.envelope.get("metadata"))
        return cls(
            conversation_space_id=_as_str(content.get("conversationSpaceId")),
            direction=_as_str(state.get("direction")),
            caller_phone=_as_str(state.get("originator")) or _as_str(metadata.get("callerNumber")),
        )

    @property
    def is_outbound(self) -> bool:
        return (self.direction or "").lower() == "outbound"


class RecordingNotice(BaseModel):
    """Recording or transcription availability notification."""

    conversation_space_id: str | None = None
    recording_ids: list[str] = Field(default_factory=list)
    transcript_id: str | None = None
    recording_url: str | None = None
    transcript: str | None = None

    @classmethod
    def from_notification(cls, notification: GoToNotification) -> "RecordingNotice":
        content = notification.content
        recording = _as_dict(content.get("recording"))
        transcription = _as_dict(content.get("transcription"))

        ids = [
            _as_str(content.get("recordingId")),
            _as_str(recording.get("id")),
        ]
        raw_ids = content.get("recordingIds")
        if isinstance(raw_ids, list):
            ids.extend(_as_str(item) for item in raw_ids)

        transcript_text = _as_str(content.get("transcript")) or _as_str(transcription.get("text"))
        return cls(
            conversation_space_id=_as_str(content.get("conversationSpaceId")),
            recording_ids=list(dict.fromkeys(item for item in ids if item)),
            transcript_id=_as_str(content.get("transcriptId")) or _as_str(transcription.get("id")),
            recording_url=_as_str(content.get("recordingUrl")) or _as_str(recording.get("url")),
            transcript=transcript_text,
        )


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
