"""Call repository helpers for webhook ingestion."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.call import Call, CallDirection, CallStatus


async def get_by_id(session: AsyncSession, call_id: str) -> Call | None:
    """Return a call record by identifier."""

    return await session.get(Call, call_id)


async def create_call(
    session: AsyncSession,
    *,
    external_call_id: str,
    direction: CallDirection,
    client_id: str | None = None,
    caller_phone: str | None = None,
    caller_name: str | None = None,
    duration_sec: int | None = None,
    transcript: str | None = None,
    summary: str | None = None,
    intent: str | None = None,
    sentiment: str | None = None,
    recording_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Call:
    """Insert a completed call and return it."""

    call = Call(
        id=str(uuid4()),
        external_call_id=external_call_id,
        client_id=client_id,
        caller_phone=caller_phone,
        caller_name=caller_name,
        status=CallStatus.COMPLETED,
        direction=direction,
        duration_sec=duration_sec,
        transcript=transcript,
        summary=summary,
        intent=intent,
        sentiment=sentiment,
        recording_url=recording_url,
        metadata_json=metadata or {},
        created_at=datetime.utcnow(),
    )
    session.add(call)
    await session.flush()
    return call


async def find_for_recording(
    session: AsyncSession,
    *,
    conversation_space_id: str | None,
    recording_ids: list[str],
) -> Call | None:
    """Locate a stored call by conversation space id or by a recording id in its metadata."""

    conditions = []
    if conversation_space_id:
        conditions.append(Call.external_call_id == f"goto-{conversation_space_id}")
        conditions.append(Call.metadata_json.contains({"conversationSpaceId": conversation_space_id}))
    for recording_id in recording_ids:
        conditions.append(Call.metadata_json.contains({"recordingIds": [recording_id]}))

    if not conditions:
        return None

    stmt = select(Call).where(or_(*conditions)).order_by(Call.created_at.desc()).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def apply_recording(
    call: Call,
    *,
    recording_url: str | None = None,
    transcript: str | None = None,
    recording_ids: list[str] | None = None,
) -> bool:
    """Patch recording data onto a call; return True when anything changed."""

    changed = False
    if recording_url and call.recording_url != recording_url:
        call.recording_url = recording_url
        changed = True
    if transcript and call.transcript != transcript:
        call.transcript = transcript
        changed = True

    if recording_ids:
        metadata = dict(call.metadata_json or {})
        known = list(metadata.get("recordingIds") or [])
        merged = list(dict.fromkeys([*known, *recording_ids]))
        if merged != known:
            metadata["recordingIds"] = merged
            call.metadata_json = metadata
            changed = True

    if changed:
        call.updated_at = datetime.utcnow()
    return changed


async def list_missing_transcripts(session: AsyncSession, *, limit: int) -> list[Call]:
    """Return recent calls that reference recordings but have no transcript."""

    stmt = (
        select(Call)
        .where(Call.transcript.is_(None), Call.metadata_json.has_key("recordingIds"))
        .order_by(Call.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def transcript_counts(session: AsyncSession) -> tuple[int, int]:
    """Return ``(total calls, calls with a transcript)``."""

    stmt = select(func.count(Call.id), func.count(Call.id).filter(Call.transcript.is_not(None)))
    total, with_transcript = (await session.execute(stmt)).one()
    return int(total or 0), int(with_transcript or 0)


def mark_transcript_retry(call: Call, *, succeeded: bool, transcript: str | None = None) -> None:
    """Record the outcome of a transcript retry in the call metadata."""

    if transcript:
        call.transcript = transcript
    metadata = dict(call.metadata_json or {})
    metadata["transcriptionRetrySuccess" if succeeded else "transcriptionRetryFailed"] = True
    metadata["transcriptionRetriedAt"] = datetime.now(timezone.utc).isoformat()
    call.metadata_json = metadata
    call.updated_at = datetime.utcnow()
