"""Recover transcripts for stored calls whose recordings were not transcribed in time."""
from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.call import Call
from ..repositories import calls as calls_repo
from ..schemas import calls as schemas
from . import goto

logger = logging.getLogger(__name__)

DIAGNOSTIC_LIMIT = 50
MAX_BATCH = 20
NO_RECORDINGS = "No recording IDs found"
NOT_TRANSCRIBED = "Could not fetch transcript from any recording ID - transcription may not be enabled in GoTo"


def _recording_ids(call: Call) -> list[str]:
    ids = (call.metadata_json or {}).get("recordingIds")
    if not isinstance(ids, list):
        return []
    return [str(item) for item in ids if item]


async def list_missing_transcripts(session: AsyncSession) -> schemas.MissingTranscriptsResponse:
    """Return calls that have recording ids but no transcript, with overall counts."""

    calls = await calls_repo.list_missing_transcripts(session, limit=DIAGNOSTIC_LIMIT)
    total, with_transcripts = await calls_repo.transcript_counts(session)

    return schemas.MissingTranscriptsResponse(
        stats=schemas.TranscriptStats(
            total_calls=total,
            with_transcripts=with_transcripts,
            missing_transcripts=len(calls),
        ),
        calls_missing_transcripts=[
            schemas.MissingTranscriptCall(
                id=call.id,
                caller_phone=call.caller_phone,
                caller_name=call.caller_name,
                duration=call.duration_sec,
                has_recording=bool(call.recording_url),
                recording_ids=_recording_ids(call),
                created_at=call.created_at,
            )
            for call in calls
        ],
    )


async def _retry_call(call: Call) -> schemas.TranscriptRetryResult:
    recording_ids = _recording_ids(call)
    if not recording_ids:
        return schemas.TranscriptRetryResult(call_id=call.id, success=False, error=NO_RECORDINGS)

    for recording_id in recording_ids:
        try:
            transcript = await goto.get_transcription(recording_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Transcript retry failed for recording %s: %s", recording_id, exc)
            continue
        if transcript:
            calls_repo.mark_transcript_retry(call, succeeded=True, transcript=transcript)
            return schemas.TranscriptRetryResult(
                call_id=call.id,
                success=True,
                transcript_length=len(transcript),
            )

    calls_repo.mark_transcript_retry(call, succeeded=False)
    return schemas.TranscriptRetryResult(call_id=call.id, success=False, error=NOT_TRANSCRIBED)


async def retry_transcripts(
    session: AsyncSession,
    *,
    call_id: str | None = None,
    retry_all: bool = False,
) -> schemas.TranscriptRetryResponse:
    """Fetch transcripts again for one call, or for up to ``MAX_BATCH`` calls missing them.

    Each recording id is tried in order and the first non-empty transcript wins.
    Calls with no usable transcript are flagged in their metadata so the attempt
    is visible later.
    """

    results: list[schemas.TranscriptRetryResult] = []
    async with session.begin():
        if call_id:
            call = await calls_repo.get_by_id(session, call_id)
            if call is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Call not found")
            targets = [call]
        elif retry_all:
            targets = await calls_repo.list_missing_transcripts(session, limit=MAX_BATCH)
        else:
            targets = []

        for call in targets:
            result = await _retry_call(call)
            session.add(call)
            results.append(result)

    succeeded = sum(1 for result in results if result.success)
    failed = len(results) - succeeded
    logger.info("Transcript retry processed %d calls: %d succeeded, %d failed", len(results), succeeded, failed)
    return schemas.TranscriptRetryResponse(
        message=f"Processed {len(results)} calls: {succeeded} succeeded, {failed} failed",
        results=results,
    )
