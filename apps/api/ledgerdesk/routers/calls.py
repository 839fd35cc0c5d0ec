"""Call maintenance endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import calls as calls_schema
from ..services import transcripts as transcripts_service

router = APIRouter()


@router.get(
    "/retry-transcripts",
    response_model=calls_schema.MissingTranscriptsResponse,
    response_model_by_alias=True,
)
async def list_missing_transcripts(
    session: AsyncSession = Depends(get_session),
) -> calls_schema.MissingTranscriptsResponse:
    """List calls whose recordings never produced a transcript."""

    return await transcripts_service.list_missing_transcripts(session)


@router.post(
    "/retry-transcripts",
    response_model=calls_schema.TranscriptRetryResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def retry_transcripts(
    payload: calls_schema.TranscriptRetryRequest,
    session: AsyncSession = Depends(get_session),
) -> calls_schema.TranscriptRetryResponse:
    """Fetch transcripts again for one call or a capped batch."""

    return await transcripts_service.retry_transcripts(
        session,
        call_id=payload.call_id,
        retry_all=payload.retry_all,
    )
