"""Activity log persistence."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import ActivityLog, ActivityType


async def log_activity(
    session: AsyncSession,
    *,
    type: ActivityType,
    description: str,
    call_id: str | None = None,
    client_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ActivityLog:
    """Append an activity entry."""

    entry = ActivityLog(
        id=str(uuid4()),
        type=type,
        description=description,
        call_id=call_id,
        client_id=client_id,
        metadata_json=metadata or {},
        created_at=datetime.utcnow(),
    )
    session.add(entry)
    await session.flush()
    return entry
