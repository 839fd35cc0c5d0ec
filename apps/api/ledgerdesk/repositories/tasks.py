"""Task persistence helpers."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.task import Task, TaskPriority, TaskStatus


async def create_task(
    session: AsyncSession,
    *,
    title: str,
    priority: TaskPriority,
    source: str,
    source_reference_id: str | None = None,
    description: str | None = None,
    client_id: str | None = None,
    source_metadata: dict[str, Any] | None = None,
) -> Task:
    """Persist a new open task and return it."""

    task = Task(
        id=str(uuid4()),
        title=title,
        description=description,
        status=TaskStatus.OPEN,
        priority=priority,
        source=source,
        source_reference_id=source_reference_id,
        client_id=client_id,
        source_metadata=source_metadata or {},
        created_at=datetime.utcnow(),
    )
    session.add(task)
    await session.flush()
    return task


async def list_titles_for_call(session: AsyncSession, call_id: str) -> set[str]:
    """Return titles of tasks already created from the call."""

    stmt = select(Task.title).where(Task.source_reference_id == call_id)
    result = await session.execute(stmt)
    return set(result.scalars().all())
