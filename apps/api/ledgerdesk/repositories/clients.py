"""Client lookup helpers."""
from __future__ import annotations

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.client import Client


def _digits(column):
    return func.regexp_replace(func.coalesce(column, ""), r"\D", "", "g")


async def find_by_phone_digits(session: AsyncSession, *, digits: str, suffix: str) -> Client | None:
    """Return the oldest active client whose phone or alternate phone matches.

    A stored number matches when its digits equal ``digits`` or end with ``suffix``.
    """

    conditions = []
    for column in (Client.phone, Client.alternate_phone):
        stored = _digits(column)
        conditions.append(stored == digits)
        conditions.append(stored.like(f"%{suffix}"))

    stmt: Select[tuple[Client]] = (
        select(Client)
        .where(Client.is_active.is_(True), or_(*conditions))
        .order_by(Client.created_at.asc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
