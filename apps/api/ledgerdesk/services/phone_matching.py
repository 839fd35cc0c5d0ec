"""Match caller phone numbers to client records."""
from __future__ import annotations

import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.client import Client
from ..repositories import clients as clients_repo

logger = logging.getLogger(__name__)

MIN_DIGITS = 7
SUFFIX_DIGITS = 10
_NON_DIGITS = re.compile(r"\D")


def normalize_digits(phone: str | None) -> str:
    """Strip everything but digits."""

    return _NON_DIGITS.sub("", phone or "")


async def match_client_by_phone(session: AsyncSession, phone: str | None) -> Client | None:
    """Return the client whose phone matches, tolerating formatting and country codes.

    Lookup errors are logged and reported as no match. The query runs in a savepoint
    so a failure does not abort the caller's transaction.
    """

    digits = normalize_digits(phone)
    if len(digits) < MIN_DIGITS:
        return None

    suffix = digits[-SUFFIX_DIGITS:]
    try:
        async with session.begin_nested():
            client = await clients_repo.find_by_phone_digits(session, digits=digits, suffix=suffix)
    except Exception:  # noqa: BLE001 - matching is best-effort
        logger.exception("Client phone lookup failed for %s", phone)
        return None

    if client is not None:
        logger.info("Matched caller %s to client %s", phone, client.id)
    return client
