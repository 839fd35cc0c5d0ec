"""In-process replay protection for webhook deliveries."""
from __future__ import annotations

import secrets
import time
from collections import OrderedDict
from typing import Any, NamedTuple

from ..core.config import settings


class EventKey(NamedTuple):
    source: str | None
    type: str | None
    event_id: str


def derive_event_id(payload: dict[str, Any], content: dict[str, Any]) -> str:
    """Pick the provider identifier for a delivery.

    Priority: conversation space id, call id, top-level id. Deliveries carrying none
    of these get a random id and are therefore always treated as new.
    """

    for candidate in (content.get("conversationSpaceId"), content.get("callId"), payload.get("id")):
        if isinstance(candidate, (str, int)) and not isinstance(candidate, bool) and str(candidate).strip():
            return str(candidate).strip()
    return f"goto-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class ProcessedEventGuard:
    """Bounded insertion-ordered set of processed event keys.

    Once ``capacity`` is exceeded the oldest key is evicted. State lives only as long
    as the process and is not shared between instances.
    """

    def __init__(self, capacity: int = 10_000) -> None:
        self._capacity = capacity
        self._keys: OrderedDict[EventKey, None] = OrderedDict()

    def seen(self, key: EventKey) -> bool:
        return key in self._keys

    def remember(self, key: EventKey) -> None:
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            self._keys.popitem(last=False)

    def forget(self, key: EventKey) -> None:
        self._keys.pop(key, None)

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)


processed_events = ProcessedEventGuard(capacity=settings.webhook_dedupe_capacity)
