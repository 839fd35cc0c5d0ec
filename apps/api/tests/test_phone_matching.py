"""Tests for caller phone to client matching."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ledgerdesk.repositories import clients as clients_repo
from ledgerdesk.services import phone_matching


class DummySession:
    """Session stub supporting savepoints."""

    def __init__(self) -> None:
        self.nested = 0

    def begin_nested(self):
        session = self

        class _Savepoint:
            async def __aenter__(self_inner):
                session.nested += 1
                return self_inner

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Savepoint()


def test_normalize_digits_strips_formatting() -> None:
    assert phone_matching.normalize_digits("+1 (555) 201-3344") == "15552013344"
    assert phone_matching.normalize_digits(None) == ""


@pytest.mark.asyncio
async def test_match_uses_full_digits_and_last_ten(monkeypatch) -> None:
    client = SimpleNamespace(id="client-1")
    lookup = AsyncMock(return_value=client)
    monkeypatch.setattr(clients_repo, "find_by_phone_digits", lookup)
    session = DummySession()

    result = await phone_matching.match_client_by_phone(session, "+1 (555) 201-3344")

    assert result is client
    assert session.nested == 1
    lookup.assert_awaited_once_with(session, digits="15552013344", suffix="5552013344")


@pytest.mark.asyncio
async def test_short_numbers_never_match(monkeypatch) -> None:
    lookup = AsyncMock()
    monkeypatch.setattr(clients_repo, "find_by_phone_digits", lookup)

    assert await phone_matching.match_client_by_phone(DummySession(), "12-34") is None
    assert await phone_matching.match_client_by_phone(DummySession(), None) is None
    lookup.assert_not_awaited()


@pytest.mark.asyncio
async def test_lookup_errors_are_treated_as_no_match(monkeypatch) -> None:
    monkeypatch.setattr(clients_repo, "find_by_phone_digits", AsyncMock(side_effect=RuntimeError("db down")))

    assert await phone_matching.match_client_by_phone(DummySession(), "5552013344") is None
