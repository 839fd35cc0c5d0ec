import json
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from ledgerdesk.services import ai_parser


class FakeModel:
    def __init__(self, reply=None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    def generate_content(self, prompt: str):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(ai_parser.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(ai_parser.settings, "gemini_model", "primary")
    monkeypatch.setattr(ai_parser.settings, "gemini_model_fallbacks", ["backup"])


@pytest.mark.asyncio
async def test_returns_none_without_api_key(monkeypatch) -> None:
    monkeypatch.setattr(ai_parser.settings, "gemini_api_key", "")

    assert not ai_parser.is_ai_parsing_available()
    assert await ai_parser.parse_webhook_with_ai("call-events-report", "REPORT_SUMMARY", {}) is None


@pytest.mark.asyncio
async def test_parses_model_json_and_fills_defaults(monkeypatch, configured) -> None:
    reply = json.dumps(
        {
            "source": "phone_call",
            "contact": {"name": "Olivia Harper", "phone": "+15552013344"},
            "analysis": {
                "category": "document_request",
                "urgency": "HIGH",
                "summary": "Olivia needs a copy of her 2023 return.",
                "suggestedActions": ["Email 2023 return to Olivia"],
            },
        }
    )
    model = FakeModel(reply=reply)
    monkeypatch.setattr(ai_parser, "_get_model", lambda name: model)

    parsed = await ai_parser.parse_webhook_with_ai(
        "call-events-report",
        "REPORT_SUMMARY",
        {"conversationSpaceId": "csid-1"},
        transcript="Hi, I need my 2023 return.",
    )

    assert parsed is not None
    assert parsed.source == "phone_call"
    assert parsed.contact.phone == "+15552013344"
    assert parsed.analysis.urgency == "high"
    assert parsed.analysis.sentiment == "unknown"
    assert parsed.analysis.suggested_actions == ["Email 2023 return to Olivia"]
    assert parsed.confidence == 0.5
    assert parsed.parsed_at is not None
    assert "I need my 2023 return" in model.prompts[0]


@pytest.mark.asyncio
async def test_falls_back_to_next_model_when_missing(monkeypatch, configured) -> None:
    models = {
        "primary": FakeModel(error=google_exceptions.NotFound("no such model")),
        "backup": FakeModel(reply='{"source": "email", "confidence": 0.9}'),
    }
    monkeypatch.setattr(ai_parser, "_get_model", lambda name: models[name])

    parsed = await ai_parser.parse_webhook_with_ai("unknown", "unknown", {"id": "x"})

    assert parsed is not None
    assert parsed.source == "email"
    assert parsed.confidence == 0.9
    assert models["primary"].prompts and models["backup"].prompts


@pytest.mark.asyncio
async def test_returns_none_when_output_is_not_json(monkeypatch, configured) -> None:
    monkeypatch.setattr(ai_parser, "_get_model", lambda name: FakeModel(reply="I cannot help with that"))

    assert await ai_parser.parse_webhook_with_ai("unknown", "unknown", {}) is None


@pytest.mark.asyncio
async def test_returns_none_when_every_model_errors(monkeypatch, configured) -> None:
    monkeypatch.setattr(ai_parser, "_get_model", lambda name: FakeModel(error=RuntimeError("quota")))

    assert await ai_parser.parse_webhook_with_ai("unknown", "unknown", {}) is None
