"""Best-effort webhook payload parsing built on Gemini."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

from ..core.config import settings
from ..schemas.ai import ParsedWebhookData

logger = logging.getLogger(__name__)

MAX_PAYLOAD_CHARS = 60_000

PARSING_PROMPT = """You parse webhook payloads for a CPA/accounting firm's office management system.

Analyze the JSON payload (phone call reports, call events, transcripts, web forms, emails) and return
ONLY a JSON object with this structure:

{
  "source": "phone_call" | "web_form" | "email" | "sms" | "chat" | "unknown",
  "sourceProvider": "e.g. goto_connect, vapi, twilio, typeform",
  "contact": {"name": "", "firstName": "", "lastName": "", "phone": "E.164", "email": "", "company": ""},
  "call": {
    "direction": "inbound" | "outbound",
    "duration": seconds,
    "transcript": "full transcript text if present",
    "summary": "brief summary",
    "recordingUrl": "",
    "startedAt": "ISO 8601",
    "endedAt": "ISO 8601"
  },
  "analysis": {
    "category": "new_client_inquiry" | "existing_client_question" | "document_request" |
                "appointment_scheduling" | "payment_inquiry" | "tax_question" | "status_check" |
                "complaint" | "urgent_matter" | "follow_up" | "general_inquiry" | "spam" | "other",
    "sentiment": "positive" | "neutral" | "negative" | "unknown",
    "urgency": "low" | "medium" | "high" | "urgent",
    "summary": "2-3 sentences: who called, what they wanted, what was discussed, action items",
    "keyPoints": ["..."],
    "suggestedActions": ["concrete follow-up tasks for staff"],
    "clientMatch": {"possibleMatch": true, "searchTerms": ["..."]}
  },
  "confidence": 0.0-1.0
}

Rules:
- Read the full transcript when present and summarize what was actually discussed.
- Omit fields without data. Only include "call" for phone calls.
- Normalize phone numbers to E.164 (+1XXXXXXXXXX) and timestamps to ISO 8601.
- Accounting inquiries are usually about taxes, documents, deadlines, payments and appointments."""


def is_ai_parsing_available() -> bool:
    """Return True when an API key is configured."""

    return bool(settings.gemini_api_key.strip())


@lru_cache
def _configured_api() -> bool:
    """Configure the Google Generative AI client once."""

    if not is_ai_parsing_available():
        raise RuntimeError("GEMINI_API_KEY is missing")

    genai.configure(api_key=settings.gemini_api_key)
    return True


_model_cache: Dict[str, genai.GenerativeModel] = {}


def _get_model(name: str) -> genai.GenerativeModel:
    """Return a cached Gemini model instance."""

    _configured_api()
    model_name = name.strip()
    if not model_name:
        raise RuntimeError("Gemini model name was empty")

    if model_name not in _model_cache:
        _model_cache[model_name] = genai.GenerativeModel(
            model_name,
            system_instruction=PARSING_PROMPT,
            generation_config={"response_mime_type": "application/json", "max_output_tokens": 2000},
        )
    return _model_cache[model_name]


def _candidate_models() -> list[str]:
    candidates: list[str] = []
    seen: set[str] = set()
    for candidate in (settings.gemini_model, *settings.gemini_model_fallbacks):
        if candidate and candidate not in seen:
            candidates.append(candidate)
            seen.add(candidate)
    return candidates


def _build_prompt(source: str, type: str, payload: dict[str, Any]) -> str:
    body = json.dumps(payload, indent=2, default=str)
    if len(body) > MAX_PAYLOAD_CHARS:
        body = body[:MAX_PAYLOAD_CHARS] + "\n... (truncated)"
    return f"Webhook source: {source}\nWebhook type: {type}\n\nHere is the webhook payload to parse:\n\n{body}"


def _decode(text: str) -> ParsedWebhookData | None:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("AI parser returned non-JSON output")
        return None
    if not isinstance(data, dict):
        return None
    try:
        parsed = ParsedWebhookData.model_validate(data)
    except ValidationError as exc:
        logger.warning("AI parser output failed validation: %s", exc)
        return None
    parsed.parsed_at = datetime.now(timezone.utc).isoformat()
    return parsed


async def parse_webhook_with_ai(
    source: str,
    type: str,
    payload: dict[str, Any],
    **context: Any,
) -> ParsedWebhookData | None:
    """Extract caller, intent, urgency, and suggested actions from a payload.

    Extra keyword arguments (for example ``transcript``) are appended to the payload
    sent to the model. Returns None when parsing is unavailable or every model fails.
    """

    if not is_ai_parsing_available():
        return None

    document = {**payload, **{key: value for key, value in context.items() if value is not None}}
    prompt = _build_prompt(source, type, document)
    loop = asyncio.get_running_loop()

    for model_name in _candidate_models():
        def _run_inference(current_model: str = model_name) -> str:
            response = _get_model(current_model).generate_content(prompt)
            return (getattr(response, "text", "") or "").strip()

        try:
            text = await loop.run_in_executor(None, _run_inference)
        except google_exceptions.NotFound as exc:
            logger.warning("Gemini model %s not available: %s", model_name, exc)
            _model_cache.pop(model_name, None)
            continue
        except Exception:  # noqa: BLE001 - parsing is an enrichment step
            logger.exception("Gemini generate_content failed for %s", model_name)
            continue

        if not text:
            continue
        parsed = _decode(text)
        if parsed is not None:
            logger.info(
                "AI parsed %s/%s via %s (source=%s, confidence=%.2f)",
                source,
                type,
                model_name,
                parsed.source,
                parsed.confidence,
            )
            return parsed

    logger.warning("AI parsing produced no result for %s/%s", source, type)
    return None
