"""GoTo Connect webhook ingestion: verification, dedupe, routing, and persistence."""
from __future__ import annotations

import json
import logging
import time
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import ActivityType
from ..models.call import CallDirection
from ..models.task import TaskPriority
from ..models.webhook_log import WebhookStatus
from ..repositories import activity as activity_repo
from ..repositories import calls as calls_repo
from ..repositories import tasks as tasks_repo
from ..repositories import webhook_logs as webhook_logs_repo
from ..schemas import goto as goto_schema
from ..schemas.ai import CallAnalysis, ParsedWebhookData
from ..schemas.webhooks import WebhookAck, WebhookError
from . import ai_parser, goto, phone_matching, webhook_security
from .idempotency import EventKey, derive_event_id, processed_events

logger = logging.getLogger(__name__)

ENDPOINT = "/api/webhooks/goto"
LOG_SOURCE = "goto_connect"
TASK_SOURCE = "phone_call"
PROVIDER = "goto"

_REDACTED_HEADERS = frozenset({"authorization", "cookie"})


class MissingConversationSpaceError(ValueError):
    """Raised when a call report notification lacks ``conversationSpaceId``."""


@dataclass(slots=True)
class WebhookResult:
    """HTTP status and JSON body to return for a delivery."""

    status_code: int
    body: dict[str, Any]


@dataclass(slots=True)
class RouteOutcome:
    call_id: str | None
    message: str
    parsed: ParsedWebhookData | None = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str | None:
    """Return the first forwarded address, then ``x-real-ip``, then the socket peer."""

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or fallback


def _audit_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {name.lower(): value for name, value in headers.items() if name.lower() not in _REDACTED_HEADERS}


def priority_for_urgency(urgency: str | None) -> TaskPriority:
    if urgency == "urgent":
        return TaskPriority.URGENT
    if urgency == "high":
        return TaskPriority.HIGH
    return TaskPriority.MEDIUM


_PROVIDER_TEXT_FIELDS = frozenset({"category", "sentiment", "urgency", "summary"})
_PROVIDER_LIST_FIELDS = frozenset({"keyPoints", "suggestedActions"})


def _provider_overrides(provider: Mapping[str, Any] | None) -> dict[str, Any]:
    """Keep only provider fields whose shape matches the analysis model."""

    overrides: dict[str, Any] = {}
    for key, value in (provider or {}).items():
        if key in _PROVIDER_TEXT_FIELDS:
            usable = isinstance(value, str) and bool(value.strip())
        elif key in _PROVIDER_LIST_FIELDS:
            usable = (
                isinstance(value, list)
                and bool(value)
                and all(isinstance(item, str) and item.strip() for item in value)
            )
        elif key == "clientMatch":
            usable = isinstance(value, dict)
        else:
            usable = False
        if usable:
            overrides[key] = value
        elif value not in (None, "", []):
            logger.warning("Ignoring provider analysis field %s with unexpected value %r", key, value)
    return overrides


def merge_analysis(provider: Mapping[str, Any] | None, parsed: ParsedWebhookData | None) -> CallAnalysis:
    """Combine provider-native analysis with the AI parse; well-formed provider fields win."""

    base = parsed.analysis if parsed else CallAnalysis()
    merged: dict[str, Any] = base.model_dump(by_alias=True)
    merged.update(_provider_overrides(provider))
    try:
        return CallAnalysis.model_validate(merged)
    except ValidationError as exc:
        logger.warning("Ignoring malformed provider analysis: %s", exc)
        return base


async def _safe_update_log(session: AsyncSession, log_id: str | None, **fields: Any) -> None:
    if log_id is None:
        return
    try:
        async with session.begin():
            await webhook_logs_repo.update_log(session, log_id, **fields)
    except Exception:  # noqa: BLE001 - log bookkeeping must not change the outcome
        logger.exception("Failed to update webhook log %s", log_id)


async def _safe_create_log(session: AsyncSession, **fields: Any) -> str | None:
    try:
        async with session.begin():
            return await webhook_logs_repo.create_log(session, endpoint=ENDPOINT, source=LOG_SOURCE, **fields)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to create webhook log")
        return None


async def _stored_previously(session: AsyncSession, key: EventKey) -> bool:
    try:
        async with session.begin():
            return await webhook_logs_repo.has_processed(
                session,
                event_source=key.source,
                event_type=key.type,
                event_id=key.event_id,
            )
    except Exception:  # noqa: BLE001
        logger.exception("Durable duplicate check failed for %s", key)
        return False


async def handle_goto_webhook(
    session: AsyncSession,
    *,
    raw_body: bytes,
    headers: Mapping[str, str],
    remote_addr: str | None = None,
) -> WebhookResult:
    """Run one GoTo delivery through the full ingestion pipeline."""

    started = time.perf_counter()
    ip_address = client_ip(headers, remote_addr)
    user_agent = headers.get("user-agent")
    audit_headers = _audit_headers(headers)

    if not webhook_security.is_request_authorized(raw_body, headers.get(webhook_security.SIGNATURE_HEADER)):
        logger.warning("Rejected GoTo webhook with invalid signature from %s", ip_address)
        await _safe_create_log(
            session,
            headers=audit_headers,
            ip_address=ip_address,
            user_agent=user_agent,
            status=WebhookStatus.FAILED,
            error_message="Invalid signature",
            processing_time_ms=_elapsed_ms(started),
        )
        return WebhookResult(401, WebhookError(error="Invalid signature").to_body())

    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        payload = None
    if not isinstance(payload, dict):
        logger.warning("Rejected GoTo webhook with invalid JSON from %s", ip_address)
        await _safe_create_log(
            session,
            headers=audit_headers,
            ip_address=ip_address,
            user_agent=user_agent,
            status=WebhookStatus.FAILED,
            error_message="Invalid JSON payload",
            processing_time_ms=_elapsed_ms(started),
        )
        return WebhookResult(400, WebhookError(error="Invalid JSON payload").to_body())

    log_id = await _safe_create_log(
        session,
        headers=audit_headers,
        raw_payload=payload,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    notification = goto_schema.GoToNotification.from_payload(payload)
    event_id = derive_event_id(payload, notification.content)
    key = EventKey(notification.source, notification.type, event_id)
    logger.info(
        "Received GoTo webhook source=%s type=%s event_id=%s",
        notification.source,
        notification.type,
        event_id,
    )

    # Claim the key before any await so concurrent deliveries see it.
    duplicate = processed_events.seen(key)
    if not duplicate:
        processed_events.remember(key)
        duplicate = await _stored_previously(session, key)

    if duplicate:
        logger.info("Skipping duplicate GoTo event %s", key)
        await _safe_update_log(
            session,
            log_id,
            status=WebhookStatus.DUPLICATE,
            event_id=event_id,
            event_source=notification.source,
            event_type=notification.type,
            processing_time_ms=_elapsed_ms(started),
        )
        ack = WebhookAck(
            message="Webhook already processed",
            duplicate=True,
            event_id=event_id,
            event_type=notification.type,
        )
        return WebhookResult(200, ack.to_body())

    await _safe_update_log(
        session,
        log_id,
        status=WebhookStatus.PARSING,
        event_id=event_id,
        event_source=notification.source,
        event_type=notification.type,
    )

    try:
        async with session.begin():
            outcome = await route_event(session, notification, payload, log_id=log_id)
    except Exception as exc:  # noqa: BLE001 - reported to the caller as a 500
        processed_events.forget(key)
        logger.exception("Failed to process GoTo webhook %s", key)
        await _safe_update_log(
            session,
            log_id,
            status=WebhookStatus.FAILED,
            error_message=str(exc) or exc.__class__.__name__,
            error_stack=traceback.format_exc(),
            processing_time_ms=_elapsed_ms(started),
        )
        error = WebhookError(error="Internal server error", details=str(exc) or exc.__class__.__name__)
        return WebhookResult(500, error.to_body())

    parsed = outcome.parsed
    await _safe_update_log(
        session,
        log_id,
        status=WebhookStatus.STORED,
        result_call_id=outcome.call_id,
        processing_time_ms=_elapsed_ms(started),
        parsed_data=parsed.as_log_dict() if parsed else None,
        ai_parsing_used=parsed is not None,
        ai_confidence=round(parsed.confidence * 100) if parsed else None,
        ai_summary=parsed.analysis.summary if parsed else None,
        ai_category=parsed.analysis.category if parsed else None,
    )

    elapsed = _elapsed_ms(started)
    logger.info("Processed GoTo event %s call=%s in %sms", key, outcome.call_id, elapsed)
    ack = WebhookAck(
        message=outcome.message,
        record_id=outcome.call_id,
        event_id=event_id,
        event_type=notification.type,
        processing_time_ms=elapsed,
    )
    return WebhookResult(200, ack.to_body())


async def route_event(
    session: AsyncSession,
    notification: goto_schema.GoToNotification,
    payload: dict[str, Any],
    *,
    log_id: str | None = None,
) -> RouteOutcome:
    """Dispatch a normalized notification to its handler."""

    source, event_type = notification.source, notification.type

    if source == goto_schema.SOURCE_CALL_REPORT and event_type == goto_schema.TYPE_REPORT_SUMMARY:
        return await process_call_report(session, notification, log_id=log_id)
    if source == goto_schema.SOURCE_RECORDING and event_type in (
        goto_schema.TYPE_RECORDING_READY,
        goto_schema.TYPE_TRANSCRIPTION_READY,
    ):
        return await process_recording_ready(session, notification, log_id=log_id)
    if source == goto_schema.SOURCE_CALL_EVENTS:
        return await process_call_event(session, notification, log_id=log_id)
    return await process_unknown_event(session, notification, payload, log_id=log_id)


async def _fetch_recording(recording_ids: list[str]) -> tuple[str | None, str | None, str | None]:
    """Return ``(recording_id, url, transcript)`` for the first id whose URL resolves."""

    transcript: str | None = None
    for recording_id in recording_ids:
        url: str | None = None
        try:
            url = await goto.get_recording_url(recording_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Recording URL lookup failed for %s: %s", recording_id, exc)
        try:
            transcript = await goto.get_transcription(recording_id) or transcript
        except Exception as exc:  # noqa: BLE001
            logger.warning("Transcription lookup failed for %s: %s", recording_id, exc)
        if url:
            return recording_id, url, transcript
    return None, None, transcript


async def _create_tasks(
    session: AsyncSession,
    *,
    call_id: str,
    client_id: str | None,
    analysis: CallAnalysis,
    conversation_space_id: str | None,
) -> int:
    priority = priority_for_urgency(analysis.urgency)
    for action in analysis.suggested_actions:
        await tasks_repo.create_task(
            session,
            title=action,
            priority=priority,
            source=TASK_SOURCE,
            source_reference_id=call_id,
            description=analysis.summary,
            client_id=client_id,
            source_metadata={
                "conversationSpaceId": conversation_space_id,
                "category": analysis.category,
                "urgency": analysis.urgency,
            },
        )
    return len(analysis.suggested_actions)


async def process_call_report(
    session: AsyncSession,
    notification: goto_schema.GoToNotification,
    *,
    log_id: str | None = None,
) -> RouteOutcome:
    """Persist a completed call from a ``REPORT_SUMMARY`` notification.

    The full report is fetched from the provider when possible; otherwise the
    notification content is used as-is. Recording, transcript, and AI analysis are
    best-effort. One task is created per suggested action.
    """

    content = notification.content
    conversation_space_id = goto_schema.CallReport.from_sources(content).conversation_space_id
    if not conversation_space_id:
        raise MissingConversationSpaceError("Missing conversationSpaceId in call report notification")

    fetched: dict[str, Any] | None = None
    try:
        fetched = await goto.get_call_report(conversation_space_id)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Falling back to notification content for %s: %s", conversation_space_id, exc)

    report = goto_schema.CallReport.from_sources(content, fetched)
    duration = report.duration_seconds()
    direction = CallDirection.OUTBOUND if report.is_outbound else CallDirection.INBOUND
    recording_ids = report.candidate_recording_ids()
    _, recording_url, transcript = await _fetch_recording(recording_ids)

    parsed = await ai_parser.parse_webhook_with_ai(
        goto_schema.SOURCE_CALL_REPORT,
        goto_schema.TYPE_REPORT_SUMMARY,
        report.model_dump(mode="json", by_alias=True, exclude_none=True),
        transcript=transcript,
    )
    analysis = merge_analysis(report.ai_analysis, parsed)
    has_analysis = parsed is not None or report.ai_analysis is not None

    caller_phone = report.caller_phone() or (parsed.contact.phone if parsed else None)
    caller_name = report.caller_name() or (parsed.contact.name if parsed else None)
    client = await phone_matching.match_client_by_phone(session, caller_phone)
    client_id = client.id if client is not None else None

    call = await calls_repo.create_call(
        session,
        external_call_id=f"goto-{conversation_space_id}",
        direction=direction,
        client_id=client_id,
        caller_phone=caller_phone,
        caller_name=caller_name,
        duration_sec=duration,
        transcript=transcript,
        summary=analysis.summary if has_analysis else f"GoTo Connect call - {duration or 0}s",
        intent=analysis.category if has_analysis else None,
        sentiment=analysis.sentiment if has_analysis else None,
        recording_url=recording_url,
        metadata={
            "provider": PROVIDER,
            "conversationSpaceId": conversation_space_id,
            "accountKey": report.account_key,
            "participants": [p.model_dump(mode="json", by_alias=True, exclude_none=True) for p in report.participants],
            "recordingIds": recording_ids,
            "analysis": analysis.model_dump(mode="json", by_alias=True) if has_analysis else None,
            "confidence": parsed.confidence if parsed else None,
            "aiParsed": parsed is not None,
            "parsedAt": datetime.now(timezone.utc).isoformat(),
            "webhookLogId": log_id,
        },
    )
    call_id = call.id

    inbound = direction is CallDirection.INBOUND
    await activity_repo.log_activity(
        session,
        type=ActivityType.CALL_RECEIVED if inbound else ActivityType.CALL_MADE,
        description=(
            f"{'Inbound' if inbound else 'Outbound'} GoTo Connect call"
            f"{f' from {caller_phone}' if caller_phone else ''} - {duration or 0}s"
        ),
        call_id=call_id,
        client_id=client_id,
        metadata={
            "conversationSpaceId": conversation_space_id,
            "category": analysis.category if has_analysis else None,
            "urgency": analysis.urgency if has_analysis else None,
            "webhookLogId": log_id,
        },
    )

    task_count = await _create_tasks(
        session,
        call_id=call_id,
        client_id=client_id,
        analysis=analysis,
        conversation_space_id=conversation_space_id,
    )
    if task_count:
        logger.info("Created %d tasks from call %s", task_count, call_id)

    return RouteOutcome(call_id=call_id, message="GoTo Connect webhook processed successfully", parsed=parsed)


async def process_recording_ready(
    session: AsyncSession,
    notification: goto_schema.GoToNotification,
    *,
    log_id: str | None = None,
) -> RouteOutcome:
    """Attach a recording URL or transcript to an already stored call."""

    notice = goto_schema.RecordingNotice.from_notification(notification)
    call = await calls_repo.find_for_recording(
        session,
        conversation_space_id=notice.conversation_space_id,
        recording_ids=notice.recording_ids,
    )
    if call is None:
        logger.info(
            "No stored call for recording notification csid=%s recordings=%s",
            notice.conversation_space_id,
            notice.recording_ids,
        )
        return RouteOutcome(call_id=None, message="No matching call for recording notification")

    recording_url = notice.recording_url
    transcript = notice.transcript
    if not recording_url and notice.recording_ids:
        _, recording_url, fetched_transcript = await _fetch_recording(notice.recording_ids)
        transcript = transcript or fetched_transcript
    if not transcript and notice.transcript_id:
        try:
            transcript = await goto.get_transcription(notice.transcript_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Transcription lookup failed for %s: %s", notice.transcript_id, exc)

    changed = calls_repo.apply_recording(
        call,
        recording_url=recording_url,
        transcript=transcript,
        recording_ids=notice.recording_ids,
    )
    call_id = call.id
    if changed:
        session.add(call)
        logger.info("Updated call %s with recording data", call_id)
    return RouteOutcome(call_id=call_id, message="Recording attached to call")


async def process_call_event(
    session: AsyncSession,
    notification: goto_schema.GoToNotification,
    *,
    log_id: str | None = None,
) -> RouteOutcome:
    """Handle real-time call events; only ``ENDING`` creates a call."""

    event_type = notification.type or "UNKNOWN"
    details = goto_schema.CallEventDetails.from_notification(notification)

    if event_type != goto_schema.TYPE_ENDING:
        await activity_repo.log_activity(
            session,
            type=ActivityType.CALL_RECEIVED if event_type == goto_schema.TYPE_STARTING else ActivityType.WEBHOOK_RECEIVED,
            description=f"GoTo Connect call {event_type.lower()}",
            metadata={
                "eventType": event_type,
                "conversationSpaceId": details.conversation_space_id,
                "webhookLogId": log_id,
            },
        )
        return RouteOutcome(call_id=None, message=f"GoTo Connect {event_type} event logged")

    parsed = await ai_parser.parse_webhook_with_ai(
        goto_schema.SOURCE_CALL_EVENTS,
        event_type,
        notification.envelope,
    )
    caller_phone = details.caller_phone or (parsed.contact.phone if parsed else None)
    client = await phone_matching.match_client_by_phone(session, caller_phone)
    client_id = client.id if client is not None else None
    direction = CallDirection.OUTBOUND if details.is_outbound else CallDirection.INBOUND
    external_call_id = (
        f"goto-{details.conversation_space_id}"
        if details.conversation_space_id
        else f"goto-event-{int(time.time() * 1000)}"
    )

    call = await calls_repo.create_call(
        session,
        external_call_id=external_call_id,
        direction=direction,
        client_id=client_id,
        caller_phone=caller_phone,
        caller_name=parsed.contact.name if parsed else None,
        summary=parsed.analysis.summary if parsed else "GoTo Connect call ended",
        intent=parsed.analysis.category if parsed else None,
        sentiment=parsed.analysis.sentiment if parsed else None,
        metadata={
            "provider": PROVIDER,
            "conversationSpaceId": details.conversation_space_id,
            "eventType": event_type,
            "analysis": parsed.analysis.model_dump(mode="json", by_alias=True) if parsed else None,
            "aiParsed": parsed is not None,
            "webhookLogId": log_id,
        },
    )
    call_id = call.id

    inbound = direction is CallDirection.INBOUND
    await activity_repo.log_activity(
        session,
        type=ActivityType.CALL_RECEIVED if inbound else ActivityType.CALL_MADE,
        description=f"GoTo Connect call ended{f' ({caller_phone})' if caller_phone else ''}",
        call_id=call_id,
        client_id=client_id,
        metadata={"conversationSpaceId": details.conversation_space_id, "webhookLogId": log_id},
    )
    return RouteOutcome(call_id=call_id, message="GoTo Connect call event processed", parsed=parsed)


async def process_unknown_event(
    session: AsyncSession,
    notification: goto_schema.GoToNotification,
    payload: dict[str, Any],
    *,
    log_id: str | None = None,
) -> RouteOutcome:
    """Let the AI parser classify an unrecognized payload; store it only if it is a call."""

    logger.info("Unhandled GoTo event source=%s type=%s", notification.source, notification.type)
    parsed = await ai_parser.parse_webhook_with_ai(
        notification.source or "unknown",
        notification.type or "unknown",
        payload,
    )
    if parsed is None or parsed.source != "phone_call":
        return RouteOutcome(call_id=None, message="Webhook received", parsed=parsed)

    parsed_call = parsed.call
    caller_phone = parsed.contact.phone
    client = await phone_matching.match_client_by_phone(session, caller_phone)
    client_id = client.id if client is not None else None
    direction = (
        CallDirection.OUTBOUND
        if parsed_call is not None and parsed_call.direction == "outbound"
        else CallDirection.INBOUND
    )

    call = await calls_repo.create_call(
        session,
        external_call_id=f"goto-ai-{int(time.time() * 1000)}",
        direction=direction,
        client_id=client_id,
        caller_phone=caller_phone,
        caller_name=parsed.contact.name,
        duration_sec=parsed_call.duration if parsed_call else None,
        transcript=parsed_call.transcript if parsed_call else None,
        summary=parsed.analysis.summary or "GoTo Connect call",
        intent=parsed.analysis.category,
        sentiment=parsed.analysis.sentiment,
        recording_url=parsed_call.recording_url if parsed_call else None,
        metadata={
            "provider": PROVIDER,
            "eventSource": notification.source,
            "eventType": notification.type,
            "analysis": parsed.analysis.model_dump(mode="json", by_alias=True),
            "confidence": parsed.confidence,
            "aiParsed": True,
            "webhookLogId": log_id,
        },
    )
    call_id = call.id
    await activity_repo.log_activity(
        session,
        type=ActivityType.CALL_MADE if direction is CallDirection.OUTBOUND else ActivityType.CALL_RECEIVED,
        description=f"GoTo Connect call{f' from {caller_phone}' if caller_phone else ''} (AI classified)",
        call_id=call_id,
        client_id=client_id,
        metadata={"category": parsed.analysis.category, "webhookLogId": log_id},
    )
    return RouteOutcome(call_id=call_id, message="Webhook parsed as phone call", parsed=parsed)
