"""Normalization of GoTo notification payload variants."""
from __future__ import annotations

from ledgerdesk.schemas.goto import (
    CallEventDetails,
    CallReport,
    GoToNotification,
    RecordingNotice,
)


def test_notification_reads_data_envelope() -> None:
    payload = {
        "data": {
            "source": "call-events-report",
            "type": "REPORT_SUMMARY",
            "timestamp": "2025-03-01T10:00:00Z",
            "content": {"conversationSpaceId": "csid-1"},
        }
    }

    notification = GoToNotification.from_payload(payload)

    assert notification.source == "call-events-report"
    assert notification.type == "REPORT_SUMMARY"
    assert notification.content == {"conversationSpaceId": "csid-1"}


def test_notification_accepts_top_level_fields() -> None:
    notification = GoToNotification.from_payload({"source": "recording", "type": "RECORDING_READY"})

    assert notification.source == "recording"
    assert notification.type == "RECORDING_READY"
    assert notification.content == {}


def test_call_report_duration_and_direction() -> None:
    report = CallReport.from_sources(
        {"conversationSpaceId": "csid-1", "direction": "INBOUND"},
        {
            "callCreated": "2025-03-01T10:00:00Z",
            "callEnded": "2025-03-01T10:05:30Z",
            "direction": "OUTBOUND",
        },
    )

    assert report.conversation_space_id == "csid-1"
    assert report.duration_seconds() == 330
    assert report.is_outbound


def test_call_report_duration_is_null_or_non_negative() -> None:
    missing = CallReport.from_sources({"callCreated": "2025-03-01T10:00:00Z"})
    garbage = CallReport.from_sources({"callCreated": "yesterday", "callEnded": "today"})
    reversed_ = CallReport.from_sources(
        {"callCreated": "2025-03-01T10:05:00Z", "callEnded": "2025-03-01T10:00:00Z"}
    )

    assert missing.duration_seconds() is None
    assert garbage.duration_seconds() is None
    assert reversed_.duration_seconds() == 0


def test_caller_phone_prefers_caller_then_originator() -> None:
    with_caller = CallReport.from_sources(
        {"caller": {"number": "+15552013344", "name": "Olivia Harper"}, "participants": []}
    )
    with_originator = CallReport.from_sources(
        {
            "participants": [
                {"id": "ext-100", "originator": False},
                {"id": "+15554107788", "originator": True, "name": "Marcus"},
            ]
        }
    )
    by_phone_number = CallReport.from_sources(
        {"participants": [{"id": "p-1", "phoneNumber": "5556339021", "originator": True}]}
    )

    assert with_caller.caller_phone() == "+15552013344"
    assert with_caller.caller_name() == "Olivia Harper"
    assert with_originator.caller_phone() == "+15554107788"
    assert with_originator.caller_name() == "Marcus"
    assert by_phone_number.caller_phone() == "5556339021"


def test_candidate_recording_ids_cover_every_shape_in_order() -> None:
    report = CallReport.from_sources(
        {
            "recordingId": "r1",
            "recordingIds": ["r2", "r1"],
            "caller": {"recordingId": "r3", "recordings": [{"id": "r4"}]},
            "participants": [
                {"recordingId": "r5", "recordings": [{"recordingId": "r6"}, "r2"]},
            ],
        }
    )

    assert report.candidate_recording_ids() == ["r1", "r2", "r3", "r4", "r5", "r6"]


def test_provider_analysis_is_exposed() -> None:
    report = CallReport.from_sources({"aiAnalysis": {"summary": "Asked about extension"}})
    empty = CallReport.from_sources({"aiAnalysis": {}})

    assert report.ai_analysis == {"summary": "Asked about extension"}
    assert empty.ai_analysis is None


def test_call_event_details_fall_back_to_envelope() -> None:
    notification = GoToNotification.from_payload(
        {
            "data": {
                "source": "call-events",
                "type": "ENDING",
                "content": {"conversationSpaceId": "csid-9"},
                "state": {"direction": "outbound"},
                "metadata": {"callerNumber": "+15552013344"},
            }
        }
    )

    details = CallEventDetails.from_notification(notification)

    assert details.conversation_space_id == "csid-9"
    assert details.is_outbound
    assert details.caller_phone == "+15552013344"


def test_recording_notice_collects_ids_and_inline_data() -> None:
    notification = GoToNotification.from_payload(
        {
            "data": {
                "source": "recording",
                "type": "TRANSCRIPTION_READY",
                "content": {
                    "conversationSpaceId": "csid-2",
                    "recordingId": "r1",
                    "recording": {"id": "r2", "url": "https://rec.example/r2.mp3"},
                    "recordingIds": ["r1", "r3"],
                    "transcription": {"id": "t1", "text": "Hello, this is Olivia."},
                },
            }
        }
    )

    notice = RecordingNotice.from_notification(notification)

    assert notice.conversation_space_id == "csid-2"
    assert notice.recording_ids == ["r1", "r2", "r3"]
    assert notice.recording_url == "https://rec.example/r2.mp3"
    assert notice.transcript_id == "t1"
    assert notice.transcript == "Hello, this is Olivia."
