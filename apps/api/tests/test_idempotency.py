from ledgerdesk.services.idempotency import EventKey, ProcessedEventGuard, derive_event_id


def test_event_id_prefers_conversation_space_id() -> None:
    content = {"conversationSpaceId": "csid-1", "callId": "call-1"}

    assert derive_event_id({"id": "top"}, content) == "csid-1"


def test_event_id_falls_back_to_call_id_then_top_level_id() -> None:
    assert derive_event_id({"id": "top"}, {"callId": "call-1"}) == "call-1"
    assert derive_event_id({"id": "top"}, {}) == "top"
    assert derive_event_id({"id": 42}, {}) == "42"


def test_generated_event_ids_never_collide() -> None:
    first = derive_event_id({}, {})
    second = derive_event_id({}, {})

    assert first.startswith("goto-")
    assert first != second


def test_guard_remembers_keys_per_source_and_type() -> None:
    guard = ProcessedEventGuard(capacity=10)
    report = EventKey("call-events-report", "REPORT_SUMMARY", "csid-1")
    recording = EventKey("recording", "RECORDING_READY", "csid-1")

    guard.remember(report)

    assert guard.seen(report)
    assert not guard.seen(recording)


def test_guard_evicts_oldest_key_past_capacity() -> None:
    guard = ProcessedEventGuard(capacity=2)
    keys = [EventKey("s", "t", str(i)) for i in range(3)]

    for key in keys:
        guard.remember(key)

    assert len(guard) == 2
    assert not guard.seen(keys[0])
    assert guard.seen(keys[1])
    assert guard.seen(keys[2])


def test_guard_forget_allows_reprocessing() -> None:
    guard = ProcessedEventGuard(capacity=5)
    key = EventKey("s", "t", "1")

    guard.remember(key)
    guard.forget(key)

    assert not guard.seen(key)
