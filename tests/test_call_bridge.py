from __future__ import annotations

import asyncio

from fakes import (
    FakeConnector,
    FakeRealtimeSocket,
    FakeTwilioSocket,
    RecordingSink,
    media_event,
    start_event,
    stop_event,
    text_deltas,
)
from telephony.bridge import CallBridge
from telephony.errors import RealtimeConnectError
from telephony.session import AIConnectionState, StreamState

APPEND = "input_audio_buffer.append"
COMMIT = "input_audio_buffer.commit"
RESPOND = "response.create"

LEAD_LINE = "LEAD: Name=Jane Doe; Phone=605-555-0100; YMM=2019 Toyota Camry; Service=Key replacement; ZIP=57104"


def _bridge(twilio, connector, sink, settings):
    return CallBridge(twilio, connector=connector, lead_sink=sink, settings=settings, instructions="test")


def _run_call(settings, twilio, ai, sink=None):
    sink = sink or RecordingSink()
    connector = FakeConnector(ai)
    bridge = _bridge(twilio, connector, sink, settings)
    record = asyncio.run(bridge.run())
    return bridge, record, sink


def test_five_frames_trigger_exactly_one_commit_and_response(settings_factory):
    twilio = FakeTwilioSocket([start_event(), *[media_event() for _ in range(5)], stop_event()])
    ai = FakeRealtimeSocket()

    bridge, record, sink = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types == ["session.update", RESPOND] + [APPEND] * 5 + [COMMIT, RESPOND]
    assert ai.sent[0]["session"]["instructions"] == "test"
    assert bridge.pacer.commits == 1
    assert not bridge.pending_audio
    assert len(sink.records) == 1
    assert record.outcome == "no_lead"
    assert record.raw_line == "LEAD:"
    assert record.call_sid == "CA001"


def test_trailing_frame_is_flushed_on_stop(settings_factory):
    twilio = FakeTwilioSocket([start_event(), *[media_event() for _ in range(6)], stop_event()])
    ai = FakeRealtimeSocket()

    bridge, _, _ = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types == (
        ["session.update", RESPOND] + [APPEND] * 5 + [COMMIT, RESPOND] + [APPEND, COMMIT, RESPOND]
    )
    assert bridge.pacer.commits == 2


def test_active_response_suppresses_pacer_generate_request(settings_factory):
    twilio = FakeTwilioSocket([start_event(), *[media_event() for _ in range(5)], stop_event()])
    ai = FakeRealtimeSocket(responses=[[{"type": "response.created"}]])

    bridge, _, _ = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types == ["session.update", RESPOND] + [APPEND] * 5 + [COMMIT]
    assert bridge.pacer.responses_requested == 0


def test_assistant_audio_is_forwarded_with_stream_handle(settings_factory):
    twilio = FakeTwilioSocket([start_event(stream_sid="MZ42"), stop_event("MZ42")])
    ai = FakeRealtimeSocket(
        responses=[
            [
                {"type": "response.audio.delta", "delta": "AAAA"},
                {"type": "response.audio.delta", "delta": "BBBB"},
                {"type": "response.done"},
            ]
        ]
    )

    bridge, _, _ = _run_call(settings_factory(realtime_drain_timeout_seconds=2.0), twilio, ai)

    assert twilio.sent == [
        {"event": "media", "streamSid": "MZ42", "media": {"payload": "AAAA"}},
        {"event": "media", "streamSid": "MZ42", "media": {"payload": "BBBB"}},
    ]
    assert bridge.frames_to_caller == 2


def test_audio_before_start_is_dropped(settings_factory):
    async def _run():
        twilio = FakeTwilioSocket()
        bridge = _bridge(twilio, FakeConnector(), RecordingSink(), settings_factory())
        await bridge._on_realtime_message('{"type": "response.audio.delta", "delta": "AAAA"}')
        return twilio, bridge

    twilio, bridge = asyncio.run(_run())

    assert twilio.sent == []
    assert bridge.frames_dropped == 1


def test_lead_line_from_transcript_is_persisted_with_call_metadata(settings_factory):
    twilio = FakeTwilioSocket(
        [start_event(caller="+16055550100", called="+16055550199"), stop_event()]
    )
    ai = FakeRealtimeSocket(
        responses=[
            [
                *text_deltas("Thanks Jane.\n", LEAD_LINE[:30], LEAD_LINE[30:]),
                {"type": "response.audio_transcript.done"},
                {"type": "response.done"},
            ]
        ]
    )

    bridge, record, sink = _run_call(settings_factory(realtime_drain_timeout_seconds=2.0), twilio, ai)

    assert sink.records == [record]
    assert record.outcome == "lead"
    assert record.name == "Jane Doe"
    assert record.vehicle_make == "Toyota"
    assert record.caller == "+16055550100"
    assert record.called == "+16055550199"
    assert bridge.session.last_lead_line == LEAD_LINE


def test_later_lead_line_replaces_earlier_one(settings_factory):
    twilio = FakeTwilioSocket([start_event(), stop_event()])
    ai = FakeRealtimeSocket(
        responses=[
            [
                *text_deltas(
                    "LEAD: Name=Old; Phone=1; YMM=2010 Kia Rio; Service=Lockout; ZIP=1\n",
                    "LEAD: Name=New; Phone=2; YMM=2012 Kia Soul; Service=Key; ZIP=2",
                ),
                {"type": "response.done"},
            ]
        ]
    )

    _, record, _ = _run_call(settings_factory(realtime_drain_timeout_seconds=2.0), twilio, ai)

    assert record.name == "New"


def test_drain_waits_for_answer_to_final_commit(settings_factory):
    twilio = FakeTwilioSocket([start_event(), media_event(), media_event(), stop_event()])
    ai = FakeRealtimeSocket(
        responses=[
            [{"type": "response.done"}],
            [*text_deltas(LEAD_LINE), {"type": "response.done"}],
        ]
    )

    bridge, record, _ = _run_call(settings_factory(realtime_drain_timeout_seconds=2.0), twilio, ai)

    assert ai.sent_types[-2:] == [COMMIT, RESPOND]
    assert record.name == "Jane Doe"
    assert bridge.ai_close_calls == 1


def test_realtime_auth_failure_closes_call_with_degenerate_record(settings_factory):
    twilio = FakeTwilioSocket([start_event(), media_event(), stop_event()])
    connector = FakeConnector(error=RealtimeConnectError("Realtime handshake rejected with HTTP 401"))
    sink = RecordingSink()
    bridge = _bridge(twilio, connector, sink, settings_factory())

    record = asyncio.run(bridge.run())

    assert twilio.close_codes == [1011]
    assert bridge.ai_connect_attempts == 1
    assert bridge.ai_close_calls == 0
    assert len(sink.records) == 1
    assert record.outcome == "no_lead"
    assert record.raw_line == "LEAD:"


def test_missing_credentials_end_the_call_before_streaming(settings_factory):
    from integrations.openai_realtime import RealtimeConnector

    settings = settings_factory(openai_api_key=None)
    twilio = FakeTwilioSocket([start_event(), stop_event()])
    sink = RecordingSink()
    bridge = _bridge(twilio, RealtimeConnector(settings), sink, settings)

    asyncio.run(bridge.run())

    assert twilio.close_codes == [1011]
    assert len(sink.records) == 1


def test_close_is_idempotent(settings_factory):
    async def _run():
        twilio = FakeTwilioSocket([start_event(), stop_event()])
        ai = FakeRealtimeSocket()
        sink = RecordingSink()
        bridge = _bridge(twilio, FakeConnector(ai), sink, settings_factory())
        await bridge.run()
        await bridge.close()
        await bridge.close()
        return twilio, ai, sink, bridge

    twilio, ai, sink, bridge = asyncio.run(_run())

    assert ai.close_calls == 1
    assert bridge.ai_close_calls == 1
    assert twilio.close_codes == [1000]
    assert len(sink.records) == 1
    assert bridge.session.ai_state is AIConnectionState.CLOSED
    assert bridge.session.stream_state is StreamState.STOPPED


def test_run_only_once(settings_factory):
    async def _run():
        bridge = _bridge(
            FakeTwilioSocket([stop_event()]), FakeConnector(FakeRealtimeSocket()), RecordingSink(), settings_factory()
        )
        await bridge.run()
        try:
            await bridge.run()
        except RuntimeError:
            return True
        return False

    assert asyncio.run(_run()) is True


def test_malformed_messages_are_skipped(settings_factory):
    twilio = FakeTwilioSocket(
        [
            "not json at all",
            {"event": "media", "media": {"payload": "@@not-base64@@"}},
            {"streamSid": "MZ001"},
            start_event(),
            media_event(),
            stop_event(),
        ]
    )
    ai = FakeRealtimeSocket(initial=["{broken", '{"no_type": true}'])

    bridge, _, sink = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types.count(APPEND) == 1
    assert bridge.pacer.commits == 1
    assert len(sink.records) == 1


def test_realtime_error_event_does_not_end_the_call(settings_factory):
    twilio = FakeTwilioSocket([start_event(), *[media_event() for _ in range(5)], stop_event()])
    ai = FakeRealtimeSocket(
        responses=[[{"type": "error", "error": {"code": "invalid_value", "message": "bad audio"}}]]
    )

    bridge, _, sink = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types.count(COMMIT) == 1
    assert twilio.close_codes == [1000]
    assert len(sink.records) == 1


def test_realtime_close_hangs_up_the_caller(settings_factory):
    twilio = FakeTwilioSocket([start_event(), media_event()], hang_up=False)
    ai = FakeRealtimeSocket(responses=[[{"type": "response.done"}]], close_after_responses=True)

    bridge, record, sink = _run_call(settings_factory(), twilio, ai)

    assert twilio.close_codes == [1000]
    assert sink.records == [record]
    assert bridge.session.ai_state is AIConnectionState.CLOSED


def test_realtime_transport_error_hangs_up_the_caller(settings_factory):
    twilio = FakeTwilioSocket([start_event()], hang_up=False)
    ai = FakeRealtimeSocket(responses=[[]], fail_after_responses=True)

    _, _, sink = _run_call(settings_factory(), twilio, ai)

    assert twilio.close_codes == [1000]
    assert len(sink.records) == 1


def test_caller_hang_up_without_stop_still_persists(settings_factory):
    twilio = FakeTwilioSocket([start_event(), media_event(), media_event()])
    ai = FakeRealtimeSocket()

    bridge, _, sink = _run_call(settings_factory(), twilio, ai)

    assert ai.sent_types[-2:] == [COMMIT, RESPOND]
    assert twilio.close_codes == []
    assert ai.close_calls == 1
    assert len(sink.records) == 1


def test_sink_failure_does_not_escape_the_call(settings_factory):
    twilio = FakeTwilioSocket([start_event(), stop_event()])

    _, record, sink = _run_call(settings_factory(), twilio, FakeRealtimeSocket(), RecordingSink(fail=True))

    assert len(sink.records) == 1
    assert record.outcome == "no_lead"


def test_unwritable_caller_socket_drops_assistant_audio(settings_factory):
    twilio = FakeTwilioSocket([start_event(), stop_event()], fail_send=True)
    ai = FakeRealtimeSocket(responses=[[{"type": "response.audio.delta", "delta": "AAAA"}, {"type": "response.done"}]])

    bridge, _, sink = _run_call(settings_factory(realtime_drain_timeout_seconds=2.0), twilio, ai)

    assert bridge.frames_to_caller == 0
    assert bridge.frames_dropped == 1
    assert len(sink.records) == 1


def test_caller_send_failure_tears_down_a_half_open_call(settings_factory):
    twilio = FakeTwilioSocket([start_event()], hang_up=False, fail_send=True)
    ai = FakeRealtimeSocket(responses=[[{"type": "response.audio.delta", "delta": "AAAA"}]])
    sink = RecordingSink()
    bridge = _bridge(twilio, FakeConnector(ai), sink, settings_factory())

    record = asyncio.run(asyncio.wait_for(bridge.run(), 2))

    assert ai.close_calls == 1
    assert bridge.ai_close_calls == 1
    assert twilio.close_codes == [1000]
    assert bridge.frames_dropped == 1
    assert sink.records == [record]
    assert bridge.session.stream_state is StreamState.STOPPED


def test_concurrent_calls_do_not_share_state(settings_factory):
    settings = settings_factory(realtime_drain_timeout_seconds=2.0)

    def _call(name, sid, frames):
        twilio = FakeTwilioSocket(
            [
                start_event(stream_sid=sid, call_sid=f"CA-{sid}"),
                *[media_event(stream_sid=sid) for _ in range(frames)],
                stop_event(sid),
            ]
        )
        ai = FakeRealtimeSocket(
            responses=[
                [
                    *text_deltas(f"LEAD: Name={name}; Phone=1; YMM=2015 Mazda 3; Service=Lockout; ZIP=1"),
                    {"type": "response.audio.delta", "delta": "AAAA"},
                    {"type": "response.done"},
                ],
                [{"type": "response.done"}],
            ]
        )
        bridge = _bridge(twilio, FakeConnector(ai), RecordingSink(), settings)
        return twilio, ai, bridge

    async def _run(calls):
        return await asyncio.gather(*(bridge.run() for _, _, bridge in calls))

    first = _call("Alice", "MZA", 5)
    second = _call("Bob", "MZB", 3)
    records = asyncio.run(_run([first, second]))

    assert [r.name for r in records] == ["Alice", "Bob"]
    assert [r.call_sid for r in records] == ["CA-MZA", "CA-MZB"]
    assert first[1].sent_types.count(APPEND) == 5
    assert second[1].sent_types.count(APPEND) == 3
    assert first[2].pacer.commits == 1
    assert second[2].pacer.commits == 1
    assert all(m["streamSid"] == "MZA" for m in first[0].sent)
    assert all(m["streamSid"] == "MZB" for m in second[0].sent)
