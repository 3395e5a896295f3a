from __future__ import annotations

import asyncio

import pytest

from telephony.pacer import InputPacer


class Recorder:
    def __init__(self):
        self.sent = []

    async def __call__(self, event):
        self.sent.append(event)

    @property
    def types(self):
        return [event["type"] for event in self.sent]


def test_count_mode_commits_every_n_frames():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, commit_frames=3)
        for _ in range(7):
            await pacer.append("//8=")
        return recorder, pacer

    recorder, pacer = asyncio.run(_run())

    assert recorder.types == (
        ["input_audio_buffer.append"] * 3
        + ["input_audio_buffer.commit", "response.create"]
        + ["input_audio_buffer.append"] * 3
        + ["input_audio_buffer.commit", "response.create"]
        + ["input_audio_buffer.append"]
    )
    assert pacer.commits == 2
    assert pacer.pending_audio is True
    assert pacer.frames_since_commit == 1


def test_commit_without_pending_audio_is_a_no_op():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder)
        committed = await pacer.commit()
        flushed = await pacer.flush()
        return recorder, committed, flushed

    recorder, committed, flushed = asyncio.run(_run())

    assert committed is False
    assert flushed is False
    assert recorder.sent == []


def test_flush_commits_trailing_frames():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, commit_frames=5)
        for _ in range(2):
            await pacer.append("//8=")
        flushed = await pacer.flush()
        return recorder, pacer, flushed

    recorder, pacer, flushed = asyncio.run(_run())

    assert flushed is True
    assert recorder.types[-2:] == ["input_audio_buffer.commit", "response.create"]
    assert pacer.pending_audio is False


def test_every_commit_follows_an_append():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, commit_frames=2)
        for _ in range(5):
            await pacer.append("//8=")
            await pacer.commit()
            await pacer.commit()
        return recorder

    recorder = asyncio.run(_run())

    appended = False
    for kind in recorder.types:
        if kind == "input_audio_buffer.append":
            appended = True
        elif kind == "input_audio_buffer.commit":
            assert appended
            appended = False


def test_response_is_not_requested_while_one_is_active():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, commit_frames=1, can_request_response=lambda: False)
        await pacer.append("//8=")
        return recorder, pacer

    recorder, pacer = asyncio.run(_run())

    assert recorder.types == ["input_audio_buffer.append", "input_audio_buffer.commit"]
    assert pacer.commits == 1
    assert pacer.responses_requested == 0


def test_timer_mode_commits_only_when_audio_is_pending():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, mode="timer", interval_ms=20)
        pacer.start()
        await pacer.append("//8=")
        await pacer.append("//8=")
        await asyncio.sleep(0.1)
        commits_after_audio = pacer.commits
        await asyncio.sleep(0.1)
        commits_after_silence = pacer.commits
        await pacer.aclose()
        return recorder, commits_after_audio, commits_after_silence

    recorder, commits_after_audio, commits_after_silence = asyncio.run(_run())

    assert commits_after_audio == 1
    assert commits_after_silence == 1
    assert recorder.types.count("input_audio_buffer.append") == 2


def test_aclose_stops_timer_and_ignores_later_frames():
    async def _run():
        recorder = Recorder()
        pacer = InputPacer(recorder, mode="timer", interval_ms=20)
        pacer.start()
        await pacer.aclose()
        await pacer.append("//8=")
        await asyncio.sleep(0.05)
        return recorder

    recorder = asyncio.run(_run())

    assert recorder.sent == []


def test_count_mode_never_starts_a_timer():
    async def _run():
        pacer = InputPacer(Recorder(), mode="count")
        pacer.start()
        return pacer._timer

    assert asyncio.run(_run()) is None


def test_commit_frames_must_be_positive():
    with pytest.raises(ValueError):
        InputPacer(Recorder(), commit_frames=0)
