"""Per-call bridge between a Twilio media stream and an OpenAI Realtime session."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from config.settings import Settings, get_settings
from integrations.openai_realtime import RealtimeSocket
from leads.extraction import LEAD_MARKER, LeadExtractor
from leads.schemas import LeadRecord
from leads.sinks import LeadSink
from prompts.loader import render_prompt
from telephony import frames
from telephony.errors import ConfigurationError, FrameParseError, LeadPersistenceError, RealtimeConnectError
from telephony.pacer import InputPacer
from telephony.session import CallEvent, CallSession

LOGGER = logging.getLogger(__name__)

RealtimeConnectorFn = Callable[[], Awaitable[RealtimeSocket]]


def build_instructions(settings: Settings) -> str:
    return render_prompt(
        "lead_capture.txt",
        assistant_name=settings.assistant_name,
        business_name=settings.business_name,
        marker=LEAD_MARKER,
    )


class CallBridge:
    """Relays one call between Twilio and the realtime voice session.

    Lifecycle:
    - ``run()`` opens the realtime socket once and sends one ``session.update``.
    - Twilio ``start`` records the stream handle and asks for a greeting.
    - Caller audio goes through the ``InputPacer``; assistant audio goes straight
      back to Twilio, addressed by ``streamSid``.
    - Assistant text is scanned for the ``LEAD:`` line.
    - Whichever leg ends first, ``close()`` flushes, closes both sockets and
      hands exactly one ``LeadRecord`` to the sink.

    All state lives on the instance; concurrent calls never share anything.
    """

    def __init__(
        self,
        websocket: WebSocket,
        *,
        connector: RealtimeConnectorFn,
        lead_sink: LeadSink,
        settings: Settings | None = None,
        instructions: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ws = websocket
        self._connector = connector
        self._sink = lead_sink
        self._instructions = instructions or build_instructions(self._settings)

        self.session = CallSession()
        self.extractor = LeadExtractor()
        self.pacer = InputPacer(
            self._send_realtime,
            mode=self._settings.pacer_mode,
            commit_frames=self._settings.pacer_commit_frames,
            interval_ms=self._settings.pacer_commit_interval_ms,
            can_request_response=lambda: not self.session.response_active,
        )
        self.record: LeadRecord | None = None
        self.frames_to_caller = 0
        self.frames_dropped = 0

        self._ai: RealtimeSocket | None = None
        self._ai_connect_attempts = 0
        self._ai_close_calls = 0
        self._response_finished = asyncio.Event()
        self._response_finished.set()
        self._transport_failed = asyncio.Event()
        self._telephony_close_sent = False
        self._started = False
        self._closed = False
        self._persisted = False

    @property
    def pending_audio(self) -> bool:
        return self.pacer.pending_audio

    @property
    def ai_connect_attempts(self) -> int:
        return self._ai_connect_attempts

    @property
    def ai_close_calls(self) -> int:
        return self._ai_close_calls

    async def run(self) -> LeadRecord | None:
        if self._started:
            raise RuntimeError("CallBridge.run() may only be called once")
        self._started = True

        LOGGER.info("Twilio media stream connected")
        try:
            if await self._open_realtime():
                await self._relay()
            else:
                await self._close_telephony(code=1011)
        finally:
            await self.close()
        return self.record

    async def close(self) -> None:
        """Tear the call down; safe to call any number of times."""

        if self._closed:
            return
        self._closed = True

        await self.pacer.aclose()
        await self._close_realtime()
        await self._close_telephony()
        self.session.apply(CallEvent.TELEPHONY_STOP)
        LOGGER.info(
            "Call %s closed: %d commits, %d frames to caller, %d dropped",
            self.session.label,
            self.pacer.commits,
            self.frames_to_caller,
            self.frames_dropped,
        )
        await self._persist()

    # Realtime leg

    async def _open_realtime(self) -> bool:
        self._ai_connect_attempts += 1
        try:
            self._ai = await self._connector()
        except (ConfigurationError, RealtimeConnectError) as exc:
            LOGGER.error("Realtime leg unavailable, ending call: %s", exc.detail)
            self.session.apply(CallEvent.AI_CLOSE)
            return False

        self.session.apply(CallEvent.AI_OPEN)
        LOGGER.info("Realtime session connected")
        await self._send_realtime(
            frames.session_update(instructions=self._instructions, voice=self._settings.openai_realtime_voice)
        )
        return self.session.ai_open

    async def _send_realtime(self, event: dict[str, Any]) -> None:
        if self._ai is None or not self.session.ai_open:
            LOGGER.debug("Realtime leg not open; dropping %s", event["type"])
            return
        try:
            await self._ai.send(json.dumps(event))
        except ConnectionClosed as exc:
            LOGGER.warning("Realtime send failed for %s: %s", self.session.label, exc)
            self.session.apply(CallEvent.SOCKET_ERROR)
            self._response_finished.set()
            self._transport_failed.set()
            return
        if event["type"] == "response.create":
            self._response_finished.clear()

    async def _request_response(self, reason: str) -> bool:
        if not self.session.ai_open:
            return False
        if self.session.response_active:
            LOGGER.debug("Skipping %s response; one is already in progress", reason)
            return False
        await self._send_realtime(frames.response_create())
        return True

    async def _pump_realtime(self, ai: RealtimeSocket) -> None:
        try:
            async for raw in ai:
                await self._on_realtime_message(raw)
        except ConnectionClosedError as exc:
            LOGGER.warning("Realtime socket for %s failed: %s", self.session.label, exc)
            self.session.apply(CallEvent.SOCKET_ERROR)
        else:
            LOGGER.info("Realtime socket for %s closed", self.session.label)
        finally:
            self.session.apply(CallEvent.AI_CLOSE)
            self._response_finished.set()

    async def _on_realtime_message(self, raw: str | bytes) -> None:
        try:
            event = frames.parse_realtime_event(raw)
        except FrameParseError as exc:
            LOGGER.warning("Discarding malformed realtime event: %s", exc.detail)
            return

        kind = event["type"]
        if kind == "response.audio.delta":
            payload = frames.realtime_audio_delta(event)
            if payload:
                await self._send_caller_audio(payload)
        elif kind in frames.TEXT_DELTA_EVENTS:
            self.extractor.feed(str(event.get("delta") or ""))
            self.session.last_lead_line = self.extractor.last_line
        elif kind in frames.TEXT_DONE_EVENTS:
            self.extractor.end_of_text()
            self.session.last_lead_line = self.extractor.last_line
        elif kind == "response.created":
            self.session.response_active = True
            self._response_finished.clear()
        elif kind == "response.done":
            self.session.response_active = False
            self.extractor.end_of_text()
            self.session.last_lead_line = self.extractor.last_line
            self._response_finished.set()
        elif kind == "error":
            error = event.get("error") or {}
            LOGGER.warning(
                "Realtime error on %s (%s): %s",
                self.session.label,
                error.get("code") or error.get("type") or "unknown",
                error.get("message") or "",
            )
        else:
            LOGGER.debug("Realtime event %s", kind)

    async def _finish_realtime(self) -> None:
        """Commit trailing audio and give the assistant a moment to finish its last answer."""

        if not self.session.ai_open:
            return
        await self.pacer.flush()

        timeout = self._settings.realtime_drain_timeout_seconds
        if timeout <= 0 or self._response_finished.is_set():
            return
        try:
            await asyncio.wait_for(self._response_finished.wait(), timeout)
        except asyncio.TimeoutError:
            LOGGER.info("No final response for %s within %.1fs", self.session.label, timeout)

    async def _close_realtime(self) -> None:
        if self._ai is None or self._ai_close_calls:
            return
        self._ai_close_calls += 1
        try:
            await self._ai.close()
        except (ConnectionClosed, OSError) as exc:
            LOGGER.debug("Realtime close for %s raised %s", self.session.label, exc)
        self.session.apply(CallEvent.AI_CLOSE)

    # Telephony leg

    async def _pump_telephony(self) -> None:
        while True:
            try:
                raw = await self._ws.receive_text()
            except WebSocketDisconnect:
                LOGGER.info("Twilio stream %s disconnected", self.session.label)
                self.session.apply(CallEvent.TELEPHONY_STOP)
                return

            try:
                event = frames.parse_twilio_message(raw)
            except FrameParseError as exc:
                LOGGER.warning("Discarding malformed Twilio message: %s", exc.detail)
                continue

            if event.event == "start":
                await self._on_start(event)
            elif event.event == "media":
                if event.is_inbound_audio:
                    await self._on_caller_audio(event.payload)
            elif event.event == "stop":
                LOGGER.info("Twilio stream %s stopped", self.session.label)
                self.session.apply(CallEvent.TELEPHONY_STOP)
                return
            else:
                LOGGER.debug("Twilio event %s", event.event)

    async def _on_start(self, event: frames.TwilioEvent) -> None:
        self.session.stream_sid = event.stream_sid
        self.session.call_sid = event.call_sid
        self.session.caller = event.custom_parameters.get("caller")
        self.session.called = event.custom_parameters.get("called")
        self.session.apply(CallEvent.TELEPHONY_START)
        LOGGER.info("Twilio stream %s started (call %s)", event.stream_sid, event.call_sid)
        await self._request_response("greeting")

    async def _on_caller_audio(self, payload: str) -> None:
        if not self.session.ai_open:
            LOGGER.debug("Realtime leg not open; dropping caller audio")
            return
        await self.pacer.append(payload)

    def _telephony_writable(self) -> bool:
        return (
            not self._telephony_close_sent
            and self._ws.application_state == WebSocketState.CONNECTED
            and self._ws.client_state == WebSocketState.CONNECTED
        )

    async def _send_caller_audio(self, payload: str) -> None:
        stream_sid = self.session.stream_sid
        if not stream_sid or not self._telephony_writable():
            self.frames_dropped += 1
            return
        try:
            await self._ws.send_text(frames.twilio_media_message(stream_sid, payload))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            LOGGER.warning("Twilio socket for %s not writable: %s", stream_sid, exc)
            self.session.apply(CallEvent.SOCKET_ERROR)
            self._transport_failed.set()
            self.frames_dropped += 1
            return
        self.frames_to_caller += 1

    async def _close_telephony(self, code: int = 1000) -> None:
        if self._telephony_close_sent:
            return
        self._telephony_close_sent = True
        if (
            self._ws.application_state != WebSocketState.CONNECTED
            or self._ws.client_state != WebSocketState.CONNECTED
        ):
            return
        try:
            await self._ws.close(code=code)
        except (RuntimeError, OSError) as exc:
            LOGGER.debug("Twilio close for %s raised %s", self.session.label, exc)

    # Orchestration

    async def _relay(self) -> None:
        if self._ai is None:
            return
        telephony = asyncio.create_task(self._pump_telephony(), name="twilio-pump")
        realtime = asyncio.create_task(self._pump_realtime(self._ai), name="realtime-pump")
        failed = asyncio.create_task(self._transport_failed.wait(), name="transport-watch")
        self.pacer.start()
        try:
            done, _ = await asyncio.wait({telephony, realtime, failed}, return_when=asyncio.FIRST_COMPLETED)
            if failed in done:
                LOGGER.warning("Transport error on %s; tearing the call down", self.session.label)
                await self._close_realtime()
                await self._close_telephony()
            elif telephony in done:
                self._log_task_failure(telephony)
                await self._finish_realtime()
                await self._close_realtime()
            else:
                self._log_task_failure(realtime)
                LOGGER.info("Realtime leg ended first; hanging up %s", self.session.label)
                await self._close_telephony()
                telephony.cancel()
        finally:
            for task in (telephony, realtime, failed):
                if not task.done():
                    task.cancel()
            await asyncio.gather(telephony, realtime, failed, return_exceptions=True)

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("%s crashed", task.get_name(), exc_info=exc)

    async def _persist(self) -> None:
        if self._persisted:
            return
        self._persisted = True

        record = self.extractor.record()
        if record is None:
            record = LeadRecord(outcome="no_lead", raw_line=LEAD_MARKER)
        record = record.model_copy(
            update={
                "call_sid": self.session.call_sid,
                "caller": self.session.caller,
                "called": self.session.called,
            }
        )
        self.record = record

        try:
            await self._sink.save(record)
        except LeadPersistenceError as exc:
            LOGGER.error("Lead for %s was not stored: %s", self.session.label, exc.detail)
        except Exception as exc:
            LOGGER.exception("Lead hand-off failed for %s: %s", self.session.label, exc)
        else:
            LOGGER.info("Lead for %s handed off (outcome=%s)", self.session.label, record.outcome)
