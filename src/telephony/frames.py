"""Re-wrapping of audio frames between the Twilio and OpenAI Realtime envelopes.

Both legs use G.711 mu-law @ 8kHz, so payloads pass through as base64 text.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Final

from telephony.errors import FrameParseError

AUDIO_FORMAT: Final[str] = "g711_ulaw"

TEXT_DELTA_EVENTS: Final[frozenset[str]] = frozenset(
    {"response.text.delta", "response.audio_transcript.delta"}
)
TEXT_DONE_EVENTS: Final[frozenset[str]] = frozenset(
    {"response.text.done", "response.audio_transcript.done"}
)


@dataclass(frozen=True, slots=True)
class TwilioEvent:
    event: str
    stream_sid: str | None = None
    call_sid: str | None = None
    payload: str | None = None
    track: str | None = None
    custom_parameters: dict[str, str] = field(default_factory=dict)

    @property
    def is_inbound_audio(self) -> bool:
        return self.event == "media" and bool(self.payload) and self.track in (None, "inbound")


def _ensure_base64(payload: Any) -> str:
    if not isinstance(payload, str) or not payload:
        raise FrameParseError("Media payload missing")
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FrameParseError("Media payload is not valid base64") from exc
    return payload


def _load_object(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FrameParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise FrameParseError("Message is not a JSON object")
    return message


def parse_twilio_message(text: str) -> TwilioEvent:
    """Parse one Twilio Media Streams message.

    Raises:
        FrameParseError: if the envelope is not JSON, lacks an event name or
            carries an unusable media payload.
    """

    message = _load_object(text)
    event = str(message.get("event") or "")
    if not event:
        raise FrameParseError("Message has no event name")

    stream_sid = message.get("streamSid")
    if event == "start":
        start = message.get("start") or {}
        stream_sid = start.get("streamSid") or stream_sid
        if not stream_sid:
            raise FrameParseError("Start event carries no streamSid")
        params = start.get("customParameters") or {}
        return TwilioEvent(
            event=event,
            stream_sid=str(stream_sid),
            call_sid=start.get("callSid"),
            custom_parameters={str(k): str(v) for k, v in params.items()},
        )

    if event == "media":
        media = message.get("media") or {}
        return TwilioEvent(
            event=event,
            stream_sid=stream_sid,
            payload=_ensure_base64(media.get("payload")),
            track=media.get("track"),
        )

    return TwilioEvent(event=event, stream_sid=stream_sid)


def twilio_media_message(stream_sid: str, payload_b64: str) -> str:
    """Envelope one outbound audio fragment for the caller."""

    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload_b64}})


def parse_realtime_event(text: str | bytes) -> dict[str, Any]:
    message = _load_object(text)
    if not isinstance(message.get("type"), str):
        raise FrameParseError("Realtime event has no type")
    return message


def realtime_audio_delta(event: dict[str, Any]) -> str | None:
    delta = event.get("delta")
    if isinstance(delta, str) and delta:
        return delta
    return None


def session_update(*, instructions: str, voice: str) -> dict[str, Any]:
    return {
        "type": "session.update",
        "session": {
            "modalities": ["audio", "text"],
            "instructions": instructions,
            "voice": voice,
            "input_audio_format": AUDIO_FORMAT,
            "output_audio_format": AUDIO_FORMAT,
            # Commits are driven by the input pacer, not server-side VAD.
            "turn_detection": None,
        },
    }


def input_audio_append(payload_b64: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload_b64}


def input_audio_commit() -> dict[str, Any]:
    return {"type": "input_audio_buffer.commit"}


def response_create() -> dict[str, Any]:
    return {"type": "response.create"}
