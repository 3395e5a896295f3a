"""Twilio Voice integration.

This module provides:
- Voice webhook (TwiML) that connects the call to the media stream WebSocket.
- Voicemail webhook used when the assistant is disabled.
- The media stream WebSocket itself, one CallBridge per connection.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from api.dependencies import get_lead_sink, get_realtime_connector
from config.settings import get_settings
from leads.schemas import LeadRecord
from leads.sinks import LeadSink
from telephony.bridge import CallBridge, RealtimeConnectorFn
from telephony.errors import LeadPersistenceError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _public_url(request: Request, path: str, route_name: str) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{path}"
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return str(request.url_for(route_name))


def _twiml_stream(*, greeting: str, voice: str, stream_url: str, parameters: dict[str, str]) -> str:
    params = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />"
        for name, value in parameters.items()
        if value
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say voice={quoteattr(voice)}>{escape(greeting)}</Say>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)}>{params}</Stream>"
        "</Connect>"
        "</Response>"
    )


def _twiml_voicemail(*, business_name: str, voice: str, action_url: str, max_length: int) -> str:
    prompt = (
        f"Thank you for calling {business_name}. Our office is currently closed. "
        "Please leave your name, phone number, the year, make and model of your vehicle, "
        "and the service you need. We will get back to you as soon as possible. Goodbye."
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say voice={quoteattr(voice)}>{escape(prompt)}</Say>"
        f"<Record maxLength=\"{int(max_length)}\" action={quoteattr(action_url)} method=\"POST\" />"
        "<Hangup/>"
        "</Response>"
    )


def _twiml_say(*, text: str, voice: str) -> str:
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say voice={quoteattr(voice)}>{escape(text)}</Say>"
        "</Response>"
    )


@router.post("/voice")
async def twilio_voice_webhook(request: Request) -> Response:
    settings = get_settings()
    form = await request.form()
    caller = str(form.get("From") or "").strip()
    called = str(form.get("To") or "").strip()
    call_sid = str(form.get("CallSid") or "").strip() or "unknown"

    if not settings.assistant_enabled:
        LOGGER.info("Assistant disabled; sending call %s to voicemail", call_sid)
        action_url = _public_url(request, "/api/twilio/voicemail", "twilio_voicemail_webhook")
        return _twiml_response(
            _twiml_voicemail(
                business_name=settings.business_name,
                voice=settings.twilio_say_voice,
                action_url=action_url,
                max_length=settings.voicemail_max_length_seconds,
            )
        )

    # WebSocket endpoint must be publicly reachable (wss:// recommended).
    stream_url = _to_ws_url(_public_url(request, "/api/twilio/media", "twilio_media_stream"))
    LOGGER.info("Connecting call %s from %s to %s", call_sid, caller or "unknown", stream_url)
    return _twiml_response(
        _twiml_stream(
            greeting=settings.twilio_greeting,
            voice=settings.twilio_say_voice,
            stream_url=stream_url,
            parameters={"caller": caller, "called": called},
        )
    )


@router.post("/voicemail")
async def twilio_voicemail_webhook(
    request: Request,
    lead_sink: LeadSink = Depends(get_lead_sink),
) -> Response:
    settings = get_settings()
    form = await request.form()
    caller = str(form.get("From") or "").strip() or "unknown"
    record = LeadRecord(
        outcome="voicemail",
        phone=caller,
        service_type="voicemail",
        caller=caller,
        called=str(form.get("To") or "").strip() or None,
        call_sid=str(form.get("CallSid") or "").strip() or None,
        recording_url=str(form.get("RecordingUrl") or "").strip() or None,
    )
    try:
        await lead_sink.save(record)
        LOGGER.info("Voicemail from %s saved (%s)", caller, record.recording_url)
    except LeadPersistenceError as exc:
        LOGGER.error("Voicemail from %s was not stored: %s", caller, exc.detail)

    return _twiml_response(_twiml_say(text="Thank you. Goodbye.", voice=settings.twilio_say_voice))


@router.websocket("/media")
async def twilio_media_stream(
    websocket: WebSocket,
    connector: RealtimeConnectorFn = Depends(get_realtime_connector),
    lead_sink: LeadSink = Depends(get_lead_sink),
) -> None:
    await websocket.accept()
    bridge = CallBridge(websocket, connector=connector, lead_sink=lead_sink)
    await bridge.run()
