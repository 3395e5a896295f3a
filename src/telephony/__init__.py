"""Per-call media relay between Twilio Media Streams and a realtime voice session.

PSTN -> Twilio -> <Connect><Stream> (WebSocket) -> CallBridge -> OpenAI Realtime (WebSocket).
Both legs carry G.711 mu-law at 8kHz, so frames are re-wrapped, never transcoded.
"""
