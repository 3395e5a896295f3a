from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

LOGGER = logging.getLogger(__name__)


class AIConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class StreamState(str, Enum):
    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    STOPPED = "stopped"


class CallEvent(str, Enum):
    TELEPHONY_START = "telephony_start"
    TELEPHONY_STOP = "telephony_stop"
    AI_OPEN = "ai_open"
    AI_CLOSE = "ai_close"
    SOCKET_ERROR = "socket_error"


_AI_TRANSITIONS: dict[tuple[AIConnectionState, CallEvent], AIConnectionState] = {
    (AIConnectionState.CONNECTING, CallEvent.AI_OPEN): AIConnectionState.OPEN,
    (AIConnectionState.CONNECTING, CallEvent.AI_CLOSE): AIConnectionState.CLOSED,
    (AIConnectionState.CONNECTING, CallEvent.SOCKET_ERROR): AIConnectionState.CLOSED,
    (AIConnectionState.OPEN, CallEvent.AI_CLOSE): AIConnectionState.CLOSED,
    (AIConnectionState.OPEN, CallEvent.SOCKET_ERROR): AIConnectionState.CLOSED,
}

_STREAM_TRANSITIONS: dict[tuple[StreamState, CallEvent], StreamState] = {
    (StreamState.AWAITING_START, CallEvent.TELEPHONY_START): StreamState.STREAMING,
    (StreamState.AWAITING_START, CallEvent.TELEPHONY_STOP): StreamState.STOPPED,
    (StreamState.AWAITING_START, CallEvent.SOCKET_ERROR): StreamState.STOPPED,
    (StreamState.STREAMING, CallEvent.TELEPHONY_STOP): StreamState.STOPPED,
    (StreamState.STREAMING, CallEvent.SOCKET_ERROR): StreamState.STOPPED,
}


@dataclass
class CallSession:
    """State of one call, owned by exactly one CallBridge and never shared."""

    stream_sid: str | None = None
    call_sid: str | None = None
    caller: str | None = None
    called: str | None = None
    ai_state: AIConnectionState = AIConnectionState.CONNECTING
    stream_state: StreamState = StreamState.AWAITING_START
    response_active: bool = False
    last_lead_line: str | None = None

    @property
    def label(self) -> str:
        return self.stream_sid or self.call_sid or "pending"

    @property
    def ai_open(self) -> bool:
        return self.ai_state is AIConnectionState.OPEN

    @property
    def streaming(self) -> bool:
        return self.stream_state is StreamState.STREAMING

    def apply(self, event: CallEvent) -> None:
        """Advance both legs; events without a transition leave a leg unchanged."""

        ai_before, stream_before = self.ai_state, self.stream_state
        self.ai_state = _AI_TRANSITIONS.get((ai_before, event), ai_before)
        self.stream_state = _STREAM_TRANSITIONS.get((stream_before, event), stream_before)
        if (self.ai_state, self.stream_state) != (ai_before, stream_before):
            LOGGER.debug(
                "Call %s on %s: ai %s -> %s, stream %s -> %s",
                self.label,
                event.value,
                ai_before.value,
                self.ai_state.value,
                stream_before.value,
                self.stream_state.value,
            )
