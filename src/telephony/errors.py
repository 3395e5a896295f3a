"""Domain-specific exceptions for the call relay.

These exceptions are safe to import from API layers without opening any sockets.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Call relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class FrameParseError(BridgeError):
    status_code = 400
    default_detail = "Malformed media stream message."


class ConfigurationError(BridgeError):
    status_code = 500
    default_detail = "Realtime credentials are not configured."


class RealtimeConnectError(BridgeError):
    status_code = 502
    default_detail = "Could not connect to the realtime voice service."


class LeadPersistenceError(BridgeError):
    status_code = 503
    default_detail = "Lead storage failed."
