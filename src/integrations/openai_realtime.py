"""Connection to the OpenAI Realtime API over a WebSocket."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol
from urllib.parse import urlencode

import websockets
from websockets.exceptions import InvalidHandshake, InvalidStatus

from config.settings import Settings, get_settings
from telephony.errors import ConfigurationError, RealtimeConnectError

LOGGER = logging.getLogger(__name__)


class RealtimeSocket(Protocol):
    """The subset of ``websockets`` client connections the call bridge relies on."""

    async def send(self, message: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def close(self) -> None:  # pragma: no cover - protocol stub
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:  # pragma: no cover - protocol stub
        ...


class RealtimeConnector:
    """Opens one authenticated realtime session socket per call."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def url(self) -> str:
        base = self._settings.openai_realtime_url.rstrip("/")
        return f"{base}?{urlencode({'model': self._settings.openai_realtime_model or ''})}"

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    def ensure_configured(self) -> None:
        if not self._settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        if not self._settings.openai_realtime_model:
            raise ConfigurationError("OPENAI_REALTIME_MODEL is not configured")

    async def __call__(self) -> RealtimeSocket:
        self.ensure_configured()
        LOGGER.info("Connecting to realtime session: %s", self.url)
        try:
            return await websockets.connect(
                self.url,
                additional_headers=self.headers(),
                open_timeout=self._settings.openai_connect_timeout_seconds,
                ping_interval=20,
                ping_timeout=20,
                max_size=16 * 1024 * 1024,
            )
        except InvalidStatus as exc:
            raise RealtimeConnectError(
                f"Realtime handshake rejected with HTTP {exc.response.status_code}"
            ) from exc
        except (InvalidHandshake, OSError, asyncio.TimeoutError) as exc:
            raise RealtimeConnectError(f"Realtime connection failed: {exc}") from exc
