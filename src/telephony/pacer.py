from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from telephony import frames

LOGGER = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[None]]


class InputPacer:
    """Decides when caller audio appended to the realtime input buffer is committed.

    Two strategies:
    - ``count``: commit after ``commit_frames`` appended frames.
    - ``timer``: commit every ``interval_ms`` if anything was appended since the
      last commit. The timer is a task owned by the pacer; ``aclose()`` cancels it.

    A commit is always ``input_audio_buffer.commit`` followed by ``response.create``,
    and never happens while ``pending_audio`` is false.
    """

    def __init__(
        self,
        send: Sender,
        *,
        mode: Literal["count", "timer"] = "count",
        commit_frames: int = 5,
        interval_ms: int = 200,
        can_request_response: Callable[[], bool] | None = None,
    ) -> None:
        if commit_frames < 1:
            raise ValueError("commit_frames must be >= 1")
        self._send = send
        self._mode = mode
        self._commit_frames = commit_frames
        self._interval = interval_ms / 1000
        self._can_request_response = can_request_response or (lambda: True)
        self._lock = asyncio.Lock()
        self._timer: asyncio.Task | None = None
        self._closed = False

        self.pending_audio = False
        self.frames_since_commit = 0
        self.commits = 0
        self.responses_requested = 0

    @property
    def mode(self) -> str:
        return self._mode

    def start(self) -> None:
        if self._mode != "timer" or self._timer is not None or self._closed:
            return
        self._timer = asyncio.create_task(self._tick_forever(), name="input-pacer-timer")

    async def append(self, payload_b64: str) -> None:
        if self._closed:
            return
        async with self._lock:
            await self._send(frames.input_audio_append(payload_b64))
            self.pending_audio = True
            self.frames_since_commit += 1
            if self._mode == "count" and self.frames_since_commit >= self._commit_frames:
                await self._commit_locked(request_response=True)

    async def commit(self, *, request_response: bool = True) -> bool:
        """Commit buffered audio; returns False when there was nothing to commit."""

        async with self._lock:
            return await self._commit_locked(request_response=request_response)

    async def flush(self) -> bool:
        """Final commit on call termination; a no-op without pending audio."""

        flushed = await self.commit(request_response=True)
        if flushed:
            LOGGER.debug("Flushed trailing caller audio")
        return flushed

    async def aclose(self) -> None:
        self._closed = True
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def _commit_locked(self, *, request_response: bool) -> bool:
        if not self.pending_audio:
            return False

        await self._send(frames.input_audio_commit())
        self.pending_audio = False
        self.frames_since_commit = 0
        self.commits += 1

        if not request_response:
            return True
        if not self._can_request_response():
            LOGGER.debug("Response already in progress; not requesting another")
            return True
        await self._send(frames.response_create())
        self.responses_requested += 1
        return True

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.commit()
