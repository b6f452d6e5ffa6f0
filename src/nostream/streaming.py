"""Emulated SSE streaming on top of one non-streaming upstream call.

While the orchestrator call is in flight a keep-alive task writes empty
``chat.completion.chunk`` frames at a fixed interval. When the call returns,
the keep-alive task is stopped and the response is replayed as a role
chunk, one content chunk carrying the whole completion, a finish chunk and
the ``[DONE]`` marker.

Session lifecycle::

    INIT -> KEEPALIVE -> CLOSING_OK ----> CLOSED
                     \\-> CLOSING_ERROR -/
                      \\-> CANCELLED ---/

The keep-alive task and the completion task share nothing but the
session's ``cancelled``/``completed`` flags. Every write checks both flags
first. A client disconnect cancels the session but not the upstream call,
whose result is dropped when it arrives.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .completion import CompletionOrchestrator
from .errors import make_error_body
from .result import Err
from .types import (
    ChatCompletionResponse,
    ChatRequest,
    content_chunk,
    finish_chunk,
    keepalive_chunk,
    role_chunk,
)

logger = logging.getLogger(__name__)

DONE_FRAME = b"data: [DONE]\n\n"
# keep-alives are dropped once this many frames wait unread
KEEPALIVE_BACKLOG = 8
COMPLETION_ERROR_TYPE = "completion_error"

# keeps detached completion tasks alive after their stream went away
_BACKGROUND_TASKS: set[asyncio.Task[Any]] = set()


def encode_frame(payload: dict[str, Any]) -> bytes:
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n".encode("utf-8")


class StreamState(str, Enum):
    INIT = "init"
    KEEPALIVE = "keepalive"
    CLOSING_OK = "closing_ok"
    CLOSING_ERROR = "closing_error"
    CANCELLED = "cancelled"
    CLOSED = "closed"


_TRANSITIONS: dict[StreamState, frozenset[StreamState]] = {
    StreamState.INIT: frozenset(
        {StreamState.KEEPALIVE, StreamState.CLOSING_ERROR, StreamState.CANCELLED}
    ),
    StreamState.KEEPALIVE: frozenset(
        {StreamState.CLOSING_OK, StreamState.CLOSING_ERROR, StreamState.CANCELLED}
    ),
    StreamState.CLOSING_OK: frozenset(
        {StreamState.CLOSED, StreamState.CLOSING_ERROR, StreamState.CANCELLED}
    ),
    StreamState.CLOSING_ERROR: frozenset({StreamState.CLOSED, StreamState.CANCELLED}),
    StreamState.CANCELLED: frozenset({StreamState.CLOSED}),
    StreamState.CLOSED: frozenset(),
}


def _temp_id() -> str:
    return f"chatcmpl-{int(time.time() * 1000)}"


@dataclass
class StreamSession:
    model: str
    temp_id: str = field(default_factory=_temp_id)
    temp_created: int = field(default_factory=lambda: int(time.time()))
    state: StreamState = StreamState.INIT
    cancelled: bool = False
    completed: bool = False
    timer: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    @property
    def writable(self) -> bool:
        return not (self.completed or self.cancelled)

    def transition(self, target: StreamState) -> bool:
        """Move to ``target`` if allowed from the current state."""
        if target not in _TRANSITIONS[self.state]:
            return False
        logger.debug("stream.state id=%s %s->%s", self.temp_id, self.state.value, target.value)
        self.state = target
        return True


class ChannelClosed(Exception):
    """Raised when writing to or closing a channel that is already closed."""


class FrameChannel:
    """Single-consumer queue of encoded SSE frames.

    Response frames are always queued. Keep-alive frames go through
    ``offer`` and are dropped while ``backlog`` frames are still unread, so a
    consumer that stopped reading cannot make the queue grow without bound.
    """

    def __init__(self, backlog: int = KEEPALIVE_BACKLOG) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._backlog = backlog
        self.closed = False
        self.sent = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, frame: bytes) -> None:
        if self.closed:
            raise ChannelClosed("channel is closed")
        self._queue.put_nowait(frame)
        self.sent += 1

    def offer(self, frame: bytes) -> bool:
        if self.closed:
            raise ChannelClosed("channel is closed")
        if self._queue.qsize() >= self._backlog:
            self.dropped += 1
            return False
        self.send(frame)
        return True

    def close(self) -> None:
        if self.closed:
            raise ChannelClosed("channel already closed")
        self.closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class FakeStream:
    def __init__(
        self,
        orchestrator: CompletionOrchestrator,
        request: ChatRequest,
        *,
        interval: float,
        max_retries: int | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("keep-alive interval must be positive")
        self._orchestrator = orchestrator
        self._request = request
        self._interval = interval
        self._max_retries = max_retries
        self.session = StreamSession(model=request.model)
        self.channel = FrameChannel()
        self.worker: asyncio.Task[None] | None = None

    def start(self) -> None:
        session = self.session
        if not session.transition(StreamState.KEEPALIVE):
            return
        session.timer = asyncio.create_task(self._keepalive_loop())
        worker = asyncio.create_task(self._run())
        _BACKGROUND_TASKS.add(worker)
        worker.add_done_callback(_BACKGROUND_TASKS.discard)
        self.worker = worker
        logger.info(
            "stream.started id=%s model=%s interval=%.3f",
            session.temp_id,
            session.model,
            self._interval,
        )

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield encoded frames until the stream closes.

        Leaving the iteration early (client gone) cancels the session.
        """
        self.start()
        try:
            async for frame in self.channel:
                yield frame
        finally:
            if not self.session.closed:
                self.cancel()

    def cancel(self) -> None:
        session = self.session
        if session.cancelled or session.closed:
            return
        session.cancelled = True
        self._stop_timer()
        session.transition(StreamState.CANCELLED)
        logger.info("stream.cancelled id=%s model=%s", session.temp_id, session.model)
        self._close()

    async def _keepalive_loop(self) -> None:
        session = self.session
        frame = encode_frame(keepalive_chunk(session.temp_id, session.temp_created, session.model))
        while True:
            await asyncio.sleep(self._interval)
            if not session.writable or session.state is not StreamState.KEEPALIVE:
                return
            if self._write(frame, keepalive=True):
                logger.debug("stream.keepalive id=%s bytes=%d", session.temp_id, len(frame))

    async def _run(self) -> None:
        session = self.session
        try:
            result = await self._orchestrator.run(self._request, self._max_retries)
        except Exception as exc:
            logger.exception("stream.completion_crashed id=%s model=%s", session.temp_id, session.model)
            self._fail(str(exc) or exc.__class__.__name__)
            return
        self._stop_timer()
        if isinstance(result, Err):
            logger.error(
                "stream.completion_failed id=%s model=%s error=%s",
                session.temp_id,
                session.model,
                result.error.message,
            )
            self._fail(result.error.message)
            return

        response = result.value
        logger.info(
            "stream.completion_ok id=%s model=%s prompt_tokens=%d completion_tokens=%d",
            session.temp_id,
            session.model,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )
        if session.cancelled:
            logger.info("stream.result_discarded id=%s model=%s", session.temp_id, session.model)
            return
        try:
            self._emit_response(response)
        except Exception as exc:
            logger.error("stream.emit_failed id=%s error=%s", session.temp_id, exc)
            self._fail(str(exc) or exc.__class__.__name__)

    def _emit_response(self, response: ChatCompletionResponse) -> None:
        session = self.session
        if not session.transition(StreamState.CLOSING_OK):
            return
        payloads = (role_chunk(response), content_chunk(response), finish_chunk(response))
        for payload in payloads:
            if payload is None:
                continue
            if not self._write(encode_frame(payload)):
                return
        if not self._write(DONE_FRAME):
            return
        session.completed = True
        logger.debug("stream.done id=%s response_id=%s", session.temp_id, response.id)
        self._close()

    def _fail(self, message: str) -> None:
        session = self.session
        self._stop_timer()
        if session.cancelled or session.closed:
            return
        session.transition(StreamState.CLOSING_ERROR)
        frame = encode_frame(make_error_body(message=message, error_type=COMPLETION_ERROR_TYPE))
        if self._write(frame):
            self._close()

    def _write(self, frame: bytes, *, keepalive: bool = False) -> bool:
        session = self.session
        if not session.writable:
            return False
        try:
            if keepalive:
                if not self.channel.offer(frame):
                    logger.debug(
                        "stream.keepalive_dropped id=%s pending=%d",
                        session.temp_id,
                        self.channel.pending,
                    )
                    return False
            else:
                self.channel.send(frame)
        except ChannelClosed:
            logger.debug("stream.write_after_close id=%s", session.temp_id)
            self.cancel()
            return False
        return True

    def _stop_timer(self) -> None:
        timer = self.session.timer
        self.session.timer = None
        if timer is not None and not timer.done():
            timer.cancel()

    def _close(self) -> None:
        session = self.session
        self._stop_timer()
        if not session.transition(StreamState.CLOSED):
            return
        try:
            self.channel.close()
        except ChannelClosed:
            logger.debug("stream.close_duplicate id=%s", session.temp_id)
        logger.debug("stream.closed id=%s", session.temp_id)
