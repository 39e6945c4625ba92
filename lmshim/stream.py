from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Protocol

from .errors import StreamEnd, UpstreamError
from .schemas.openai import ChatCompletionChunk
from .transform import DONE_FRAME, encode_event, finalize_event, reshape_event, sse_frame


logger = logging.getLogger("lmshim.stream")


class EventSource(Protocol):
    async def recv(self) -> ChatCompletionChunk: ...

    async def aclose(self) -> None: ...


class StreamTranslator:
    """One-event-delayed relay from upstream chunks to LM Studio shaped SSE frames.

    States are *idle* (nothing pending) and *pending* (one reshaped event whose
    successor has not been seen yet). An event is only emitted once a newer one
    arrives or the stream ends; in the latter case it is the last event and may
    be rewritten into an explicit stop event. After ``finish()`` the translator
    is closed.
    """

    def __init__(self) -> None:
        self._pending: Optional[ChatCompletionChunk] = None
        self._pending_data: Optional[bytes] = None
        self._closed = False
        self.received = 0
        self.emitted = 0

    @property
    def pending(self) -> Optional[ChatCompletionChunk]:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, event: ChatCompletionChunk) -> List[bytes]:
        if self._closed:
            raise RuntimeError("translator already finished")
        self.received += 1
        frames: List[bytes] = []
        if self._pending is not None:
            # a successor exists, so the pending event is not final
            frames.append(self._emit(self._pending_data))
            self._clear()
        reshaped = reshape_event(event)
        data = encode_event(reshaped)
        if data is not None:
            self._pending, self._pending_data = reshaped, data
        return frames

    def finish(self) -> List[bytes]:
        if self._closed:
            raise RuntimeError("translator already finished")
        self._closed = True
        frames: List[bytes] = []
        if self._pending is not None:
            final = finalize_event(self._pending)
            data = self._pending_data if final is self._pending else encode_event(final)
            self._clear()
            if data is not None:
                frames.append(self._emit(data))
        frames.append(DONE_FRAME)
        return frames

    def _clear(self) -> None:
        self._pending = None
        self._pending_data = None

    def _emit(self, data: bytes) -> bytes:
        self.emitted += 1
        return sse_frame(data)


async def relay_stream(
    upstream: EventSource,
    translator: Optional[StreamTranslator] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[bytes]:
    """Pull events from ``upstream`` and yield SSE frames ending with ``[DONE]``.

    End of stream, the call deadline and upstream errors all take the same
    finishing path. The upstream handle is closed on every exit, including a
    client disconnect or cancellation of this generator.
    """
    translator = translator or StreamTranslator()
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info("[proxy] client disconnected during streaming")
                return
            try:
                event = await upstream.recv()
            except StreamEnd:
                logger.info("[STREAM END] err: EOF")
                break
            except UpstreamError as e:
                logger.warning("[STREAM END] err: %s: %s", type(e).__name__, e)
                break
            for frame in translator.feed(event):
                yield frame
        for frame in translator.finish():
            yield frame
        logger.debug("[proxy] stream done, received=%d emitted=%d", translator.received, translator.emitted)
    finally:
        await upstream.aclose()
