"""
Server-sent-event decoding for chat responses.

The backend streams ``data: <json>`` lines and finishes with
``data: [DONE]``. Each JSON object carries a ``message`` fragment.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, List, Optional

import aiohttp

from duckchat.exceptions.protocol import DecodeWarning, TransportError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"


class SSEEventKind(str, Enum):
    MESSAGE = "message"
    DONE = "done"
    SKIP = "skip"
    MALFORMED = "malformed"


@dataclass
class SSEEvent:
    kind: SSEEventKind
    text: str = ""
    warning: Optional[DecodeWarning] = None


def decode_line(line: str) -> SSEEvent:
    """Decode one SSE line (without its trailing newline)."""
    if not line.startswith(DATA_PREFIX):
        return SSEEvent(SSEEventKind.SKIP)

    data = line[len(DATA_PREFIX):]
    if data.strip() == DONE_MARKER:
        return SSEEvent(SSEEventKind.DONE)

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        return SSEEvent(
            SSEEventKind.MALFORMED, warning=DecodeWarning(line=line, reason=e.msg)
        )

    if not isinstance(payload, dict):
        return SSEEvent(
            SSEEventKind.MALFORMED,
            warning=DecodeWarning(line=line, reason="payload is not an object"),
        )

    message = payload.get("message")
    if not isinstance(message, str) or not message:
        return SSEEvent(SSEEventKind.SKIP)
    return SSEEvent(SSEEventKind.MESSAGE, text=message)


_CLOSED = object()


class ChatStream:
    """
    Async iterator of text chunks for one chat response.

    A background task reads the HTTP body into an unbounded queue, so the
    reader never stalls the connection. The stream ends exactly once: on
    ``[DONE]``, on end of body, on a read error (kept in ``error``) or on
    ``aclose()``.
    """

    def __init__(self, response: aiohttp.ClientResponse):
        self._response = response
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._finished = False
        self.warnings: List[DecodeWarning] = []
        self.error: Optional[TransportError] = None
        self._task = asyncio.create_task(self._pump())

    @property
    def closed(self) -> bool:
        return self._finished

    async def _pump(self) -> None:
        try:
            async for raw in self._response.content:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                event = decode_line(line)

                if event.kind == SSEEventKind.DONE:
                    break
                if event.kind == SSEEventKind.MALFORMED:
                    self.warnings.append(event.warning)
                    logger.warning("%s", event.warning)
                elif event.kind == SSEEventKind.MESSAGE:
                    self._queue.put_nowait(event.text)
        # ValueError: a single line longer than the reader's buffer limit
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.error = TransportError(f"Stream interrupted: {e}", original_error=e)
            logger.error("Error reading response body: %s", e)
        finally:
            self._response.release()
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item

    async def collect(self) -> str:
        """Drain the stream and return the concatenated text."""
        parts = [chunk async for chunk in self]
        return "".join(parts)

    async def aclose(self) -> None:
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._response.release()
        self._finished = True
