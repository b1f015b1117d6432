"""Consumer for the newline-delimited JSON chat stream.

Each record on the wire is one JSON object terminated by ``\\n``::

    {"type":"delta","text":"Hel"}
    {"type":"delta","text":"lo"}
    {"type":"done"}

Network reads do not line up with records, so bytes are decoded
incrementally and the unterminated tail is carried into the next read.
"""
from __future__ import annotations
import codecs
import json
import logging
from typing import AsyncIterable, Callable, List, Optional

from docschat.errors import StreamProtocolError
from docschat.schemas.chat import DeltaEvent, DoneEvent, ErrorEvent, stream_event_adapter

logger = logging.getLogger(__name__)

NO_RESPONSE = "(no response received)"

DeltaCallback = Callable[[str], None]


class StreamConsumer:
    def __init__(self, on_delta: Optional[DeltaCallback] = None) -> None:
        self.on_delta = on_delta
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: List[str] = []
        self.done = False

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: bytes) -> None:
        """Decode one transport chunk and handle every record it completes."""
        if self.done:
            return
        self._buffer += self._decoder.decode(chunk)
        *records, self._buffer = self._buffer.split("\n")
        for record in records:
            self._handle(record)
            if self.done:
                break

    def finish(self) -> str:
        """Flush the decoder and any unterminated final record; returns the accumulated text."""
        if not self.done:
            tail = self._buffer + self._decoder.decode(b"", final=True)
            self._buffer = ""
            self._handle(tail)
        return self.content

    def _handle(self, record: str) -> None:
        line = record.strip()
        if not line:
            return
        try:
            event = stream_event_adapter.validate_python(json.loads(line))
        except (ValueError, RecursionError):
            # JSONDecodeError and pydantic's ValidationError are both ValueErrors;
            # deeply nested garbage overflows the decoder instead
            logger.debug("Invalid record in stream: %r", line[:200])
            return

        if isinstance(event, DeltaEvent):
            if not event.text:
                return
            self._parts.append(event.text)
            if self.on_delta is not None:
                self.on_delta(self.content)
        elif isinstance(event, DoneEvent):
            self.done = True
        elif isinstance(event, ErrorEvent):
            raise StreamProtocolError(event.error)

    async def consume(self, chunks: AsyncIterable[bytes]) -> str:
        """Read ``chunks`` to the end and return the finalized assistant text.

        The transport is drained even after ``done``; records after it are ignored.
        """
        async for chunk in chunks:
            self.feed(chunk)
        return finalize(self.finish())


def finalize(content: str) -> str:
    return content if content.strip() else NO_RESPONSE
