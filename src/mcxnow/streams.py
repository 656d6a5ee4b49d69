"""SSE stream parser and helpers."""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Iterator

from .exceptions import MalformedPayloadError

DEFAULT_EVENT = "message"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SSEEvent:
    event: str
    data: str

    def json(self) -> Any:
        """Parse event data as JSON, raising ``MalformedPayloadError`` when it is not."""
        try:
            return json.loads(self.data)
        except ValueError as exc:
            raise MalformedPayloadError(f"{self.event} payload is not valid JSON", body=self.data, cause=exc)


class SSEDecoder:
    """Incremental decoder turning an SSE response body into events.

    Bytes may be split at arbitrary points, including inside a multi-byte
    character or between the ``\\r`` and ``\\n`` of a line terminator; the
    resulting events are the same as if the body had arrived in one piece.
    A decoder is bound to one body: create a new one per connection.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending_cr = False
        self._started = False
        self._closed = False
        self._event_name = DEFAULT_EVENT
        self._data_lines: list[str] = []

    def feed(self, chunk: bytes | str) -> list[SSEEvent]:
        if self._closed:
            raise RuntimeError("decoder already closed")
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        events: list[SSEEvent] = []
        for line in self._split(text):
            event = self.feed_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[SSEEvent]:
        """Flush buffered input at end of stream."""
        if self._closed:
            return []
        events = self.feed(self._decoder.decode(b"", final=True))
        self._closed = True
        if self._buffer:
            line, self._buffer = self._buffer, ""
            event = self.feed_line(line)
            if event is not None:
                events.append(event)
        final_event = self._dispatch()
        if final_event is not None:
            events.append(final_event)
        return events

    def feed_line(self, line: str) -> SSEEvent | None:
        """Apply one line without its terminator; return an event on record end."""
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data_lines.append(value)
        # ``id`` and ``retry`` are valid fields but resumption is not supported,
        # so they are dropped along with unknown fields.
        return None

    def _dispatch(self) -> SSEEvent | None:
        event = None
        if self._data_lines:
            event = SSEEvent(event=self._event_name or DEFAULT_EVENT, data="\n".join(self._data_lines))
        self._event_name = DEFAULT_EVENT
        self._data_lines = []
        return event

    def _split(self, text: str) -> list[str]:
        if not text:
            return []
        if not self._started:
            self._started = True
            if text.startswith("\ufeff"):
                text = text[1:]
        if self._pending_cr:
            self._pending_cr = False
            if text.startswith("\n"):
                text = text[1:]

        buffer = self._buffer + text
        lines: list[str] = []
        start = 0
        for match in _LINE_BREAK.finditer(buffer):
            lines.append(buffer[start : match.start()])
            start = match.end()
        self._buffer = buffer[start:]
        # a trailing "\r" may be the first half of "\r\n"
        if start == len(buffer) and buffer.endswith("\r"):
            self._pending_cr = True
        return lines


def parse_sse_lines(lines: Iterable[str]) -> Iterator[SSEEvent]:
    """Parse a stream of SSE lines into typed events."""
    decoder = SSEDecoder()
    for raw_line in lines:
        event = decoder.feed_line(raw_line.rstrip("\r\n"))
        if event is not None:
            yield event
    yield from decoder.close()


async def parse_sse_lines_async(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Parse an async stream of SSE lines into typed events."""
    decoder = SSEDecoder()
    async for raw_line in lines:
        event = decoder.feed_line(raw_line.rstrip("\r\n"))
        if event is not None:
            yield event
    for event in decoder.close():
        yield event


def iter_sse_events(chunks: Iterable[bytes]) -> Iterator[SSEEvent]:
    """Parse raw body chunks into events."""
    decoder = SSEDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.close()


async def aiter_sse_events(chunks: AsyncIterator[bytes]) -> AsyncIterator[SSEEvent]:
    """Parse raw async body chunks into events.

    Errors raised by ``chunks`` propagate unchanged; the pending record is only
    flushed when the source ends normally.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.close():
        yield event
