from __future__ import annotations

import asyncio

import pytest

from mcxnow.exceptions import MalformedPayloadError
from mcxnow.streams import SSEDecoder, SSEEvent, aiter_sse_events, iter_sse_events, parse_sse_lines, parse_sse_lines_async

BODY = (
    "event: connected\n"
    "data: {\"ok\": true}\n"
    "\n"
    ": keepalive\n"
    "\n"
    "event: rateUpdate\r\n"
    "data: {\"GOLD\": {\"Last Traded Price\": \"71,050\"}}\r\n"
    "id: 42\r\n"
    "retry: 1500\r\n"
    "\r\n"
    "data: a\r"
    "data: b\r"
    "\r"
    "event: ping\n"
    "data: ₹ 1\n"
    "\n"
)

EXPECTED = [
    SSEEvent("connected", "{\"ok\": true}"),
    SSEEvent("rateUpdate", "{\"GOLD\": {\"Last Traded Price\": \"71,050\"}}"),
    SSEEvent("message", "a\nb"),
    SSEEvent("ping", "₹ 1"),
]


def _decode(chunks: list[bytes]) -> list[SSEEvent]:
    decoder = SSEDecoder()
    events: list[SSEEvent] = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.close())
    return events


def test_parse_sse_lines_collects_events() -> None:
    lines = [
        "event: update\n",
        "data: {\"id\":1}\n",
        "retry: 1500\n",
        "",
        "data: final\n",
        "",
    ]
    events = list(parse_sse_lines(iter(lines)))

    assert events == [SSEEvent("update", "{\"id\":1}"), SSEEvent("message", "final")]


def test_parse_sse_lines_async_collects_events() -> None:
    async def collect() -> list[SSEEvent]:
        async def generator():
            yield "data: first\n"
            yield "data: line2\n"
            yield ""
            yield "event: finalize\n"
            yield "data: done\n"
            yield ""

        return [event async for event in parse_sse_lines_async(generator())]

    events = asyncio.run(collect())
    assert len(events) == 2
    assert events[0].event == "message"
    assert events[0].data == "first\nline2"
    assert events[1].event == "finalize"


def test_decoder_handles_whole_body() -> None:
    assert _decode([BODY.encode()]) == EXPECTED


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
def test_decoder_is_independent_of_chunk_boundaries(size: int) -> None:
    raw = BODY.encode()
    chunks = [raw[i : i + size] for i in range(0, len(raw), size)]
    assert _decode(chunks) == EXPECTED


def test_decoder_joins_crlf_split_across_chunks() -> None:
    events = _decode([b"data: x\r", b"\n\r", b"\ndata: y\r\n\r\n"])
    assert events == [SSEEvent("message", "x"), SSEEvent("message", "y")]


def test_comment_between_records_is_ignored() -> None:
    events = _decode([b"data: one\n\n: keepalive\n\ndata: two\n\n"])
    assert events == [SSEEvent("message", "one"), SSEEvent("message", "two")]


def test_end_of_stream_flushes_pending_record_once() -> None:
    decoder = SSEDecoder()
    assert decoder.feed(b"event: rateUpdate\ndata: tail") == []
    assert decoder.close() == [SSEEvent("rateUpdate", "tail")]
    assert decoder.close() == []


def test_empty_record_and_malformed_lines_emit_nothing() -> None:
    events = _decode([b"\n\nevent: lonely\n\nnonsense\nfoo: bar\ndata\n\n"])
    # "data" without a colon is a data field with an empty value
    assert events == [SSEEvent("message", "")]


def test_event_name_resets_after_each_record() -> None:
    events = _decode([b"event: ping\ndata: 1\n\ndata: 2\n\n"])
    assert [event.event for event in events] == ["ping", "message"]


def test_only_one_leading_space_is_stripped() -> None:
    assert _decode([b"data:  padded\ndata:tight\n\n"]) == [SSEEvent("message", " padded\ntight")]


def test_leading_byte_order_mark_is_skipped() -> None:
    assert _decode([b"\xef\xbb", b"\xbfdata: x\n\n"]) == [SSEEvent("message", "x")]


def test_iter_sse_events_over_sync_chunks() -> None:
    assert list(iter_sse_events([b"data: a\n", b"\n"])) == [SSEEvent("message", "a")]


def test_aiter_sse_events_propagates_source_errors() -> None:
    async def chunks():
        yield b"data: first\n\n"
        yield b"data: pending"
        raise OSError("connection reset")

    async def collect(seen: list[SSEEvent]) -> None:
        async for event in aiter_sse_events(chunks()):
            seen.append(event)

    seen: list[SSEEvent] = []
    with pytest.raises(OSError, match="connection reset"):
        asyncio.run(collect(seen))
    assert seen == [SSEEvent("message", "first")]


def test_event_json_raises_malformed_payload() -> None:
    assert SSEEvent("error", "{\"error\": \"x\"}").json() == {"error": "x"}
    with pytest.raises(MalformedPayloadError):
        SSEEvent("rateUpdate", "not json").json()
