"""
Server-sent event framing for the chat stream.

    event: token
    data: "<JSON-encoded fragment>"

    event: done

    event: error
    data: "<JSON-encoded message>"

Payloads are JSON strings so fragments containing newlines survive framing.
"""
import codecs
import json
from typing import Iterable, Iterator, Union

from promptstudy.chat.helpers.relay import DoneEvent
from promptstudy.chat.helpers.relay import ErrorEvent
from promptstudy.chat.helpers.relay import StreamEvent
from promptstudy.chat.helpers.relay import TokenEvent


def encode_event(event: StreamEvent) -> str:
    if isinstance(event, TokenEvent):
        return f"event: token\ndata: {json.dumps(event.text, ensure_ascii=False)}\n\n"
    if isinstance(event, DoneEvent):
        return "event: done\n\n"
    if isinstance(event, ErrorEvent):
        return f"event: error\ndata: {json.dumps(event.message, ensure_ascii=False)}\n\n"
    raise TypeError(f"Not a stream event: {event!r}")


def _parse_block(block: str):
    name = None
    data_lines = []
    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if key == "event":
            name = value
        elif key == "data":
            data_lines.append(value)

    data = "\n".join(data_lines)
    if name == "token":
        return TokenEvent(json.loads(data))
    if name == "done":
        return DoneEvent()
    if name == "error":
        return ErrorEvent(json.loads(data) if data else "")
    return None


def iter_events(chunks: Iterable[Union[str, bytes]]) -> Iterator[StreamEvent]:
    """
    Decode stream events from chunks split at arbitrary boundaries.

    Bytes are decoded incrementally, so a multi-byte character split across
    two chunks is reassembled. Unknown event names are skipped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    buffer = ""
    for chunk in chunks:
        text = decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        buffer = (buffer + text).replace("\r\n", "\n")
        while "\n\n" in buffer:
            block, buffer = buffer.split("\n\n", 1)
            event = _parse_block(block)
            if event is not None:
                yield event
    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        event = _parse_block(buffer)
        if event is not None:
            yield event
