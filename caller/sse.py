"""Minimal server-sent events parser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Optional, Union


@dataclass
class SseEvent:
    event: str
    data: str


class SseParser:
    """Feed lines one at a time; a blank line completes an event."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []

    def feed(self, line: str) -> Optional[SseEvent]:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None

    def flush(self) -> Optional[SseEvent]:
        return self._dispatch()

    def _dispatch(self) -> Optional[SseEvent]:
        if not self._data and not self._event:
            return None
        event = SseEvent(event=self._event or "message", data="\n".join(self._data))
        self._event = ""
        self._data = []
        return event


async def iter_sse_events(
    lines: AsyncIterable[Union[str, bytes]],
) -> AsyncIterator[SseEvent]:
    """Turn a stream of lines (e.g. ``aiohttp`` ``resp.content``) into events."""
    parser = SseParser()
    async for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        event = parser.feed(line)
        if event is not None:
            yield event
    tail = parser.flush()
    if tail is not None:
        yield tail
