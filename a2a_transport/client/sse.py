"""Incremental Server-Sent Events parser.

Chunks may split anywhere, including inside a multi-byte UTF-8 sequence or
between the ``\\r`` and ``\\n`` of a line ending. The parser keeps whatever it
cannot interpret yet and returns complete events only.
"""

import codecs
from typing import List, Optional, Union

from ..types import SseEvent
from ..utils.config.constants import SSE_DONE_SENTINEL


class SseParser:
    """Feed byte or text chunks, get back the events they complete."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._data: List[str] = []
        self._event_type: Optional[str] = None
        self._event_id: Optional[str] = None
        self._retry_ms: Optional[int] = None
        self._pending_cr = False
        self.done = False

    def feed(self, chunk: Union[str, bytes]) -> List[SseEvent]:
        if self.done:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        events: List[SseEvent] = []
        for line in self._take_lines():
            event = self._process_line(line)
            if event is not None:
                events.append(event)
            if self.done:
                self._buffer = ""
                break
        return events

    def flush(self) -> List[SseEvent]:
        """End of stream: emit a pending event that lacks its blank line."""
        if self.done:
            return []
        tail = self._decoder.decode(b"", final=True)
        events = self.feed(tail) if tail else []
        if self.done:
            return events

        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._process_line(line)
        if not self.done:
            event = self._dispatch()
            if event is not None:
                events.append(event)
        return events

    def _take_lines(self) -> List[str]:
        buffer = self._buffer
        if not buffer:
            return []

        lines = []
        start = i = 0
        # A chunk that ended in \r may be followed by the \n of the same line ending
        if self._pending_cr and buffer[0] == "\n":
            start = i = 1
        self._pending_cr = False

        while i < len(buffer):
            ch = buffer[i]
            if ch == "\n":
                lines.append(buffer[start:i])
                start = i + 1
            elif ch == "\r":
                lines.append(buffer[start:i])
                if i + 1 < len(buffer) and buffer[i + 1] == "\n":
                    i += 1
                elif i + 1 == len(buffer):
                    self._pending_cr = True
                start = i + 1
            i += 1
        self._buffer = buffer[start:]
        return lines

    def _process_line(self, line: str) -> Optional[SseEvent]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event_type = value
        elif name == "id":
            self._event_id = value
        elif name == "retry":
            if value.isdigit():
                self._retry_ms = int(value)
        return None

    def _dispatch(self) -> Optional[SseEvent]:
        if not self._data:
            self._event_type = None
            return None

        data = "\n".join(self._data)
        event = SseEvent(
            data=data,
            id=self._event_id,
            event_type=self._event_type,
            retry_ms=self._retry_ms,
        )
        self._data = []
        self._event_type = None

        if data.strip() == SSE_DONE_SENTINEL:
            self.done = True
            return None
        return event
