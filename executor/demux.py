"""Demultiplexer for the container engine's attach stream.

A non-TTY attach stream interleaves stdout and stderr as frames:

    [stream type: 1 byte][0, 0, 0][payload size: 4 bytes big-endian][payload]

Stream type 2 is stderr; every other value is treated as stdout. Chunks
delivered by the engine can split a frame anywhere, including inside the
header, and frames can split a line or a multi-byte character anywhere, so
both are buffered until complete.
"""

from __future__ import annotations

import codecs
import struct

from executor.core.models import Channel, OutputEvent

HEADER_SIZE = 8
STDERR_STREAM = 2

_HEADER = struct.Struct(">BxxxL")


def encode_frame(stream_type: int, payload: bytes) -> bytes:
    """Build one frame; used by fake runtimes and tests."""
    return _HEADER.pack(stream_type, len(payload)) + payload


class _LineBuffer:
    """Per-channel incremental decoder and line splitter."""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, payload: bytes) -> list[OutputEvent]:
        self._pending += self._decoder.decode(payload)
        *lines, self._pending = self._pending.split("\n")
        return [OutputEvent(text=line, channel=self.channel) for line in lines if line]

    def flush(self) -> list[OutputEvent]:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not tail:
            return []
        return [OutputEvent(text=tail, channel=self.channel)]


class FrameDemultiplexer:
    """Turn raw attach-stream chunks into ordered, line-oriented OutputEvents.

    Events are returned as soon as a full line is available; ordering within a
    channel is preserved and interleaving across channels follows frame
    arrival order.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._lines = {
            Channel.STDOUT: _LineBuffer(Channel.STDOUT),
            Channel.STDERR: _LineBuffer(Channel.STDERR),
        }

    @property
    def pending_bytes(self) -> int:
        """Bytes held back waiting for the rest of a frame."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[OutputEvent]:
        """Consume one chunk and return every line it completes."""
        self._buffer.extend(chunk)
        events: list[OutputEvent] = []
        while len(self._buffer) >= HEADER_SIZE:
            stream_type, size = _HEADER.unpack_from(self._buffer)
            end = HEADER_SIZE + size
            if len(self._buffer) < end:
                break
            payload = bytes(self._buffer[HEADER_SIZE:end])
            del self._buffer[:end]
            channel = Channel.STDERR if stream_type == STDERR_STREAM else Channel.STDOUT
            events.extend(self._lines[channel].feed(payload))
        return events

    def flush(self) -> list[OutputEvent]:
        """Emit unterminated trailing lines once the stream has ended.

        An incomplete trailing frame is discarded.
        """
        self._buffer.clear()
        events: list[OutputEvent] = []
        for buffer in self._lines.values():
            events.extend(buffer.flush())
        return events
