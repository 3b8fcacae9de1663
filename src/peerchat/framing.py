"""Newline-delimited stream reassembly.

A TCP read may carry part of a frame, exactly one frame, or several. The
helpers here split on ``\\n``, trim each complete line, drop empty ones and
keep whatever follows the last terminator for the next read.
"""
from __future__ import annotations

from typing import List, Tuple

from .constants import LINE_TERMINATOR
from .packet import FrameError


class LineTooLong(FrameError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__("line_too_long", f"{size} bytes buffered, limit is {limit}")
        self.size = size
        self.limit = limit


def decode(buffer: bytes, chunk: bytes) -> Tuple[List[bytes], bytes]:
    data = buffer + chunk
    frames: List[bytes] = []
    start = 0
    while True:
        idx = data.find(LINE_TERMINATOR, start)
        if idx < 0:
            break
        line = data[start:idx].strip()
        start = idx + 1
        if line:
            frames.append(line)
    return frames, data[start:]


class LineDecoder:
    def __init__(self, max_buffer: int | None = None) -> None:
        self.max_buffer = max_buffer
        self._buf = b""

    @property
    def pending(self) -> int:
        """Bytes held back waiting for a terminator."""
        return len(self._buf)

    def feed(self, chunk: bytes) -> List[bytes]:
        frames, self._buf = decode(self._buf, chunk)
        if self.max_buffer is not None and len(self._buf) > self.max_buffer:
            raise LineTooLong(len(self._buf), self.max_buffer)
        return frames
