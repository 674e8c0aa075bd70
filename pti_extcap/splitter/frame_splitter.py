"""Splitter recognizing length-prefixed, delimited frames in a byte stream."""

import struct
from typing import Optional

from pti_extcap.splitter.base import Splitter


class FrameSplitter(Splitter):
    """
    Extract delimited frames from a byte stream.

    A frame is laid out as::

        [start][length lo][length hi][body ... length bytes][end]

    Complete frames (delimiters included) go to bucket 1, all other bytes to
    bucket 0. A start byte whose declared length is too large, or whose end
    delimiter is not where the length says it should be, is treated as plain
    text and scanning resumes at the following byte.
    """

    HEADER_SIZE = 3  # start + 16-bit length
    TRAILER_SIZE = 1

    def __init__(self, start: int, end: int, max_length: int = 4096):
        """
        Args:
            start: Start delimiter byte value.
            end: End delimiter byte value.
            max_length: Largest body length accepted as a frame.
        """
        super().__init__()
        self.start = start
        self.end = end
        self.max_length = max_length
        self._buffer = bytearray()

    def received(self, data: bytes, offset: int = 0, length: Optional[int] = None) -> None:
        if length is None:
            length = len(data) - offset
        if length <= 0:
            return
        self._buffer.extend(memoryview(data)[offset:offset + length])
        self._scan()

    def flush(self) -> None:
        if self._buffer:
            pending = bytes(self._buffer)
            self._buffer.clear()
            self._emit(0, pending)

    def _scan(self) -> None:
        buf = self._buffer
        i = 0
        while i < len(buf):
            if buf[i] != self.start:
                j = buf.find(self.start, i)
                if j < 0:
                    j = len(buf)
                self._emit(0, bytes(buf[i:j]))
                i = j
                continue

            # Wait for the length field
            if len(buf) - i < self.HEADER_SIZE:
                break
            (body_length,) = struct.unpack_from("<H", buf, i + 1)
            if body_length > self.max_length:
                self._emit(0, bytes(buf[i:i + 1]))
                i += 1
                continue

            total = self.HEADER_SIZE + body_length + self.TRAILER_SIZE
            if len(buf) - i < total:
                break
            if buf[i + total - 1] != self.end:
                self._emit(0, bytes(buf[i:i + 1]))
                i += 1
                continue

            self._emit(1, bytes(buf[i:i + total]))
            i += total
        del buf[:i]
