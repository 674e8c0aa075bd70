"""Debug channel frame layout and the message built from a frame.

Frame (both versions share the layout, only the delimiters differ)::

    offset  size  field
    0       1     start delimiter  ('[' for version 2, '{' for version 3)
    1       2     body length N, little-endian
    3       N     body
    3+N     1     end delimiter    (']' for version 2, '}' for version 3)

Body::

    0       1     sequence number
    1       2     message type, little-endian
    3       N-3   contents

Console text is not escaped on the channel. A '[' or '{' followed by two
text bytes reads as a plausible length (``"[\\r\\n"`` gives 2573), and that
stage then holds everything behind it, later frames included, until enough
bytes arrive to check the end delimiter or the connection drops. Such
frames are delayed, never lost.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from pti_extcap.splitter import ChainSplitter, FrameSplitter

# Delimiter pairs per debug channel version
FRAME_DELIMITERS = {
    2: (ord("["), ord("]")),
    3: (ord("{"), ord("}")),
}

MAX_BODY_LENGTH = 4096
FRAME_OVERHEAD = FrameSplitter.HEADER_SIZE + FrameSplitter.TRAILER_SIZE
BODY_HEADER = struct.Struct("<BH")


@dataclass(frozen=True)
class DebugMessage:
    """A single debug channel message."""

    originator_id: str
    payload: bytes
    timestamp: float
    version: int
    sequence: int
    message_type: int
    contents: bytes

    @classmethod
    def make(cls, originator_id: str, payload: bytes, timestamp: float) -> Optional["DebugMessage"]:
        """
        Build a message out of a complete frame.

        Args:
            originator_id: Identifier of the adapter the frame came from.
            payload: Complete frame bytes, delimiters included.
            timestamp: Arrival time in seconds since the epoch.

        Returns:
            DebugMessage, or None if the frame is malformed.
        """
        payload = bytes(payload)
        if len(payload) < FRAME_OVERHEAD + BODY_HEADER.size:
            return None

        version = None
        for v, (start, end) in FRAME_DELIMITERS.items():
            if payload[0] == start and payload[-1] == end:
                version = v
                break
        if version is None:
            return None

        (body_length,) = struct.unpack_from("<H", payload, 1)
        if body_length != len(payload) - FRAME_OVERHEAD or body_length > MAX_BODY_LENGTH:
            return None

        sequence, message_type = BODY_HEADER.unpack_from(payload, FrameSplitter.HEADER_SIZE)
        contents = payload[FrameSplitter.HEADER_SIZE + BODY_HEADER.size:-FrameSplitter.TRAILER_SIZE]
        return cls(
            originator_id=originator_id,
            payload=payload,
            timestamp=timestamp,
            version=version,
            sequence=sequence,
            message_type=message_type,
            contents=contents,
        )


def build_frame(message_type: int, contents: bytes = b"", sequence: int = 0, version: int = 3) -> bytes:
    """Encode a debug channel frame, mostly useful for simulators and tests."""
    start, end = FRAME_DELIMITERS[version]
    body = BODY_HEADER.pack(sequence & 0xFF, message_type & 0xFFFF) + bytes(contents)
    if len(body) > MAX_BODY_LENGTH:
        raise ValueError(f"Frame body too long: {len(body)} bytes")
    return bytes([start]) + struct.pack("<H", len(body)) + body + bytes([end])


def debug_channel_splitter() -> ChainSplitter:
    """Chain extracting version 2 and version 3 frames from one stream."""
    return ChainSplitter(*[
        FrameSplitter(start, end, max_length=MAX_BODY_LENGTH)
        for start, end in FRAME_DELIMITERS.values()
    ])
