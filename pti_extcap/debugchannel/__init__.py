"""Debug channel framing: frames in, timestamped messages out."""

from pti_extcap.debugchannel.message import (
    DebugMessage,
    build_frame,
    debug_channel_splitter,
)
from pti_extcap.debugchannel.collector import DebugChannelReceiver, DebugMessageCollector

__all__ = [
    "DebugMessage",
    "DebugMessageCollector",
    "DebugChannelReceiver",
    "build_frame",
    "debug_channel_splitter",
]
