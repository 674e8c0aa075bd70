"""Two-way byte stream splitters and their serial composition."""

from pti_extcap.splitter.base import ByteListener, Splitter
from pti_extcap.splitter.chain import ChainSplitter
from pti_extcap.splitter.frame_splitter import FrameSplitter

__all__ = ["ByteListener", "Splitter", "ChainSplitter", "FrameSplitter"]
