"""Wireshark extcap bridge: protocol commands and the capture loop."""

from pti_extcap.extcap.capture import CaptureError, ExtcapCapture
from pti_extcap.extcap.pcap import DLT_USER1, PcapWriter
from pti_extcap.extcap.protocol import Extcap, ExtcapSession, run

__all__ = [
    "CaptureError",
    "DLT_USER1",
    "Extcap",
    "ExtcapCapture",
    "ExtcapSession",
    "PcapWriter",
    "run",
]
