"""Classic libpcap stream writer."""

import struct
from typing import BinaryIO

PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION = (2, 4)
PCAP_SNAPLEN = 65535
DLT_USER1 = 147

GLOBAL_HEADER = struct.Struct("<IHHiIII")
RECORD_HEADER = struct.Struct("<IIII")


class PcapWriter:
    """Write pcap records to a binary stream, flushing after every write."""

    def __init__(self, stream: BinaryIO, linktype: int = DLT_USER1, snaplen: int = PCAP_SNAPLEN):
        self.stream = stream
        self.linktype = linktype
        self.snaplen = snaplen
        self.records = 0

    def write_header(self) -> None:
        self.stream.write(GLOBAL_HEADER.pack(
            PCAP_MAGIC,
            PCAP_VERSION[0],
            PCAP_VERSION[1],
            0,  # thiszone
            0,  # sigfigs
            self.snaplen,
            self.linktype,
        ))
        self.stream.flush()

    def write_record(self, data: bytes, timestamp: float) -> None:
        """
        Write one packet.

        Args:
            data: Packet bytes; truncated to the snap length if longer.
            timestamp: Capture time in seconds since the epoch.
        """
        ts_sec = int(timestamp)
        ts_usec = int(round((timestamp - ts_sec) * 1_000_000))
        if ts_usec >= 1_000_000:
            ts_sec += 1
            ts_usec -= 1_000_000
        captured = data[:self.snaplen]
        self.stream.write(RECORD_HEADER.pack(ts_sec, ts_usec, len(captured), len(data)))
        self.stream.write(captured)
        self.stream.flush()
        self.records += 1
