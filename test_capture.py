#!/usr/bin/env python3
"""Test the capture loop, the pcap writer and the adapter connection."""

import io
import os
import signal
import struct
import sys
import threading
import time

import pytest

from pti_extcap.adapter_transport import AdapterConnection, interface_url
from pti_extcap.debugchannel import build_frame
from pti_extcap.extcap import CaptureError, ExtcapCapture, PcapWriter, run
from pti_extcap.extcap import capture as capture_module
from pti_extcap.extcap.capture import _StopOnSignal


class FakeConnection:
    """Adapter connection replaying chunks from start() and then closing."""

    chunks = []
    open_ok = True
    instances = []

    def __init__(self, interface, logger=None):
        self.interface = interface
        self.listener = None
        self.stopped = False
        self.closed = False
        FakeConnection.instances.append(self)

    def set_listener(self, listener):
        self.listener = listener

    def clear_listener(self):
        self.listener = None

    def open(self):
        return self.open_ok

    def start(self):
        self.listener.connection_state_changed(True)
        for data, timestamp in self.chunks:
            if self.stopped:
                break
            self.listener.bytes_received(data, timestamp)
        self.listener.connection_state_changed(False)

    def wait(self):
        pass

    def stop(self):
        self.stopped = True

    def close(self):
        self.stopped = True
        self.closed = True


@pytest.fixture
def fake_connection():
    FakeConnection.chunks = []
    FakeConnection.open_ok = True
    FakeConnection.instances = []
    yield FakeConnection


def _read_pcap(data):
    magic, major, minor, zone, sigfigs, snaplen, linktype = struct.unpack_from("<IHHiIII", data, 0)
    header = {"magic": magic, "version": (major, minor), "snaplen": snaplen, "linktype": linktype}
    records = []
    offset = 24
    while offset < len(data):
        ts_sec, ts_usec, incl_len, orig_len = struct.unpack_from("<IIII", data, offset)
        offset += 16
        records.append((ts_sec, ts_usec, data[offset:offset + incl_len]))
        offset += incl_len
    return header, records


def test_pcap_writer_header():
    """The global header declares link-layer type 147."""
    stream = io.BytesIO()
    PcapWriter(stream).write_header()
    data = stream.getvalue()
    assert len(data) == 24
    assert data[:4] == b"\xd4\xc3\xb2\xa1"
    header, records = _read_pcap(data)
    assert header == {"magic": 0xA1B2C3D4, "version": (2, 4), "snaplen": 65535, "linktype": 147}
    assert records == []


def test_pcap_writer_record():
    """Records carry the timestamp split into seconds and microseconds."""
    stream = io.BytesIO()
    writer = PcapWriter(stream)
    writer.write_header()
    writer.write_record(b"\x01\x02\x03", 1700000000.25)
    writer.write_record(b"", 5.9999999)

    _, records = _read_pcap(stream.getvalue())
    assert records == [(1700000000, 250000, b"\x01\x02\x03"), (6, 0, b"")]
    assert writer.records == 2


def test_capture_writes_messages(tmp_path, fake_connection):
    """Every framed message becomes one record; text and junk are skipped."""
    frame_a = build_frame(0x29, b"packet-a", sequence=1)
    frame_b = build_frame(0x2A, b"packet-b", sequence=2, version=2)
    fake_connection.chunks = [
        (b"hello\n" + frame_a[:6], 100.0),
        (frame_a[6:] + b"{\x02\x00ab}", 100.5),  # second frame is too short for a message
        (frame_b, 101.25),
    ]
    fifo = tmp_path / "fifo"

    capture = ExtcapCapture("10.0.0.1", str(fifo), logger=None, connection_factory=fake_connection)
    assert capture.capture() == 2

    header, records = _read_pcap(fifo.read_bytes())
    assert header["linktype"] == 147
    assert records == [(100, 500000, frame_a), (101, 250000, frame_b)]
    assert capture.collector.count() == 2
    assert fake_connection.instances[0].closed
    assert fake_connection.instances[0].listener is None


def test_capture_connection_failure(tmp_path, fake_connection):
    """An unreachable adapter is a capture error."""
    fake_connection.open_ok = False
    fifo = tmp_path / "fifo"
    with pytest.raises(CaptureError):
        ExtcapCapture("10.0.0.1", str(fifo), connection_factory=fake_connection).capture()
    # The global header is written before connecting
    assert len(fifo.read_bytes()) == 24


def test_capture_fifo_write_failure(tmp_path, fake_connection, monkeypatch):
    """A failing FIFO write stops the connection and fails the capture."""
    def broken_write(self, data, timestamp):
        raise BrokenPipeError("Broken pipe")

    monkeypatch.setattr(capture_module.PcapWriter, "write_record", broken_write)
    fake_connection.chunks = [(build_frame(1), 1.0), (build_frame(2), 2.0)]

    capture = ExtcapCapture("10.0.0.1", str(tmp_path / "fifo"), connection_factory=fake_connection)
    with pytest.raises(CaptureError):
        capture.capture()
    assert fake_connection.instances[0].stopped
    # Delivery stopped after the first failure
    assert capture.collector.count() == 1


def test_capture_command_exit_codes(tmp_path, fake_connection):
    """The capture command maps capture outcomes to exit codes."""
    fake_connection.chunks = [(build_frame(7, b"x"), 3.0)]

    def factory(interface, fifo, capture_filter=None, logger=None):
        return ExtcapCapture(interface, fifo, capture_filter, logger=logger, connection_factory=fake_connection)

    out = io.StringIO()
    fifo = tmp_path / "fifo"
    args = ["--capture", "--extcap-interface", "10.0.0.1", "--fifo", str(fifo)]
    assert run(args, environ={}, out=out, capture_factory=factory) == 0
    assert len(_read_pcap(fifo.read_bytes())[1]) == 1

    missing = tmp_path / "missing" / "fifo"
    args = ["--capture", "--extcap-interface", "10.0.0.1", "--fifo", str(missing)]
    assert run(args, environ={}, out=out, capture_factory=factory) == 1
    assert out.getvalue() == ""


def test_interface_url():
    """Interface ids map to pyserial URLs."""
    assert interface_url("192.168.1.20") == "socket://192.168.1.20:4905"
    assert interface_url("wstk-bench") == "socket://wstk-bench:4905"
    assert interface_url("/dev/ttyACM0") == "/dev/ttyACM0"
    assert interface_url("COM3") == "COM3"
    assert interface_url("loop://") == "loop://"
    assert interface_url("socket://10.0.0.1:4902") == "socket://10.0.0.1:4902"


class RecordingListener:
    def __init__(self):
        self.data = bytearray()
        self.states = []

    def bytes_received(self, data, timestamp=None):
        self.data.extend(data)

    def connection_state_changed(self, is_connected):
        self.states.append(is_connected)


def test_adapter_connection_loopback():
    """Bytes read by the reader thread reach the listener."""
    connection = AdapterConnection("loop://", timeout=0.05)
    listener = RecordingListener()
    connection.set_listener(listener)
    assert connection.open()
    try:
        frame = build_frame(3, b"loop")
        connection.serial.write(frame)
        connection.start()
        deadline = time.monotonic() + 5
        while len(listener.data) < len(frame) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        connection.close()

    assert bytes(listener.data) == frame
    assert listener.states == [True, False]
    assert not connection.is_open()


def test_adapter_connection_open_failure():
    """A connection that cannot be opened reports False."""
    connection = AdapterConnection("/dev/does-not-exist-pti")
    assert connection.open() is False
    assert not connection.is_open()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
def test_signal_stops_capture():
    """SIGTERM calls the stop callback and the previous handler comes back."""
    original = signal.getsignal(signal.SIGTERM)
    stopped = []
    with _StopOnSignal(lambda: stopped.append(True)):
        assert signal.getsignal(signal.SIGTERM) is not original
        os.kill(os.getpid(), signal.SIGTERM)
        deadline = time.monotonic() + 5
        while not stopped and time.monotonic() < deadline:
            time.sleep(0.01)
    assert stopped == [True]
    assert signal.getsignal(signal.SIGTERM) is original


def test_signal_handlers_untouched_off_main_thread():
    """Outside the main thread no handler is installed."""
    original = signal.getsignal(signal.SIGINT)
    seen = []

    def enter():
        with _StopOnSignal(lambda: None):
            seen.append(signal.getsignal(signal.SIGINT))

    worker = threading.Thread(target=enter)
    worker.start()
    worker.join()
    assert seen == [original]
