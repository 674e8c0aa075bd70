"""Capture loop: adapter debug channel in, pcap records out to the FIFO."""

import logging
import signal
import threading
from typing import Callable, Optional

from pti_extcap.adapter_transport import AdapterConnection
from pti_extcap.debugchannel import DebugChannelReceiver, DebugMessage, DebugMessageCollector
from pti_extcap.extcap.pcap import PcapWriter


class CaptureError(OSError):
    """Capture could not be started or the FIFO could not be written."""


class ExtcapCapture:
    """Stream debug channel messages of one adapter into a Wireshark FIFO."""

    def __init__(
        self,
        interface: str,
        fifo: str,
        capture_filter: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        connection_factory: Callable[..., AdapterConnection] = AdapterConnection,
    ):
        """
        Args:
            interface: Adapter the capture connects to.
            fifo: Path of the named pipe Wireshark reads from.
            capture_filter: Filter expression passed by Wireshark; logged only.
            logger: Diagnostics sink, defaults to the module logger.
            connection_factory: Builds the adapter connection from the interface.
        """
        self.interface = interface
        self.fifo = fifo
        self.capture_filter = capture_filter
        self.log = logger or logging.getLogger(__name__)
        self.connection_factory = connection_factory
        self.collector: Optional[DebugMessageCollector] = None
        self._writer: Optional[PcapWriter] = None
        self._connection = None
        self._write_error: Optional[OSError] = None

    def capture(self) -> int:
        """
        Run until the adapter connection closes.

        Returns:
            Number of messages written to the FIFO.

        Raises:
            CaptureError: If the adapter cannot be reached or the FIFO fails.
            OSError: If the FIFO cannot be opened.
        """
        with open(self.fifo, "wb") as fifo:
            self._writer = PcapWriter(fifo)
            self._writer.write_header()

            self.collector = DebugMessageCollector(self.interface, logger=self.log)
            self.collector.set_listener(self._write_message)
            receiver = DebugChannelReceiver(self.collector, logger=self.log)

            connection = self.connection_factory(self.interface, logger=self.log)
            connection.set_listener(receiver)
            if not connection.open():
                raise CaptureError(f"Cannot connect to adapter {self.interface}")
            self._connection = connection
            try:
                with _StopOnSignal(connection.stop):
                    connection.start()
                    connection.wait()
            finally:
                connection.close()
                connection.clear_listener()
                self._connection = None

        if self._write_error is not None:
            raise CaptureError(f"Writing to {self.fifo} failed: {self._write_error}") from self._write_error
        self.log.info(f"capture finished: {self._writer.records} message(s) from {self.interface}")
        return self._writer.records

    def _write_message(self, message: DebugMessage) -> None:
        if self._write_error is not None:
            return
        try:
            self._writer.write_record(message.payload, message.timestamp)
        except OSError as e:
            self._write_error = e
            self.log.error(f"FIFO write failed: {e}")
            if self._connection is not None:
                self._connection.stop()


class _StopOnSignal:
    """Route SIGINT/SIGTERM to a stop callback while the capture runs."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, stop: Callable[[], None]):
        self.stop = stop
        self._previous = {}

    def _handle_signal(self, signum, frame):
        self.stop()

    def __enter__(self):
        # Handlers can only be installed from the main thread
        if threading.current_thread() is threading.main_thread():
            for sig in self.SIGNALS:
                self._previous[sig] = signal.signal(sig, self._handle_signal)
        return self

    def __exit__(self, *exc):
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()
