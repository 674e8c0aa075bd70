"""Live byte connection to a WSTK adapter."""

import logging
import re
import threading
import time
from typing import Optional, Protocol

import serial

DEBUG_CHANNEL_PORT = 4905
DEFAULT_BAUDRATE = 115200

_SERIAL_DEVICE = re.compile(r"^(/dev/|COM\d+$)", re.IGNORECASE)


class ConnectionListener(Protocol):
    """Subscriber receiving what a connection produces."""

    def bytes_received(self, data: bytes, timestamp: Optional[float] = None) -> None:
        ...

    def connection_state_changed(self, is_connected: bool) -> None:
        ...


def interface_url(interface: str, port: int = DEBUG_CHANNEL_PORT) -> str:
    """
    Map an extcap interface id to a pyserial URL.

    Args:
        interface: Adapter address, serial device path or pyserial URL.
        port: TCP port of the debug channel on network adapters.

    Returns:
        URL suitable for ``serial.serial_for_url``.
    """
    if "://" in interface:
        return interface
    if _SERIAL_DEVICE.match(interface):
        return interface
    return f"socket://{interface}:{port}"


class AdapterConnection:
    """Connection to the adapter's debug channel, read on a background thread."""

    def __init__(
        self,
        interface: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = 0.1,
        chunk_size: int = 4096,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the connection.

        Args:
            interface: Adapter address, serial device path or pyserial URL.
            baudrate: Serial communication speed, used for serial devices.
            timeout: Read timeout in seconds; bounds how long a stop request waits.
            chunk_size: Maximum bytes handed to the listener at once.
            logger: Diagnostics sink, defaults to the module logger.
        """
        self.interface = interface
        self.url = interface_url(interface)
        self.baudrate = baudrate
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.log = logger or logging.getLogger(__name__)
        self.serial = None
        self.listener: Optional[ConnectionListener] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def set_listener(self, listener: Optional[ConnectionListener]) -> None:
        """Subscribe a listener, replacing any previous one."""
        self.listener = listener

    def clear_listener(self) -> None:
        """Unsubscribe; received bytes are dropped afterwards."""
        self.listener = None

    def open(self) -> bool:
        """
        Open the connection.

        Returns:
            True if successful, False otherwise.
        """
        try:
            self.serial = serial.serial_for_url(
                self.url,
                baudrate=self.baudrate,
                timeout=self.timeout,
            )
            self.log.info(f"Connected to {self.url}")
            return True
        except (serial.SerialException, OSError, ValueError) as e:
            self.log.error(f"Failed to open {self.url}: {e}")
            return False

    def is_open(self) -> bool:
        """Check if the connection is open."""
        return self.serial is not None and self.serial.is_open

    def start(self) -> None:
        """Start delivering bytes to the listener from a reader thread."""
        if not self.is_open():
            raise serial.SerialException(f"{self.url} is not open")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._reader_loop, name=f"adapter-{self.interface}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask the reader thread to finish; safe to call from any thread."""
        self._stop.set()

    def wait(self, poll: float = 0.2) -> None:
        """Block until the reader thread has finished."""
        thread = self._thread
        while thread is not None and thread.is_alive():
            thread.join(poll)

    def close(self) -> None:
        """Stop reading and close the connection."""
        self.stop()
        if self._thread is not None and self._thread is not threading.current_thread():
            self.wait()
        if self.serial:
            self.serial.close()
            self.serial = None

    def _reader_loop(self) -> None:
        self._notify_state(True)
        try:
            while not self._stop.is_set():
                try:
                    data = self.serial.read(self.chunk_size)
                except (serial.SerialException, OSError) as e:
                    self.log.info(f"Connection to {self.url} closed: {e}")
                    break
                if data:
                    listener = self.listener
                    if listener is not None:
                        listener.bytes_received(data, time.time())
        finally:
            self._notify_state(False)

    def _notify_state(self, is_connected: bool) -> None:
        listener = self.listener
        if listener is not None:
            listener.connection_state_changed(is_connected)
