"""Turn extracted frames into DebugMessage objects and hand them upwards."""

import logging
import threading
import time
from typing import Callable, Optional

from pti_extcap.debugchannel.message import DebugMessage, debug_channel_splitter
from pti_extcap.splitter import Splitter

MessageListener = Callable[[DebugMessage], None]


class DebugMessageCollector:
    """Build messages from frames and dispatch them to a single listener."""

    def __init__(self, originator_id: str, logger: Optional[logging.Logger] = None):
        """
        Args:
            originator_id: Identifier stamped on every message (the adapter).
            logger: Diagnostics sink, defaults to the module logger.
        """
        self.originator_id = originator_id
        self.log = logger or logging.getLogger(__name__)
        self.listener: Optional[MessageListener] = None
        self._count = 0
        self._lock = threading.Lock()

    def set_listener(self, listener: Optional[MessageListener]) -> None:
        self.listener = listener

    def clear_listener(self) -> None:
        self.listener = None

    def message_received(self, payload: bytes, timestamp: float) -> None:
        """
        Build a message from a frame and dispatch it.

        Malformed frames are dropped without a trace; a failing listener is
        logged and does not stop the stream.
        """
        message = DebugMessage.make(self.originator_id, payload, timestamp)
        if message is None:
            return
        with self._lock:
            listener = self.listener
            if listener is None:
                return
            self._count += 1
            try:
                listener(message)
            except Exception:
                self.log.warning("Debug message listener error", exc_info=True)

    def connection_state_changed(self, is_connected: bool) -> None:
        self.log.debug(f"{self.originator_id}: {'connected' if is_connected else 'disconnected'}")

    def count(self) -> int:
        """Number of messages dispatched so far."""
        return self._count


class DebugChannelReceiver:
    """
    Connection listener feeding raw adapter bytes through a splitter chain.

    Extracted frames go to the collector stamped with the arrival time of the
    chunk that completed them; everything else is logged as adapter text.
    """

    def __init__(
        self,
        collector: DebugMessageCollector,
        splitter: Optional[Splitter] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.collector = collector
        self.splitter = splitter or debug_channel_splitter()
        self.log = logger or logging.getLogger(__name__)
        self.clock = clock
        self._arrival = 0.0
        self.splitter.set_listener(1, self._frame_received)
        self.splitter.set_listener(0, self._text_received)

    def bytes_received(self, data: bytes, timestamp: Optional[float] = None) -> None:
        self._arrival = self.clock() if timestamp is None else timestamp
        self.splitter.received(data)

    def connection_state_changed(self, is_connected: bool) -> None:
        if not is_connected:
            self.splitter.flush()
        self.collector.connection_state_changed(is_connected)

    def _frame_received(self, frame: bytes) -> None:
        self.collector.message_received(frame, self._arrival)

    def _text_received(self, text: bytes) -> None:
        self.log.debug(f"adapter text: {text!r}")
