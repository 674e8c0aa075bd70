"""Base class for two-way byte stream splitters."""

from typing import Callable, Optional

ByteListener = Callable[[bytes], None]


class _Sink:
    """Callable forwarding bytes to at most one listener, dropping them otherwise."""

    def __init__(self, listener: Optional[ByteListener] = None):
        self.listener = listener

    def __call__(self, data: bytes) -> None:
        listener = self.listener
        if listener is not None and data:
            listener(bytes(data))


class Splitter:
    """
    Stateful filter with two outputs.

    Bytes belonging to a recognized pattern go to bucket 1, everything else
    goes to bucket 0. Subclasses implement ``received`` and ``flush`` and emit
    through ``_emit``.
    """

    BUCKETS = 2

    def __init__(self):
        """Initialize with both buckets unset."""
        self._sinks = [_Sink() for _ in range(self.BUCKETS)]

    def bucket_count(self) -> int:
        """Number of output buckets, always 2."""
        return self.BUCKETS

    def set_listener(self, bucket: int, listener: Optional[ByteListener]) -> None:
        """
        Attach a listener to an output bucket.

        Args:
            bucket: 0 for unmatched bytes, 1 for matched spans.
            listener: Callable receiving bytes, or None to drop the bucket.
        """
        self._check_bucket(bucket)
        self._sinks[bucket].listener = listener

    def clear_listener(self, bucket: int) -> None:
        """Detach the listener of a bucket; its output is dropped afterwards."""
        self.set_listener(bucket, None)

    def _install_sink(self, bucket: int, sink: _Sink) -> None:
        self._check_bucket(bucket)
        self._sinks[bucket] = sink

    def _check_bucket(self, bucket: int) -> None:
        if not 0 <= bucket < self.BUCKETS:
            raise ValueError(f"Invalid bucket {bucket}, splitter has {self.BUCKETS}")

    def _emit(self, bucket: int, data: bytes) -> None:
        self._sinks[bucket](data)

    def received(self, data: bytes, offset: int = 0, length: Optional[int] = None) -> None:
        """
        Feed bytes into the splitter.

        Args:
            data: Buffer holding the new bytes.
            offset: Start of the new bytes within ``data``.
            length: Number of new bytes, defaults to the rest of ``data``.
        """
        raise NotImplementedError

    def flush(self) -> None:
        """Resolve any buffered partial match as unmatched bytes."""
        raise NotImplementedError
