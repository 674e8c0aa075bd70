"""Serial composition of two-way splitters."""

from typing import List, Optional

from pti_extcap.splitter.base import ByteListener, Splitter, _Sink


class ChainSplitter(Splitter):
    """
    Chain of 2-way splitters.

    Output 0 of each splitter is piped into the input of the next one, while
    output 1 of every splitter goes to one shared sink. With splitters
    s0, s1, s2 the result is::

        => input => s0 -> s1 -> s2 ---> output 0
                      \\-----\\-----\\---> output 1
    """

    def __init__(self, *splitters: Splitter):
        """
        Wire the splitters together.

        Args:
            *splitters: One or more 2-way splitters, in the order bytes flow.
        """
        if not splitters:
            raise ValueError("ChainSplitter needs at least one splitter")
        for s in splitters:
            if s.bucket_count() != 2:
                raise ValueError(f"{type(s).__name__} is not a 2-way splitter")
        super().__init__()
        self.splitters: List[Splitter] = list(splitters)
        self._matched = _Sink()
        self._unmatched = _Sink()
        for current, following in zip(self.splitters, self.splitters[1:]):
            current.set_listener(0, following.received)
        for s in self.splitters:
            s._install_sink(1, self._matched)
        self.splitters[-1]._install_sink(0, self._unmatched)

    def set_listener(self, bucket: int, listener: Optional[ByteListener]) -> None:
        """
        Bucket 0 is what no splitter in the chain matched; any other bucket is
        the shared sink for what any of them matched.
        """
        if bucket < 0:
            raise ValueError(f"Invalid bucket {bucket}")
        if bucket == 0:
            self._unmatched.listener = listener
        else:
            self._matched.listener = listener

    def bucket_count(self) -> int:
        return self.splitters[0].bucket_count()

    def received(self, data: bytes, offset: int = 0, length: Optional[int] = None) -> None:
        self.splitters[0].received(data, offset, length)

    def flush(self) -> None:
        for s in self.splitters:
            s.flush()
