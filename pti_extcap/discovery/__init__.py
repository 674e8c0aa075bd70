"""UDP broadcast discovery of WSTK adapters.

A discovery round broadcasts ``DISCOVERY_REQUEST`` to ``DISCOVERY_PORT`` and
collects replies for a bounded window. A reply is UTF-8 text carrying one
``key=value`` attribute per line.
"""

import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

DISCOVERY_PORT = 4920
DISCOVERY_REQUEST = b"WSTK-DISCOVERY 1\n"
DEFAULT_TIMEOUT = 1.0
BROADCAST_ADDRESS = "255.255.255.255"
MAX_REPLY_SIZE = 4096

GENERIC_ADAPTER_NAME = "Silicon Labs WSTK adapter"

logger = logging.getLogger(__name__)


class DiscoveryKey:
    """Attribute keys an adapter may report."""

    ADAPTER_NETIF = "adapter.netif"
    ADAPTER_NICKNAME = "adapter.nickname"
    ADAPTER_SERIAL = "adapter.serial"
    ADAPTER_TYPE = "adapter.type"
    FIRMWARE_VERSION = "firmware.version"


@dataclass
class DiscoveryRecord:
    """One responding adapter and the attributes it reported."""

    address: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def netif(self) -> Optional[str]:
        return self.attributes.get(DiscoveryKey.ADAPTER_NETIF)

    @property
    def nickname(self) -> Optional[str]:
        return self.attributes.get(DiscoveryKey.ADAPTER_NICKNAME)

    @property
    def interface_value(self) -> str:
        """Value used to connect to the adapter."""
        return self.netif if self.netif is not None else self.address

    @property
    def display_name(self) -> str:
        """Human readable adapter name."""
        if self.nickname is not None:
            return f"{self.nickname} ({GENERIC_ADAPTER_NAME})"
        return GENERIC_ADAPTER_NAME


def parse_discovery_map(data: bytes) -> Dict[str, str]:
    """
    Parse a discovery reply into an ordered attribute map.

    Lines without '=' and blank lines are skipped, undecodable bytes are
    replaced. A repeated key keeps its first position and its last value.
    """
    attributes: Dict[str, str] = {}
    text = data.decode("utf-8", errors="replace")
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        attributes[key] = value.strip()
    return attributes


def run_discovery(
    on_reply: Callable[[DiscoveryRecord], None],
    timeout: float = DEFAULT_TIMEOUT,
    port: int = DISCOVERY_PORT,
    broadcast_address: str = BROADCAST_ADDRESS,
    socket_factory: Callable[..., socket.socket] = socket.socket,
    log: Optional[logging.Logger] = None,
) -> List[DiscoveryRecord]:
    """
    Run one discovery round.

    Args:
        on_reply: Called once per responding address after the window closes.
        timeout: Length of the reply window in seconds.
        port: UDP port adapters listen on.
        broadcast_address: Destination of the request.
        socket_factory: Creates the UDP socket.
        log: Diagnostics sink, defaults to the module logger.

    Returns:
        The discovered records, in the order adapters first replied.

    Raises:
        OSError: If the socket cannot be created or the request cannot be sent.
    """
    log = log or logger
    records: Dict[str, DiscoveryRecord] = {}

    with socket_factory(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        log.debug(f"discovery: broadcasting to {broadcast_address}:{port}")
        sock.sendto(DISCOVERY_REQUEST, (broadcast_address, port))

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            sock.settimeout(remaining)
            try:
                data, sender = sock.recvfrom(MAX_REPLY_SIZE)
            except socket.timeout:
                break
            _merge_reply(records, data, sender, log)

    result = list(records.values())
    log.debug(f"discovery: {len(result)} adapter(s) replied")
    for record in result:
        on_reply(record)
    return result


def _merge_reply(
    records: Dict[str, DiscoveryRecord],
    data: bytes,
    sender: Tuple[str, int],
    log: logging.Logger,
) -> None:
    address = sender[0]
    if data == DISCOVERY_REQUEST:
        # Our own broadcast looped back
        return
    attributes = parse_discovery_map(data)
    log.debug(f"discovery: reply from {address}: {attributes}")
    record = records.setdefault(address, DiscoveryRecord(address))
    record.attributes.update(attributes)
