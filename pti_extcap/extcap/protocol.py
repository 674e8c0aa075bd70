"""Wireshark extcap command line protocol.

Wireshark runs the extcap executable once per request with one of the
commands below, reads protocol lines from stdout and, for a capture, a pcap
stream from the FIFO it passes in.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, TextIO

import click

from pti_extcap.discovery import DiscoveryRecord, run_discovery
from pti_extcap.extcap.capture import ExtcapCapture
from pti_extcap.logs import LogManager

# Commands
EC_INTERFACES = "--extcap-interfaces"
EC_DLTS = "--extcap-dlts"
EC_CONFIG = "--extcap-config"
EC_CAPTURE = "--capture"
COMMANDS = (EC_INTERFACES, EC_DLTS, EC_CONFIG, EC_CAPTURE)

# Additional args
EC_INTERFACE = "--extcap-interface"
EC_FIFO = "--fifo"
EC_CAPTURE_FILTER = "--extcap-capture-filter"

EXTCAP_LOCATION_ENV = "EXTCAP_LOC"

EXTCAP_PREAMBLE = "extcap {version=1.0}{help=http://silabs.com}"
DLT_LINE = "dlt {number=147}{name=USER1}{display=WSTK Silicon Labs DLT}"


def extract_command(args: Sequence[str]) -> Optional[str]:
    """Return the first recognized command in argument order."""
    for arg in args:
        if arg in COMMANDS:
            return arg
    return None


def extract_value(args: Sequence[str], option: str) -> Optional[str]:
    """
    Return the value of an option: the argument following it, or the part
    after '=' for the ``--option=value`` spelling. Empty values count as missing.
    """
    prefix = option + "="
    for i, arg in enumerate(args):
        if arg == option:
            value = args[i + 1] if i + 1 < len(args) else None
        elif arg.startswith(prefix):
            value = arg[len(prefix):]
        else:
            continue
        return value or None
    return None


@dataclass(frozen=True)
class ExtcapSession:
    """Everything a run needs, resolved once from the arguments and environment."""

    args: tuple
    command: Optional[str]
    interface: Optional[str]
    fifo: Optional[str]
    capture_filter: Optional[str]
    log_dir: Optional[Path]

    @classmethod
    def from_args(cls, args: Sequence[str], environ: Optional[Mapping[str, str]] = None) -> "ExtcapSession":
        environ = os.environ if environ is None else environ
        location = environ.get(EXTCAP_LOCATION_ENV)
        return cls(
            args=tuple(args),
            command=extract_command(args),
            interface=extract_value(args, EC_INTERFACE),
            fifo=extract_value(args, EC_FIFO),
            capture_filter=extract_value(args, EC_CAPTURE_FILTER),
            log_dir=Path(location) if location else None,
        )


class Extcap:
    """Dispatch one extcap command and produce its protocol output."""

    def __init__(
        self,
        session: ExtcapSession,
        out: Optional[TextIO] = None,
        discover: Callable[..., List[DiscoveryRecord]] = run_discovery,
        capture_factory: Callable[..., ExtcapCapture] = ExtcapCapture,
        discovery_timeout: Optional[float] = None,
    ):
        """
        Args:
            session: Resolved arguments of this run.
            out: Stream carrying the extcap protocol, stdout by default.
            discover: Runs one discovery round, calling back once per adapter.
            capture_factory: Builds the capture for the capture command.
            discovery_timeout: Overrides the default discovery window.
        """
        self.session = session
        self.out = out
        self.discover = discover
        self.capture_factory = capture_factory
        self.discovery_timeout = discovery_timeout
        self.log = logging.getLogger(__name__)

    def extcap_println(self, line: str) -> None:
        """Print a line of the extcap protocol."""
        self.log.debug(f"extcap <           {line}")
        click.echo(line, file=self.out)

    def run(self) -> int:
        """
        Execute the command.

        Returns:
            Process exit code.
        """
        try:
            with LogManager(self.session.log_dir) as log:
                self.log = log.getChild("extcap")
                return self._guarded_dispatch()
        except OSError as e:
            click.echo(f"Error: log in {self.session.log_dir} failed: {e}", err=True)
            return 1

    def _guarded_dispatch(self) -> int:
        try:
            self.log.debug("extcap > " + "".join(f" {a}" for a in self.session.args))
            return self._dispatch()
        except Exception as e:
            self.log.error(f"Error: {e}", exc_info=True)
            return 1

    def _dispatch(self) -> int:
        cmd = self.session.command
        if cmd == EC_INTERFACES:
            return self.extcap_interfaces()
        if cmd == EC_DLTS:
            return self.extcap_dlts()
        if cmd == EC_CONFIG:
            return self.extcap_config()
        if cmd == EC_CAPTURE:
            return self.extcap_capture()
        self.log.error("No extcap command given")
        return 1

    def _require(self, value: Optional[str], option: str) -> bool:
        if value is None:
            self.log.error(f"{self.session.command}: missing {option}")
            return False
        return True

    def extcap_interfaces(self) -> int:
        """List the adapters found by one discovery round."""
        self.extcap_println(EXTCAP_PREAMBLE)

        def on_reply(record: DiscoveryRecord) -> None:
            self.extcap_println(
                f"interface {{value={record.interface_value}}}{{display={record.display_name}}}"
            )

        kwargs = {"log": self.log}
        if self.discovery_timeout is not None:
            kwargs["timeout"] = self.discovery_timeout
        try:
            self.discover(on_reply, **kwargs)
        except OSError as e:
            self.log.error(f"discovery failed: {e}")
            return 1
        return 0

    def extcap_dlts(self) -> int:
        """List the link-layer types, one for every interface."""
        if not self._require(self.session.interface, EC_INTERFACE):
            return 1
        self.extcap_println(DLT_LINE)
        return 0

    def extcap_config(self) -> int:
        """No configuration arguments are offered."""
        if not self._require(self.session.interface, EC_INTERFACE):
            return 1
        return 0

    def extcap_capture(self) -> int:
        """Capture from the interface into the FIFO."""
        session = self.session
        if not self._require(session.interface, EC_INTERFACE):
            return 1
        if not self._require(session.fifo, EC_FIFO):
            return 1
        self.log.info(
            f"capture: from {session.interface} into {session.fifo}"
            + (" with no filter" if session.capture_filter is None else f" with filter {session.capture_filter}")
        )
        capture = self.capture_factory(
            session.interface,
            session.fifo,
            capture_filter=session.capture_filter,
            logger=self.log,
        )
        try:
            capture.capture()
        except OSError as e:
            self.log.error(f"error during capture: {e}")
            return 1
        return 0


def run(args: Sequence[str], environ: Optional[Mapping[str, str]] = None, **kwargs) -> int:
    """Run one extcap invocation and return its exit code."""
    return Extcap(ExtcapSession.from_args(args, environ), **kwargs).run()
