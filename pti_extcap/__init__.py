"""Wireshark extcap bridge for the Silicon Labs WSTK debug channel."""

__version__ = "0.1.0"
