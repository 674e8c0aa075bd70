"""Diagnostic logging, kept away from the extcap output channel."""

import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "pti_extcap"
LOG_FILE_NAME = "pti-extcap.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogManager:
    """
    Configure the package logger for one run.

    With a log directory, diagnostics are appended to ``pti-extcap.log`` in it.
    Without one, they go to stderr, since stdout belongs to Wireshark.
    """

    def __init__(self, log_dir: Optional[Path] = None, level: str = "DEBUG"):
        self.log_dir = Path(log_dir) if log_dir else None
        self.level = getattr(logging, level.upper(), logging.DEBUG)
        self.logger = logging.getLogger(LOGGER_NAME)
        self._handlers: List[logging.Handler] = []
        self._propagate = self.logger.propagate
        self._previous_level = self.logger.level

    @property
    def log_file(self) -> Optional[Path]:
        return self.log_dir / LOG_FILE_NAME if self.log_dir else None

    def open(self) -> logging.Logger:
        """Install the handlers and return the configured logger."""
        if self.log_file is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = logging.FileHandler(self.log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        else:
            handler = RichHandler(console=Console(stderr=True), show_path=False)
            handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        handler.setLevel(self.level)

        self.logger.addHandler(handler)
        self._handlers.append(handler)
        self.logger.setLevel(self.level)
        self.logger.propagate = False
        return self.logger

    def close(self) -> None:
        """Remove and close the handlers installed by ``open``."""
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self.logger.propagate = self._propagate
        self.logger.setLevel(self._previous_level)

    def __enter__(self) -> logging.Logger:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
