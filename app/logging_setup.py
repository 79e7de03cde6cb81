"""Process-wide logging configuration.

Shared by the API lifespan and the standalone job worker so both write
the same format: colored lines on stderr, plain lines in the optional
rotating ``LOG_FILE``.  Access METRIC lines go to their own
``<LOG_FILE stem>.access.log`` beside it.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from app.config import settings

ACCESS_LOGGER = "pluffy.access"

_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per file
_LOG_BACKUPS = 3


class ColorFormatter(logging.Formatter):
    """ANSI-colored log formatter for terminal output."""

    _COLORS = {
        logging.DEBUG:    "\033[36m",     # cyan
        logging.INFO:     "\033[32m",     # green
        logging.WARNING:  "\033[33m",     # yellow
        logging.ERROR:    "\033[31m",     # red
        logging.CRITICAL: "\033[1;31m",   # bold red
    }
    _RESET = "\033[0m"
    _DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        name = record.name.split(".")[-1][:20]
        msg = record.getMessage()
        line = (
            f"{self._DIM}{ts}{self._RESET} "
            f"{color}{record.levelname:<8s}{self._RESET} "
            f"{self._DIM}[{name:>20s}]{self._RESET} "
            f"{color}{msg}{self._RESET}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class PlainFormatter(logging.Formatter):
    """Plain-text formatter for file logs (no ANSI codes)."""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = record.name.split(".")[-1][:20]
        line = f"{ts} {record.levelname:<8s} [{name:>20s}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _rotating_handler(path: Path) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(path), maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8",
    )
    handler.setFormatter(PlainFormatter())
    return handler


def configure_logging() -> None:
    """Install handlers on the root logger according to settings."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(ColorFormatter())
    handlers: list[logging.Handler] = [stream]

    access = logging.getLogger(ACCESS_LOGGER)
    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        handlers.append(_rotating_handler(log_path))
        access.addHandler(_rotating_handler(log_path.with_suffix(".access.log")))
        access.propagate = False

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # uvicorn's own access log duplicates the METRIC lines
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
