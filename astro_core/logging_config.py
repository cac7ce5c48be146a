"""
Log output for the gateway process.

Records may carry ``chain`` and ``endpoint`` attributes (passed through
``extra=``); both formatters render them so failover events can be
followed per node::

    12:00:01 [WARNING] astro_registry [bitshares wss://node.xbts.io/ws]: rotating away ...

Usage:
    from astro_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="gateway.log")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from astro_core.errors import ConfigurationError

FORMATS = ("human", "json")
CONTEXT_FIELDS = ("chain", "endpoint")

# Per-request access lines stay off unless we are debugging.
_QUIET_LOGGERS = ("aiohttp.access",)


def _context(record: logging.LogRecord) -> dict[str, str]:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None)
    }


class _JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            **_context(record),
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


class _HumanFormatter(logging.Formatter):

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"[{record.levelname:<7}]"
        if self.colour:
            level = f"{self.COLOURS.get(record.levelname, '')}{level}{self.RESET}"
        ctx = " ".join(_context(record).values())
        where = f"{record.name} [{ctx}]" if ctx else record.name
        line = f"{ts} {level} {where}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level(name: str) -> int:
    numeric = logging.getLevelName(name.upper())
    if not isinstance(numeric, int):
        raise ConfigurationError(f"Unknown log level: {name}")
    return numeric


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger.

    *fmt* selects the console format (``"human"`` or ``"json"``); colour
    is only used when stderr is a terminal.  A *log_file*, if given,
    always receives JSON.  Unknown levels or formats raise
    :class:`~astro_core.errors.ConfigurationError`.
    """
    if fmt not in FORMATS:
        raise ConfigurationError(f"Unknown log format: {fmt}")
    numeric = _level(level)

    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        console.setFormatter(_JSONFormatter())
    else:
        console.setFormatter(_HumanFormatter(colour=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setFormatter(_JSONFormatter())
        root.addHandler(fh)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
