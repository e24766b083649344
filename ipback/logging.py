"""Logging configuration for ipback.

Structured logging via loguru. The library stays silent until a caller
(normally the CLI) enables it with a LogConfig.

Two sinks:
- console: coloured, on stderr, at the configured level.
- address ledger: ``<directory>/ipback-addresses.log``, receiving only
  records bound with ``ledger=True``. Every address a hunter observes
  ends up there, so a long run leaves a full history of what the
  provider handed out.

Example:
    from ipback.logging import LogConfig, setup_logging, teardown_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", directory="/var/log/ipback"))
    try:
        ...
    finally:
        teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

# Disable by default (library behavior)
logger.disable("ipback")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

LEDGER_FILE = "ipback-addresses.log"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>slot={extra[slot]}</cyan> - "
    "<level>{message}</level>"
)

LEDGER_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}"


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration.

    Attributes:
        level: Minimum console log level.
        console: Whether to log to stderr.
        directory: Directory for the address ledger. No ledger if None.
        rotation: Ledger rotation policy (e.g., "50 MB", "1 day").
        retention: Number of rotated ledger files to keep.
    """

    level: LogLevel = "INFO"
    console: bool = True
    directory: str | None = None
    rotation: str = "50 MB"
    retention: int = 10


def _console_filter(record: Record) -> bool:
    record["extra"].setdefault("slot", "-")
    return record["name"] is not None and record["name"].startswith("ipback")


def _ledger_filter(record: Record) -> bool:
    return bool(record["extra"].get("ledger"))


def setup_logging(config: LogConfig) -> list[int]:
    """Install sinks and return their handler IDs for later removal."""
    logger.enable("ipback")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=CONSOLE_FORMAT,
                colorize=True,
                filter=_console_filter,
            )
        )

    if config.directory:
        directory = Path(config.directory)
        directory.mkdir(parents=True, exist_ok=True)
        handler_ids.append(
            logger.add(
                directory / LEDGER_FILE,
                level="INFO",
                format=LEDGER_FORMAT,
                rotation=config.rotation,
                retention=config.retention,
                diagnose=False,  # Don't expose credentials in tracebacks
                enqueue=True,
                filter=_ledger_filter,
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("ipback")
