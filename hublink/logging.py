"""Logging setup for the hublink command line client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from . import constants

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Route hublink logs to the console and, optionally, to ``log_path``.

    ``log_network`` enables the byte-level dump of hub traffic on the
    ``hublink.wire`` logger, regardless of ``level``, along with the status
    endpoint's access log.
    """

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    wire_level = logging.DEBUG if log_network else logging.WARNING
    logging.getLogger(constants.WIRE_LOGGER_NAME).setLevel(wire_level)
    access_level = logging.INFO if log_network else logging.WARNING
    logging.getLogger("aiohttp.access").setLevel(access_level)
