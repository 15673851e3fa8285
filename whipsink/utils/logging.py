"""
Logging setup for the ``whipsink`` command line publisher.

Library modules only create ``logging.getLogger(__name__)`` loggers; the CLI
calls :func:`configure_logging` once with the ``--log-level`` value.  The
``whipsink.whip`` loggers carry the HTTP exchange (offer and answer SDP at
debug level), ``whipsink.ice`` the ICE server handling.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Union[int, str] = logging.INFO, format: Optional[str] = None) -> None:
    """
    Send whipsink logs to stdout unless the host application already set up
    the root logger.  ``level`` accepts a number or a name such as ``"debug"``.
    """

    if logging.getLogger().handlers:
        return

    logging.basicConfig(
        level=_resolve_level(level),
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
