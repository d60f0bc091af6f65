"""Process-wide logging setup for the CLI and HTTP adapters.

Library modules only create `logging.getLogger(__name__)` loggers; handlers and
levels are configured here, once, by the entry point.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from `level` or `LOG_LEVEL` (default INFO).

    Unknown level names fall back to INFO.
    """
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
    # Connection-pool chatter is noise at INFO.
    logging.getLogger("urllib3").setLevel(max(resolved, logging.WARNING))
