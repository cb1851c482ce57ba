"""
Logging setup shared by the CLI, the API and the RQ worker.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging to stdout.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG"). Defaults to the
               configured LOG_LEVEL setting.
    """
    if level is None:
        from .config import get_settings

        level = get_settings().log_level

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
