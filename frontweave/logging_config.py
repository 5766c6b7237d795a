"""Logging setup for scripts and embedding applications."""

import logging
from typing import Optional

from frontweave.settings import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None, verbose: bool = False) -> None:
    """Configure root logging once.

    ``verbose`` forces DEBUG regardless of FRONTWEAVE_LOG_LEVEL.
    """
    effective = "DEBUG" if verbose else (level or LOG_LEVEL).upper()
    numeric = getattr(logging, effective, logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger("frontweave").setLevel(numeric)
