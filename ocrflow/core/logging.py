"""
Logging configuration.

One stdout handler with ISO timestamps on the root logger; modules log through
``logging.getLogger(__name__)``.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Install the console handler on the root logger, replacing existing ones."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )

    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    # Per-request lines from the HTTP client are too chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
