"""
Logging setup for the proxy process.

Everything goes to stderr; the proxy never writes to stdout.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("lsp_ws_proxy")


def setup_logging(level="INFO"):
    """Install a single stderr handler on the lsp_ws_proxy logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError("unknown log level")

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    # Handshake failures and the like are reported by websockets itself.
    logging.getLogger("websockets").setLevel(max(level, logging.INFO))
    return logger
