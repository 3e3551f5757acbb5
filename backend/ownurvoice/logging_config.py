"""
Console logging for the API process.
"""

import logging
import sys

from ownurvoice import config

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    """Attach a single stdout handler to the ``ownurvoice`` logger tree."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("ownurvoice")
    root.setLevel((level or config.LOG_LEVEL).upper())
    root.addHandler(handler)
    root.propagate = False

    # SQL echo stays off unless explicitly asked for
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
