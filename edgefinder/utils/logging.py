import logging
import os
from typing import Optional


ROOT_LOGGER = "edgefinder"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a component logger under the ``edgefinder`` namespace.

    The level comes from ``LOG_LEVEL``; a single stream handler is attached to
    the namespace root so every component shares one format.
    """
    level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_str, logging.INFO)

    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(level)

    if not name:
        return root
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
