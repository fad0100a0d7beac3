"""
Logging helpers.

Handlers and levels come from Django's LOGGING setting; modules only ask
for a named logger.
"""
import logging


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
