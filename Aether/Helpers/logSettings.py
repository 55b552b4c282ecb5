"""Logging configuration for AETHER playbooks."""
import os
import logging

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def logSetup() -> int:
    """
    Get the configured log level.

    Uses LOG_LEVEL environment variable if set, otherwise defaults to WARNING.

    Returns:
        Logging level as integer
    """
    level_name = os.environ.get("LOG_LEVEL", "WARNING").upper()
    return LOG_LEVELS.get(level_name, logging.WARNING)
