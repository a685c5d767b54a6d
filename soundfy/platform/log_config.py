"""
Logging setup for the API process and worker entry points.
"""

import logging
import os

from soundfy.platform.secrets import SecretRedactingFilter

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = None) -> None:
    """
    Configure root logging once per process.

    The level defaults to LOG_LEVEL (INFO when unset). Every root handler
    gets the secret-redacting filter.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)

    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, SecretRedactingFilter) for f in handler.filters):
            handler.addFilter(SecretRedactingFilter())
