"""Logging setup shared by the whole application."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attaches a console handler to the package logger.

    Calling it more than once only updates the level, so the app
    module can be re-imported (e.g. by uvicorn reload) without
    duplicating output.

    Args:
        level: Name of the log level, e.g. "INFO" or "DEBUG".

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("country_api")
    logger.setLevel(level.upper())

    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)

    return logger
