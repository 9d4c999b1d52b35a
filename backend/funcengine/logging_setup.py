import logging

from funcengine.config import LOG_LEVEL

LOGGER_NAME = "funcengine"


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Attach one stream handler to the package logger. Safe to call twice."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not any(getattr(h, "_funcengine", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        handler._funcengine = True
        logger.addHandler(handler)
    return logger
