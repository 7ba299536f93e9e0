import logging

from app.core import config


def get_logger(name: str, level: str | int | None = None) -> logging.Logger:
    """Get configured logger instance"""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level if level is not None else config.LOG_LEVEL)
    return logger
