# storefront/utils/logger.py
import os
import sys
from loguru import logger

log_format = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level="INFO", log_file=None):
    """Reset loguru sinks: colored stderr, plus a rotating JSON file when log_file is set."""
    logger.remove()
    logger.add(sys.stderr, colorize=True, format=log_format, level=level)
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        logger.add(
            log_file,
            rotation="100 MB",
            retention="10 days",
            compression="zip",
            serialize=True,
            level="DEBUG",
            enqueue=True,
            catch=True,
        )
    return logger


log = logger
