import sys
from loguru import logger
from .config import settings


def setup_logging():
    """Configure the loguru stderr sink and return the shared logger."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}",
        backtrace=False,
        diagnose=settings.app_env == "dev",
    )
    return logger.bind(app=settings.app_name, env=settings.app_env)
