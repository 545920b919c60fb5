"""Logging configuration for the reconstructor."""
import logging
import sys
from typing import Optional

from reconstructor.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_level(environment: str, override: Optional[str] = None) -> int:
    """
    Pick the log level for an environment.

    Args:
        environment: Deployment environment name
        override: Explicit level name (e.g. ``"WARNING"``), wins when valid

    Returns:
        A ``logging`` level constant
    """
    if override:
        level = logging.getLevelName(override.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if environment == "development" else logging.INFO


level = resolve_level(settings.environment, settings.log_level)

logger = logging.getLogger("reconstructor")
logger.setLevel(level)

handler = logging.StreamHandler(sys.stdout)
handler.setLevel(level)
handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

# Module may be imported from both the API process and the worker
if not logger.handlers:
    logger.addHandler(handler)

logger.propagate = False

__all__ = ["logger", "resolve_level"]
