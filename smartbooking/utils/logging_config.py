"""
Centralized Logging Configuration

One stdout handler on the root logger. Inside containers the runtime stamps
each line itself, so the formatter drops the timestamp there.

Usage:
    from smartbooking.utils.logging_config import configure_logging
    configure_logging()            # level from LOG_LEVEL
    configure_logging("DEBUG", force=True)
"""
import os
import sys
import logging
from typing import Optional, Union

from smartbooking.config import LOG_LEVEL

IS_CONTAINERIZED = bool(
    os.environ.get('KUBERNETES_SERVICE_HOST') or
    os.path.exists('/.dockerenv')
)

CONTAINER_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
LOCAL_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Client libraries that log every request or job execution at INFO
QUIET_LOGGERS = (
    'httpx',
    'httpcore',
    'hpack',
    'apscheduler.executors.default',
    'apscheduler.scheduler',
)


def resolve_level(level: Union[int, str, None]) -> int:
    """Accept a logging constant or a level name; unknown names fall back to INFO."""
    if level is None:
        level = LOG_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Union[int, str, None] = None, force: bool = False) -> Optional[logging.Handler]:
    """
    Attach the application handler to the root logger.

    Args:
        level: Level constant or name; LOG_LEVEL when omitted
        force: Replace handlers that are already installed

    Returns:
        The installed handler, or None if logging was already configured
    """
    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        return None

    if force:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(
        CONTAINER_FORMAT if IS_CONTAINERIZED else LOCAL_FORMAT,
        datefmt=None if IS_CONTAINERIZED else DATE_FORMAT,
    ))

    root_logger.setLevel(resolved)
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
