"""
Resilience patterns for error recovery
"""

import asyncio
import functools
import logging
from typing import Callable, Any, Tuple, Type

logger = logging.getLogger(__name__)


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
):
    """
    Decorator for retrying failed operations

    Args:
        max_attempts: Maximum number of retry attempts
        delay: Delay before the first retry in seconds
        backoff: Multiplier applied to the delay after each attempt (1.0 = fixed delay)
        exceptions: Exception types that trigger a retry
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts - 1:
                        raise
                    wait = delay * (backoff ** attempt)
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                        f"Retrying in {wait:.1f}s"
                    )
                    await asyncio.sleep(wait)

        return wrapper
    return decorator
