"""
Best-effort operations.

A coroutine decorated with ``best_effort`` never raises: failures are logged
with a traceback and the declared fallback is returned instead. Operations
whose failure must reach the caller are simply not decorated.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def best_effort(fallback: Any = None) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception:
                logger.exception(f"Best-effort operation {func.__qualname__} failed; continuing")
                return fallback

        wrapper.__best_effort__ = True  # type: ignore[attr-defined]
        return wrapper

    return decorator
