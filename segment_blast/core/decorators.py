"""
Utility decorators.
"""

import functools
import inspect
import logging
from typing import Any, Callable, Optional, ParamSpec, Type, TypeVar

from segment_blast.core.exceptions import SegmentBlastException

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def handle_errors(
    default_return: Optional[Any] = None,
    log_level: str = "error",
    reraise_as: Optional[Type[SegmentBlastException]] = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for uniform error handling.

    Known SegmentBlastException subclasses always propagate unchanged.

    Args:
        default_return: Value returned on error (when reraise_as is None)
        log_level: Log level for errors ('error', 'warning', 'info')
        reraise_as: Exception class to wrap and raise instead of returning

    Usage:
        @handle_errors(reraise_as=DatabaseError)
        async def mark_sent(...):
            ...

        @handle_errors(default_return=None, log_level="warning")
        async def optional_lookup(...):
            ...
    """

    def _handle(func: Callable, e: Exception) -> Any:
        log_func = getattr(logger, log_level, logger.error)
        log_func(
            f"Error in {func.__qualname__}: {e}",
            exc_info=log_level == "error",
            extra={"extra_fields": {"function": func.__qualname__, "error": str(e)}},
        )

        if reraise_as is not None:
            raise reraise_as(
                f"Unexpected error in {func.__qualname__}",
                details={"error": str(e)},
                original_error=e,
            ) from e

        return default_return

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except SegmentBlastException:
                raise
            except Exception as e:
                return _handle(func, e)

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except SegmentBlastException:
                raise
            except Exception as e:
                return _handle(func, e)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
