# =============================================================================
# pharmacare_core/errors/handlers.py
# Error Handling Utilities for PharmaCare
# =============================================================================
"""
Helpers that turn exceptions into log lines and summaries.

Connectivity problems never reach the user as dialogs: they are logged here
and surfaced through the passive connection status instead.
"""

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any, Dict

from pharmacare_core.logging import get_logger
from .exceptions import PharmaCareError

logger = get_logger(__name__)

T = TypeVar("T")


def _summarize(error: Exception) -> Dict[str, Any]:
    if isinstance(error, PharmaCareError):
        return error.to_dict()
    return {
        "error_type": type(error).__name__,
        "code": "UNKNOWN",
        "message": str(error),
        "details": {"traceback": traceback.format_exc()},
        "recoverable": True,
    }


def handle_error(
    error: Exception,
    log_error: bool = True,
    context: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Summarize an exception and (optionally) log it at ERROR.

    Unknown exceptions get code "UNKNOWN" and are logged with a traceback;
    PharmaCareError subclasses already carry their context in ``details``.
    """
    summary = _summarize(error)
    if context:
        summary["context"] = context

    if log_error:
        where = f"{context}: " if context else ""
        logger.error(
            f"{where}[{summary['code']}] {summary['message']}",
            extra={"details": summary["details"]},
            exc_info=not isinstance(error, PharmaCareError),
        )
    return summary


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    context: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """Call ``func``; on failure log it and return ``default`` unless ``reraise``."""
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        handle_error(exc, context=context or getattr(func, "__name__", None))
        if reraise:
            raise
        return default


def error_boundary(default_return: Any = None, log: bool = True):
    """
    Decorator form of safe_execute for best-effort methods.

    Usage:
        @error_boundary(default_return=None)
        def save(self, data: dict) -> None:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def guarded(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                if log:
                    logger.error(f"{func.__qualname__} failed: {exc}", exc_info=True)
                return default_return

        return guarded

    return decorator
