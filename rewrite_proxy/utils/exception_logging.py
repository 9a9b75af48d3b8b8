"""
Utility functions for exception logging that never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception as ``Type: message``, following the ``__cause__`` chain
    so wrapped transport errors keep their underlying reason.

    Args:
        exception: The exception to format

    Returns:
        A formatted string describing the exception
    """
    if exception is None:
        return "None"
    parts = []
    seen = set()
    current = exception
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        message = _safe_str(current)
        name = type(current).__name__
        parts.append(f"{name}: {message}" if message else name)
        current = current.__cause__
    return " <- ".join(parts)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its cause chain and traceback.
    This function is designed to never throw exceptions itself, even when dealing with
    broken exception objects or logger failures.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    safe_prefix = _safe_str(prefix) if prefix is not None else ""
    try:
        message = format_exception_message(exception)
    except Exception:
        message = "(formatting failed)"

    try:
        logger.log(
            level,
            f"{safe_prefix} Exception: {message}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        try:
            logger.log(level, f"{safe_prefix} Exception: {message}")
        except Exception:
            # Logging itself is broken; nothing left to report to.
            pass
