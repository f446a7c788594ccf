"""
Helpers for logging and classifying upstream transport failures.
"""

import logging

import httpx


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def transport_error_status(exception: Exception) -> tuple[int, str]:
    """
    Map an httpx transport failure to the status and message reported to the client.

    Timeouts become 504, everything else that prevents reaching the origin
    becomes 502.
    """
    if isinstance(exception, httpx.TimeoutException):
        return 504, "gateway timeout"
    if isinstance(exception, httpx.ConnectError):
        return 502, "cannot connect to origin"
    if isinstance(exception, httpx.InvalidURL):
        return 400, "invalid target url"
    return 502, "bad gateway"


def format_exception_message(exception: Exception) -> str:
    """Format an exception as ``Type: message`` without ever raising."""
    if exception is None:
        return "None"
    try:
        return f"{type(exception).__name__}: {_safe_str(exception)}"
    except Exception:
        return "<exception (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its type and traceback.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Relay]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        logger.log(
            level,
            f"{prefix} Exception: {format_exception_message(exception)}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        # If logging with exc_info fails, try without it
        logger.log(level, f"{prefix} Exception (logging details failed)")
