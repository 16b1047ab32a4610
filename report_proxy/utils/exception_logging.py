"""
Utility functions for logging upstream failures of proxied report requests.
"""

import logging


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


def _request_of(exception) -> str:
    """
    Describe the upstream request attached to an httpx error, if any.

    httpx raises RuntimeError from ``.request`` when no request is attached.
    """
    try:
        request = exception.request
    except (AttributeError, RuntimeError):
        return ""
    return f"{request.method} {request.url}"


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception for logs and error details.

    Exception groups list their sub-exceptions; httpx errors name the upstream
    request that failed. Never raises.
    """
    if exception is None:
        return "None"

    message = f"{type(exception).__name__}: {_safe_str(exception)}"
    target = _request_of(exception)
    if target:
        message = f"{message} ({target})"

    sub_exceptions = getattr(exception, "exceptions", None) or []
    if sub_exceptions:
        parts = "; ".join(format_exception_message(sub) for sub in sub_exceptions)
        message = f"{message} (Sub-exceptions: {parts})"
    return message


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception including the failed upstream request and any sub-exceptions.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[SSRS-Proxy]")
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
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            # Logging must never break the request path
            pass
