"""
Exception logging helpers shared by the HTTP pipeline and the socket tunnel.

Upstream failures surface as httpx transport errors, ``asyncio`` timeouts and
occasionally exception groups; these helpers render all of them into a single
log line (plus one line per sub-exception) and never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """String form of ``obj`` that survives a broken ``__str__``/``__repr__``."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception) -> str:
    """
    One-line description of an exception, suitable for an error response.

    Timeouts and connection errors from httpx often carry an empty message, in
    which case the exception type is used instead.
    """
    if exception is None:
        return "None"
    try:
        message = _safe_str(exception) or type(exception).__name__
        subs = _sub_exceptions(exception)
        if subs:
            details = "; ".join(
                f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs
            )
            return f"{message} [{details}]"
        return message
    except Exception:
        return "<exception (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, expanding exception groups into one entry per member.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Tunnel]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        subs = _sub_exceptions(exception)

        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for index, sub in enumerate(subs, start=1):
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {index}: "
                    f"{type(sub).__name__}: {_safe_str(sub)}",
                    exc_info=sub if isinstance(sub, BaseException) else False,
                )
            return

        logger.log(
            level,
            f"{safe_prefix} Exception: {format_exception_message(exception)}",
            exc_info=exception if isinstance(exception, BaseException) else False,
        )
    except Exception:
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass
