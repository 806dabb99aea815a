"""
Logging configuration for Realty CRM.

Single 'realtycrm' logger used across all modules.

  Log file : logs/realtycrm.log
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL)
             defaults to INFO when unset

Usage
-----
    from realtycrm.logging_config import configure_logging, log_call

    configure_logging()   # once at startup, idempotent

    @log_call
    async def get_financial_report(self, start=None, end=None):
        ...

log_call wraps plain functions and coroutine functions alike.

Log format per line
-------------------
    2026-10-19 14:32:01 | DEBUG    | CALL get_stats | args=(start='2026-09-30T18:00:00.000Z', ...)
    2026-10-19 14:32:01 | INFO     | OK   get_stats | 301ms
    2026-10-19 14:32:01 | ERROR    | FAIL update_customer | CrmOperationError: ... | 3ms
"""

import functools
import inspect
import logging
import logging.handlers
import os
import time
from pathlib import Path

_LOG_DIR = Path(__file__).parent.parent / "logs"
_LOG_FILE = _LOG_DIR / "realtycrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3
_LOGGER_NAME = "realtycrm"


def configure_logging() -> logging.Logger:
    """
    Set up the realtycrm logger. Idempotent, safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(_LOGGER_NAME)

    # Guard: don't add duplicate handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def _describe_args(args, kwargs) -> str:
    parts = [repr(a) for a in args] + [f"{k}={v!r}" for k, v in kwargs.items()]
    return ", ".join(parts) if parts else "—"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG on entry   : CALL <name> | args=(...)
    - INFO  on success : OK   <name> | <N>ms
    - ERROR on failure : FAIL <name> | ExcType: message | <N>ms   (then re-raises)

    Coroutine functions get an async wrapper so the timing covers the awaited body.
    """
    name = func.__name__

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = logging.getLogger(_LOGGER_NAME)
            start = time.perf_counter()
            logger.debug(f"CALL {name} | args=({_describe_args(args, kwargs)})")
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {_elapsed_ms(start)}ms")
                raise
            logger.info(f"OK   {name} | {_elapsed_ms(start)}ms")
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(_LOGGER_NAME)
        start = time.perf_counter()
        logger.debug(f"CALL {name} | args=({_describe_args(args, kwargs)})")
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {_elapsed_ms(start)}ms")
            raise
        logger.info(f"OK   {name} | {_elapsed_ms(start)}ms")
        return result

    return wrapper
