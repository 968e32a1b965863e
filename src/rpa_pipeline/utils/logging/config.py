# ABOUTME: Logging configuration using loguru sinks for the pipeline workers
# ABOUTME: Dual-mode operation: interactive CLI files vs production JSON on stdout

import contextlib
import io
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any

import structlog
from loguru import logger

LOG_DIR = Path("logs")

# Libraries that chatter below WARNING while workers poll
CRITICAL_LOGGERS = ["playwright", "asyncio.selector_events"]
WARNING_LOGGERS = ["sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio", "urllib3", "websockets"]


_LOGURU_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "warn": "WARNING",
    "error": "ERROR",
    "exception": "ERROR",
    "critical": "CRITICAL",
}


class LoggingMode:
    """Logging mode constants."""

    INTERACTIVE = "interactive"
    PRODUCTION = "production"


def detect_logging_mode() -> str:
    """Detect whether we're running in interactive or production mode."""
    mode = os.getenv("RPA_PIPELINE_LOG_MODE")
    if mode and mode.lower() in [LoggingMode.INTERACTIVE, LoggingMode.PRODUCTION]:
        return mode.lower()

    return LoggingMode.INTERACTIVE if sys.stdout.isatty() else LoggingMode.PRODUCTION


def setup_third_party_logging() -> None:
    """Keep driver and database library logging away from the CLI output."""
    for logger_name in CRITICAL_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)

    for logger_name in WARNING_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    logging.getLogger("py.warnings").setLevel(logging.ERROR)


def _ensure_log_dir(max_retries: int = 3) -> bool:
    for attempt in range(max_retries):
        try:
            LOG_DIR.mkdir(exist_ok=True)
            return True
        except OSError:
            if attempt == max_retries - 1:
                return False
            time.sleep(0.01 * (attempt + 1))
    return False


def configure_logging(mode: str | None = None, log_level: str = "INFO", log_file: str | None = None) -> None:
    """Configure logging using loguru.

    Args:
        mode: Logging mode (interactive/production), auto-detected if None
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Custom log file path, uses default if None
    """
    if mode is None:
        mode = detect_logging_mode()

    setup_third_party_logging()

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(numeric_level)

    logger.remove()
    _route_structlog_to_loguru(numeric_level)

    # Interactive mode falls back to stdout when the log directory is unusable
    if mode == LoggingMode.INTERACTIVE and not _ensure_log_dir():
        mode = LoggingMode.PRODUCTION

    # No sink renders frame locals, they may hold credentials
    if mode == LoggingMode.PRODUCTION:
        logger.add(
            sys.stdout, level=log_level, format="{time} | {level} | {name} | {message}", serialize=True, diagnose=False
        )
        return

    log_file_path = log_file or str(LOG_DIR / "rpa-pipeline.log")

    logger.add(
        log_file_path,
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        rotation="10 MB",
        retention="7 days",
        diagnose=False,
    )

    logger.add(
        LOG_DIR / "rpa-pipeline.json",
        level=log_level,
        format="{time} | {level} | {name} | {message}",
        serialize=True,
        rotation="10 MB",
        retention="7 days",
        diagnose=False,
    )

    logger.add(
        LOG_DIR / "errors.log",
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        backtrace=True,
        diagnose=False,
    )


def _forward_to_loguru(_, method_name: str, event_dict: dict[str, Any]) -> Any:
    """Final structlog processor: hand the event to loguru sinks and stop there."""
    event = str(event_dict.pop("event", ""))
    name = event_dict.pop("logger_name", "rpa_pipeline")
    exc_info = event_dict.pop("exc_info", False)
    event_dict.pop("level", None)
    logger.patch(lambda record: record.update(name=name)).opt(exception=bool(exc_info)).bind(**event_dict).log(
        _LOGURU_LEVELS.get(method_name, "INFO"), event
    )
    raise structlog.DropEvent


def _route_structlog_to_loguru(numeric_level: int) -> None:
    structlog.configure(
        processors=[structlog.contextvars.merge_contextvars, _forward_to_loguru],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def get_logging_status() -> dict[str, Any]:
    """Get current logging configuration status."""
    mode = detect_logging_mode()
    interactive = mode == LoggingMode.INTERACTIVE

    return {
        "mode": mode,
        "log_directory": str(LOG_DIR.absolute()) if LOG_DIR.exists() else None,
        "log_files": {
            "main": str(LOG_DIR / "rpa-pipeline.log") if interactive else None,
            "json": str(LOG_DIR / "rpa-pipeline.json") if interactive else None,
            "errors": str(LOG_DIR / "errors.log") if interactive else None,
        },
        "third_party_suppressed": CRITICAL_LOGGERS + WARNING_LOGGERS + ["py.warnings"],
    }


@contextlib.contextmanager
def suppress_library_output():
    """Context manager to completely suppress stdout/stderr from noisy libraries."""
    original_stdout, original_stderr = sys.stdout, sys.stderr

    try:
        sys.stdout = sys.stderr = io.StringIO()
        yield
    finally:
        sys.stdout, sys.stderr = original_stdout, original_stderr
