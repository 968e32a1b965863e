# ABOUTME: Logging configuration and structured logger helpers
# ABOUTME: Loguru sinks for output, structlog loggers with job and pipeline context

from .config import LoggingMode, configure_logging, get_logging_status, suppress_library_output
from .utils import (
    LogContext,
    generate_operation_id,
    get_logger,
    with_async_operation_context,
    with_job_context,
    with_pipeline_context,
)

__all__ = [
    # Configuration
    "LoggingMode",
    "configure_logging",
    "get_logging_status",
    "suppress_library_output",
    # Utilities
    "LogContext",
    "generate_operation_id",
    "get_logger",
    "with_async_operation_context",
    "with_job_context",
    "with_pipeline_context",
]
