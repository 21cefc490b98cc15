"""Public observability primitives: logging setup shared by stdlib and structlog."""

from conductr_tasks.observability.logging import (
    LogFormat,
    LoggingConfig,
    LoggingHandle,
    get_active_logging_handle,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LogFormat",
    "LoggingConfig",
    "LoggingHandle",
    "get_active_logging_handle",
    "setup_logging",
    "shutdown_logging",
]
