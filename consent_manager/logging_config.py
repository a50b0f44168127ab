"""Centralized logging configuration for the consent manager."""
import logging
import sys
from typing import Any, Optional

# Configure structured logging format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = logging.INFO
PACKAGE_LOGGER = "consent_manager"


def setup_logging(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., 'consent-manager')
        level: Optional level name overriding the default INFO level

    Returns:
        Configured logger instance
    """
    log_level = logging.getLevelName(level.upper()) if level else LOG_LEVEL
    if not isinstance(log_level, int):
        log_level = LOG_LEVEL

    # Console handler with formatting
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)
    handler.setFormatter(formatter)

    # Library modules log under the package namespace
    for name in (service_name, PACKAGE_LOGGER):
        configured = logging.getLogger(name)
        configured.setLevel(log_level)
        # Remove existing handlers to avoid duplicates
        configured.handlers.clear()
        configured.addHandler(handler)

    return logging.getLogger(service_name)


def log_request(logger: logging.Logger, request_id: str, operation: str, **kwargs: Any) -> None:
    """Log incoming request details."""
    extra_info = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.info(f"Request received: request_id={request_id} operation={operation} {extra_info}".strip())


def log_response(
    logger: logging.Logger, request_id: str, operation: str, ok: bool, duration_ms: float, **kwargs: Any
) -> None:
    """Log response details."""
    status = "success" if ok else "failure"
    extra_info = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.info(
        f"Response sent: request_id={request_id} operation={operation} status={status} "
        f"duration_ms={duration_ms:.2f} {extra_info}".strip()
    )


def log_error(logger: logging.Logger, request_id: str, error: Exception, **kwargs: Any) -> None:
    """Log error details."""
    extra_info = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.error(
        f"Error occurred: request_id={request_id} error={type(error).__name__} message={str(error)} {extra_info}".strip()
    )
