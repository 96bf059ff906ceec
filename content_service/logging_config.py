"""
Logging configuration for content service.

Configures structlog on top of the standard library so that both
structlog loggers and third-party stdlib loggers share one output.
"""

import logging
import sys
from typing import Optional
from uuid import uuid4

import structlog


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "content-service",
    use_json: bool = True,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Name of the service for log identification
        use_json: Render JSON lines instead of human-readable console output
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def bind_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request ID to the logging context of the current task.

    Args:
        request_id: Request ID to bind, generates new UUID if None

    Returns:
        The request ID that was bound
    """
    if request_id is None:
        request_id = str(uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def clear_request_id() -> None:
    """Remove the request ID from the logging context."""
    structlog.contextvars.unbind_contextvars("request_id")
