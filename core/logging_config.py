"""
Structured logging configuration for the subscriber accounts service.
The API, the repository and the scheduled jobs all log JSON events through
structlog; job runs are timed with ``log_performance``. APScheduler and
waitress log through the standard library and are routed to the same stream.
"""

import functools
import logging
import sys
import time
from typing import Optional
import structlog
from config.app_config import get_config

def setup_structured_logging(log_level: Optional[str] = None) -> None:
    """Setup structured logging configuration."""
    level = log_level or get_config().monitoring.log_level

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper())
    )

    # APScheduler and waitress log through stdlib; keep their chatter down
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('waitress.queue').setLevel(logging.ERROR)

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)

class LoggerMixin:
    """Mixin to add logging capabilities to classes."""

    @property
    def logger(self) -> structlog.BoundLogger:
        """Get logger for this class."""
        return get_logger(self.__class__.__name__)

def log_performance(func):
    """Decorator to log function performance."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start_time = time.monotonic()

        try:
            result = func(*args, **kwargs)
            execution_time = time.monotonic() - start_time
            logger.info(
                "Function performance",
                function=func.__name__,
                execution_time_ms=execution_time * 1000,
                success=True
            )
            return result
        except Exception as e:
            execution_time = time.monotonic() - start_time
            logger.error(
                "Function performance",
                function=func.__name__,
                execution_time_ms=execution_time * 1000,
                error=str(e),
                success=False
            )
            raise
    return wrapper
