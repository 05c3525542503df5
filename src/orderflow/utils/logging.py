"""Logging configuration for the order fulfillment domain."""

import logging

import structlog

logger = structlog.get_logger(__name__)

# Suppress noisy library loggers
logging.getLogger("protean").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


def log_security_event(event: str, **context) -> None:
    """Log a rejected signature or other tampering signal.

    Security events are flagged so they can be routed apart from ordinary
    payment failures.
    """
    logger.warning(event, security_event=True, **context)
