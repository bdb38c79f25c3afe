"""
Structured Logging with Structlog.

JSON logs carrying the request id and, inside a validation, the store,
purchase kind and user. Receipt payloads and credentials never reach the
output: sensitive fields are replaced by their length.
"""

import logging
import sys
from collections.abc import Mapping
from contextvars import Token
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from iap_validation.config import settings

SENSITIVE_FIELDS = frozenset(
    {
        "receipt",
        "raw_request",
        "raw_response",
        "password",
        "private_key",
        "access_token",
        "assertion",
    }
)

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "google.auth", "urllib3")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace receipts, provider bodies and credentials with their length."""
    for key in SENSITIVE_FIELDS.intersection(event_dict):
        value = event_dict[key]
        event_dict[key] = f"<redacted len={len(str(value))}>" if value else "<empty>"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    Logs are formatted as JSON for machine parsing with the following structure:
    {
        "event": "purchase_validation_failed",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "iap_validation.services.validation",
        "service": "iap-validation-api",
        "version": "0.1.0",
        "request_id": "req-123",
        "store": "google_play_store",
        "kind": "subscription",
        ...additional context
    }
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("purchases_validated", store="apple_app_store", stored=1)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Contexts nest: leaving an inner context restores the values the outer one
    bound, so a validation's store/kind never leaks into later request logs.

    Usage:
        with log_context(request_id="req-123"):
            with log_context(store="apple_app_store", kind="purchase"):
                logger.info("apple_receipt_verified")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self._tokens: Mapping[str, Token[Any]] = {}

    def __enter__(self) -> None:
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
