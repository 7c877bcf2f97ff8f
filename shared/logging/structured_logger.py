"""Structured logging for the business manager API.

Every entry carries the service name and environment, and values under
credential-like keys (PINs, hashes, tokens) are masked before rendering.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor


_APP_CONTEXT: dict[str, str] = {"app": "business-manager-api"}

REDACTED = "[redacted]"

SENSITIVE_KEYS = frozenset({
    "pin",
    "pin_code",
    "pinCode",
    "pin_hash",
    "token",
    "access_token",
    "accessToken",
    "authorization",
    "jwt_secret_key",
})


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag the entry with the service name and environment."""
    for key, value in _APP_CONTEXT.items():
        event_dict.setdefault(key, value)
    return event_dict


def redact_sensitive(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values, including ones nested one level in a dict."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                inner: REDACTED if inner in SENSITIVE_KEYS else inner_value
                for inner, inner_value in value.items()
            }
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """Configure structlog on top of the standard library logging tree.

    Args:
        log_level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines; otherwise plain console output
        service_name: Value of the ``app`` field
        environment: Value of the ``environment`` field
    """
    if service_name:
        _APP_CONTEXT["app"] = service_name
    if environment:
        _APP_CONTEXT["environment"] = environment

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_app_context,
        redact_sensitive,
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def bind_context(**kwargs: Any) -> None:
    """Bind request-scoped values (correlation id, user id) to later entries."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
