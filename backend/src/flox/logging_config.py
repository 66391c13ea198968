"""Structured logging for the Flox API and CLI.

Every event is a snake_case name plus key/value context, e.g.
``referral_code_redeemed`` (code, user_id, subscription_id),
``subscription_provisioned`` or ``stripe_webhook_processed``. Production
(``LOG_FORMAT=json``) emits one JSON object per line; development gets the
coloured console renderer. Stripe client secrets and bearer tokens never
reach the output.
"""

import logging
import sys
from typing import Any

import structlog

from flox.settings import settings

# Values under these keys are masked before rendering
REDACTED_KEYS = frozenset({"client_secret", "authorization", "token", "stripe_secret_key", "webhook_secret"})

# Chatty libraries that only log at WARNING unless LOG_LEVEL=DEBUG
QUIET_LOGGERS = ("stripe", "sqlalchemy.engine", "uvicorn.access")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask payment and auth secrets bound into an event."""
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag events with the app name and environment so shared log sinks can filter."""
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.env)
    return event_dict


def configure_logging() -> None:
    """Configure structlog for Flox events and stdlib logging for the libraries beneath it."""
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        redact_secrets,
    ]

    if settings.log_format == "json":
        processors = shared + [
            add_service_context,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # stripe, sqlalchemy and uvicorn log through stdlib logging
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    if settings.log_level != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for a Flox module; pass ``__name__``."""
    return structlog.get_logger(name)
