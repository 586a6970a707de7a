"""Structured logging configuration using structlog."""

import logging
import re
import sys

import structlog

# Stripe API keys (sk_live_..., rk_test_...) and webhook signing secrets (whsec_...)
_SECRET_PATTERN = re.compile(r"\b((?:sk|rk)_(?:live|test)_[A-Za-z0-9]{8,}|whsec_[A-Za-z0-9]{8,})")
_REDACTED = "<SECRET_REDACTED>"


class SecretRedactingFilter(logging.Filter):
    """Filter that redacts payment secrets from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log message."""
        if record.msg and isinstance(record.msg, str):
            record.msg = _SECRET_PATTERN.sub(_REDACTED, record.msg)
        if record.args:
            record.args = tuple(
                _SECRET_PATTERN.sub(_REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def redact_secrets(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor to redact payment secrets from event dictionaries."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = _SECRET_PATTERN.sub(_REDACTED, value)
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    secret_filter = SecretRedactingFilter()
    level = getattr(logging, log_level.upper())

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers and add new one with filter
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(secret_filter)
    root_logger.addHandler(handler)

    # The Stripe SDK logs request details through its own logger
    for logger_name in ("stripe", "httpx", "uvicorn.access"):
        logging.getLogger(logger_name).addFilter(secret_filter)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
