"""Structured logging for the billing service.

structlog renders every event (and, through the stdlib bridge, every
uvicorn, stripe and SQLAlchemy record) as JSON in production or as console
output in debug mode. Each entry carries:

- ``service`` and the request's ``correlation_id``
- billing identifiers bound for the current request or webhook delivery
  (``user_id``, ``subscription_id``, ``customer_id``, ``event_id``)

Payment secrets never reach the output: keys such as ``client_secret`` or
``stripe_signature`` are masked before rendering.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "coursehub-billing"

BILLING_CONTEXT_KEYS = ("user_id", "subscription_id", "customer_id", "event_id")

_SECRET_KEYS = frozenset({"client_secret", "authorization", "api_key", "stripe_signature", "token", "password"})
_SECRET_SUFFIXES = ("_secret", "_token", "_key")

REDACTED = "[REDACTED]"


def add_service_context(logger, method, event_dict):
    """Tag every entry with the service name and the request's correlation id."""
    event_dict.setdefault("service", SERVICE_NAME)
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _is_secret(key) -> bool:
    name = str(key).lower().replace("-", "_")
    return name in _SECRET_KEYS or name.endswith(_SECRET_SUFFIXES)


def redact_payment_secrets(logger, method, event_dict):
    """Mask secret-looking keys, including inside nested dicts."""

    def _redact(value):
        if isinstance(value, dict):
            return {k: REDACTED if _is_secret(k) else _redact(v) for k, v in value.items()}
        return value

    return {k: REDACTED if _is_secret(k) else _redact(v) for k, v in event_dict.items()}


def bind_billing_context(**ids: str | None) -> None:
    """Bind billing identifiers to every log entry for the rest of this task.

    Only the keys in ``BILLING_CONTEXT_KEYS`` are accepted; ``None`` values
    are skipped so a partial context never overwrites a known id.
    """
    unknown = set(ids) - set(BILLING_CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"Unknown billing context keys: {sorted(unknown)}")
    structlog.contextvars.bind_contextvars(**{k: v for k, v in ids.items() if v is not None})


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and route stdlib logging through it.

    Call this BEFORE any other coursehub imports; structlog caches the
    processor chain on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_payment_secrets,
    ]

    if json_logs:
        final_processors = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        final_processors = [structlog.dev.ConsoleRenderer()]

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    *final_processors,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
            # The SDK logs every request line at INFO
            "stripe": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
