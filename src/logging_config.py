"""
Central logging configuration for the authorization core.

Provides:
- Structured logging (JSON in production, human-readable in development)
- Tenant and principal correlation via contextvars, bound once per request
  by the middleware adapter
- Environment-aware log levels

Usage:
    from src.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Roles assigned", extra={"principal": "user:1", "roles": ["editor"]})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
principal_var: ContextVar[Optional[str]] = ContextVar("principal", default=None)

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "tenant_id", "actor"}


def bind_log_context(tenant_id: Optional[str] = None, principal: Optional[str] = None) -> None:
    """Attach tenant and principal to every record logged in this context."""
    tenant_id_var.set(tenant_id)
    principal_var.set(principal)


class AuthContextFilter(logging.Filter):
    """Copies the bound tenant and principal onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = tenant_id_var.get() or "-"  # type: ignore[attr-defined]
        record.actor = principal_var.get() or "-"  # type: ignore[attr-defined]
        return True


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extras flattened into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in ("tenant_id", "actor"):
            value = getattr(record, field, "-")
            if value != "-":
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        payload.update(
            (key, _json_safe(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and value is not None
        )
        return json.dumps(payload)


def _create_dev_formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s %(levelname)-5s [%(name)s] tenant=%(tenant_id)s actor=%(actor)s %(message)s",
        datefmt="%H:%M:%S",
    )


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: 'production' switches to JSON output
        debug: If True, use DEBUG level regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(AuthContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else _create_dev_formatter())

    root = logging.getLogger()
    root.setLevel(level)
    # Replace, never stack, handlers when the app is created twice
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncpg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Tenant and actor are filled in by the handler configure_logging()
    installs. Use extra={} for additional structured fields.
    """
    return logging.getLogger(name)
