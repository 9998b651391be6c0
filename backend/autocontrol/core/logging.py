"""
Structured logging configuration.

Every record is emitted as one JSON object on stdout. Values under keys that
look like credentials or contact data are replaced before serialization,
including inside nested `extra` dicts.
"""

import logging
import sys
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from autocontrol.core.config import settings

REDACTED = "***REDACTED***"

# Substrings matched against lower-cased keys
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "token",
        "secret",
        "api_key",
        "authorization",
        "email",
        "phone",
    }
)

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "passlib": logging.ERROR,
    "httpx": logging.WARNING,
    "arq.jobs": logging.INFO,
}


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact(value: Any) -> Any:
    """Copy of `value` with sensitive dict entries masked, at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive(str(key)) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class SanitizingFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that redacts credentials and contact data."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = settings.APP_NAME
        log_record["environment"] = settings.APP_ENV
        log_record["version"] = settings.APP_VERSION

    def process_log_record(self, log_record: dict[str, Any]) -> dict[str, Any]:
        return redact(log_record)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Install the JSON handler on the root logger.

    Safe to call more than once (API process and worker both call it);
    existing root handlers are replaced.
    """
    root = logging.getLogger()
    root.setLevel(level or settings.LOG_LEVEL or ("DEBUG" if settings.APP_DEBUG else "INFO"))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        SanitizingFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    # SQL echo goes through its own logger when enabled
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DB_ECHO else logging.WARNING
    )

    return root
