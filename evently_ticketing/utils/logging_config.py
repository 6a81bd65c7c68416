"""
Logging configuration for the API process and Celery workers.

Records carry the request id of the HTTP request that produced them and
pass through a filter that masks payment signatures, QR tokens, bearer
tokens and attendee contact details before any handler writes them.
"""

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import get_settings

APP_LOGGER = "evently_ticketing"
MASK = "***MASKED***"
ROTATE_BYTES = 10 * 1024 * 1024

# Third-party loggers and the level they are capped at
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "redis": "WARNING",
    "celery": "INFO",
    "httpx": "WARNING",
    "urllib3": "WARNING",
    "PIL": "WARNING",
}

_FILTERS = ["request_id", "sensitive_data"]


def _file_handler(filename: str, level: str, formatter: str, backup_count: int) -> Dict[str, Any]:
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": filename,
        "maxBytes": ROTATE_BYTES,
        "backupCount": backup_count,
        "filters": _FILTERS,
    }


def build_logging_config(
    log_level: str,
    log_file: Optional[str],
    enable_json_logging: bool,
    separate_error_log: bool,
) -> Dict[str, Any]:
    """dictConfig mapping for the given options."""
    formatter = "json" if enable_json_logging else "text"

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter,
            "stream": sys.stdout,
            "filters": _FILTERS,
        }
    }
    if log_file:
        handlers["file"] = _file_handler(log_file, log_level, formatter, backup_count=5)

    shared: List[str] = list(handlers)

    app_handlers = list(shared)
    if separate_error_log:
        error_file = log_file.replace(".log", "_errors.log") if log_file else "logs/errors.log"
        handlers["error_file"] = _file_handler(error_file, "ERROR", formatter, backup_count=10)
        app_handlers.append("error_file")

    loggers: Dict[str, Any] = {
        APP_LOGGER: {"level": log_level, "handlers": app_handlers, "propagate": False},
    }
    for name, level in _LIBRARY_LEVELS.items():
        loggers[name] = {"level": level, "handlers": shared, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {
                "format": "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": f"{APP_LOGGER}.utils.logging_config.JSONFormatter"},
        },
        "filters": {
            "request_id": {"()": f"{APP_LOGGER}.utils.logging_config.RequestIDFilter"},
            "sensitive_data": {"()": f"{APP_LOGGER}.utils.logging_config.SensitiveDataFilter"},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": shared},
    }


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logging: bool = False,
) -> None:
    """
    Configure logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
        enable_json_logging: Emit one JSON object per line instead of text
    """
    separate_error_log = get_settings().environment == "production"
    logging.config.dictConfig(
        build_logging_config(log_level.upper(), log_file, enable_json_logging, separate_error_log)
    )


class RequestIDFilter(logging.Filter):
    """Stamp records with the current request id."""

    def filter(self, record):
        if not getattr(record, "request_id", None):
            from ..middleware.logging import request_id_var
            record.request_id = request_id_var.get()
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask secrets and contact details in messages and ``extra`` fields."""

    SENSITIVE_KEYS = frozenset({
        "password", "token", "secret", "authorization", "cookie",
        "signature", "razorpay_signature", "qr_code", "qr_token", "qr_data",
        "api_key", "access_token", "key_secret", "user_phone", "phone",
    })

    # Fernet QR tokens, JWTs and signatures are all long unbroken runs
    _LONG_TOKEN = re.compile(r"\b[A-Za-z0-9_\-.]{40,}\b")
    _EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._mask_text(record.msg)

        for key in list(vars(record)):
            if key in _RECORD_ATTRS:
                continue
            value = getattr(record, key)
            if value is None:
                continue
            if key.lower() in self.SENSITIVE_KEYS:
                setattr(record, key, MASK)
            else:
                setattr(record, key, self._mask(value))
        return True

    def _mask_text(self, text: str) -> str:
        return self._EMAIL.sub("***EMAIL***", self._LONG_TOKEN.sub(MASK, text))

    def _mask(self, value):
        if isinstance(value, str):
            return self._mask_text(value)
        if isinstance(value, dict):
            return {
                k: MASK if str(k).lower() in self.SENSITIVE_KEYS else self._mask(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(self._mask(item) for item in value)
        return value


# Attributes present on every LogRecord; anything else came in via ``extra``
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields are nested under ``extra``."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key != "request_id"
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str, ensure_ascii=False)


def log_business_event(event_type: str, details: Dict[str, Any], user_id: Optional[str] = None):
    """Audit line for bookings, payments and check-ins."""
    logging.getLogger(f"{APP_LOGGER}.business").info(
        f"Business event: {event_type}",
        extra={"event_type": event_type, "business_event": True, "user_id": user_id, **details}
    )


def log_security_event(event_type: str, details: Dict[str, Any], severity: str = "WARNING"):
    """Audit line for signature mismatches and unauthorized scans."""
    logger = logging.getLogger(f"{APP_LOGGER}.security")
    logger.log(
        logging.getLevelName(severity.upper()),
        f"Security event: {event_type}",
        extra={"event_type": event_type, "security_event": True, "severity": severity, **details}
    )
