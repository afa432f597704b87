"""
Structured logging configuration.

Provides:
    • JSON log lines in production (one object per record)
    • Coloured console output elsewhere, tagged with incident / stage / channel
    • Request-scoped context (request_id, client_ip, endpoint, incident_id)
    • Credential redaction: configured API keys and tokens never reach a handler

Usage:
    from backend.app.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Generating messages", extra={"stage": "initial"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from backend.app.core.config import Settings, settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

# Record attributes passed via ``extra=`` that are copied into log output
_EXTRA_KEYS = (
    "stage", "incident_id", "attempt", "channel", "platform",
    "duration_ms", "status_code", "endpoint", "generation_path",
)

# Shown inline by the console formatter
_CONSOLE_TAGS = ("incident_id", "stage", "channel", "generation_path")

# Settings whose values must never appear in a log line
SECRET_SETTINGS = (
    "ANTHROPIC_API_KEY",
    "TWILIO_AUTH_TOKEN",
    "SMTP_PASSWORD",
    "TWITTER_BEARER_TOKEN",
    "FACEBOOK_PAGE_ACCESS_TOKEN",
)
REDACTED = "[redacted]"


def set_request_context(**kwargs: Any) -> None:
    """Replace the request-scoped context (middleware calls this per request)."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _extras(record: logging.LogRecord, keys: Iterable[str]) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in keys if hasattr(record, key)}


# ── Redaction ──

def secret_values(config: Settings) -> List[str]:
    """Configured credential values; very short values are ignored."""
    values = (getattr(config, name, None) for name in SECRET_SETTINGS)
    return [v for v in values if v and len(v) >= 4]


class SecretRedactionFilter(logging.Filter):
    """Replaces any configured credential in the rendered message."""

    def __init__(self, secrets: Optional[Iterable[str]] = None):
        super().__init__()
        self.secrets = sorted(
            set(secrets if secrets is not None else secret_values(settings)),
            key=len, reverse=True,
        )

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


# ── Formatters ──

class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }

        ctx = get_request_context()
        if ctx:
            entry["context"] = ctx
        entry.update(_extras(record, _EXTRA_KEYS))

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Console format: time, level, request id, tags, logger, message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        request_id = get_request_context().get("request_id")
        rid = f" [{request_id[:8]}]" if request_id else ""

        tags = _extras(record, _CONSOLE_TAGS)
        tag_str = "".join(f" {key}={value}" for key, value in tags.items())

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{rid}{tag_str} {record.name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


# ── Setup ──

def setup_logging(config: Optional[Settings] = None) -> None:
    """Install a single stdout handler on the root logger."""
    config = config or settings
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if config.is_production else PrettyFormatter())
    handler.addFilter(SecretRedactionFilter(secret_values(config)))
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
