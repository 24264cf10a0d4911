from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Any, Dict, Optional

import structlog

_CORRELATION_KEY = "correlation_id"

# key fragments whose values are always masked
_PII_KEYS = frozenset(
    {"password", "secret", "token", "authorization", "email", "hash"}
)
# credential-shaped values are masked whatever key they are logged under
_JWT_VALUE = re.compile(r"^eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*$")
_REFRESH_VALUE = re.compile(r"^[0-9a-f]{64}$")
_ARGON2_VALUE = re.compile(r"^\$argon2")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a request correlation id to every log line in this context."""
    cid = correlation_id or str(uuid.uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**{_CORRELATION_KEY: cid})
    return cid


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get(_CORRELATION_KEY)


def _mask(value: str) -> str:
    if len(value) > 4:
        return value[:2] + "***" + value[-2:]
    return "***"


def _looks_like_credential(value: str) -> bool:
    return bool(
        _JWT_VALUE.match(value) or _REFRESH_VALUE.match(value) or _ARGON2_VALUE.match(value)
    )


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor that masks credential material and email addresses.

    Short values are replaced entirely; longer ones keep their first and last
    two characters so related log lines can still be matched up.
    """
    for key, value in list(event_dict.items()):
        if key in ("event", _CORRELATION_KEY) or not isinstance(value, str):
            continue
        lower_key = key.lower()
        if any(pii in lower_key for pii in _PII_KEYS) or _looks_like_credential(value):
            event_dict[key] = _mask(value)
    return event_dict


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _renderer(json_output: bool, development_mode: bool) -> list:
    if development_mode or not json_output:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging(
    log_level: Optional[str] = None,
    json_output: Optional[bool] = None,
    development_mode: Optional[bool] = None,
) -> None:
    """Configure structlog for the service.

    Unset arguments fall back to ``LOG_LEVEL``, ``LOG_JSON`` and
    ``LOG_DEV_MODE``. Redaction always runs before rendering.
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = _env_flag("LOG_JSON", True)
    if development_mode is None:
        development_mode = _env_flag("LOG_DEV_MODE", False)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_pii,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ] + _renderer(json_output, development_mode)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
