"""structlog setup shared by every scopeward module.

Configured once on import from ``LOG_LEVEL``, ``LOG_JSON`` and
``LOG_DEV_MODE``. Request ids travel through ``structlog.contextvars`` so
every event logged while serving a request carries ``request_id``; the API
middleware in ``scopeward.api.middleware`` binds it.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, Optional

import structlog

REQUEST_ID_KEY = "request_id"

# Substrings of event keys whose string values are credentials
_CREDENTIAL_MARKERS = ("token", "secret", "password", "authorization")

_TRUTHY = {"1", "true", "yes", "on"}


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Bind ``request_id`` (or a fresh uuid4) to the current context."""
    rid = request_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: rid})
    return rid


def unbind_request_id() -> None:
    structlog.contextvars.unbind_contextvars(REQUEST_ID_KEY)


def current_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY)


def _mask_credentials(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Mask token-bearing values; TTLs and other non-strings pass through."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if any(marker in key.lower() for marker in _CREDENTIAL_MARKERS):
            event_dict[key] = f"{value[:2]}***" if len(value) > 8 else "***"
    return event_dict


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    development_mode: Optional[bool] = None,
) -> None:
    """(Re)configure structlog; unset arguments fall back to the environment."""
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.getenv("LOG_JSON", "true").lower() in _TRUTHY
    if development_mode is None:
        development_mode = os.getenv("LOG_DEV_MODE", "false").lower() in _TRUTHY

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_credentials,
        structlog.processors.StackInfoRenderer(),
    ]
    if development_mode or not json_output:
        processors.append(structlog.dev.ConsoleRenderer(colors=development_mode))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
