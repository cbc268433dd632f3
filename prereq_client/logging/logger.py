"""
structlog setup for prereq-client.

Every record carries an ISO timestamp, the level, the module's logger name
and a snake_case event_type, plus keyword context such as signature, address,
attempt or backoff_sec. Records go to stderr so CLI stdout stays limited to
transaction ids and explorer links.

Environment:
- LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default INFO)
- LOG_FORMAT: json (default) | console

Imports nothing from prereq_client, so any module can import it first.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

import structlog

# Context keys that must never reach a log line
_SECRET_KEYS = frozenset({"secret", "secret_key", "keypair", "seed", "private_key"})

# solana-py logs every request through httpx at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def _timestamp(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Store the event name under event_type (aggregation key)."""
    event = event_dict.pop("event", None)
    if event is not None:
        event_dict.setdefault("event_type", event)
    return event_dict


def _redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None, stream: TextIO | None = None) -> None:
    """(Re)configure structlog. Arguments override LOG_LEVEL / LOG_FORMAT; stream defaults to sys.stderr."""
    stream = stream or sys.stderr
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    level_value = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT") or "json").strip().lower()

    if fmt == "console":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=stream.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _timestamp,
            _event_type,
            _redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level_value, logging.WARNING))


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for a module; the name is bound as "logger".

        logger = get_logger(__name__)
        logger.info("tx_sent", signature=sig, instruction_count=1)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_address(address: str) -> structlog.BoundLogger:
    """Logger with a wallet address bound to every record."""
    return get_logger("prereq_client").bind(address=address)
