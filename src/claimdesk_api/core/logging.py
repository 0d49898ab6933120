from __future__ import annotations

import json
import logging
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib record carries; anything else was passed via ``extra=``.
_STANDARD_RECORD_ATTRS = frozenset(LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

# Operator bearer tokens pass through every approval action; never emit them.
_REDACTED_EXTRA_KEYS = frozenset({"token", "access_token", "authorization", "bearer"})
_REDACTED = "[redacted]"


def _redact(extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: (_REDACTED if value and key.lower() in _REDACTED_EXTRA_KEYS else value)
        for key, value in extra.items()
    }


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, httpx, opentelemetry) into Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_ATTRS}
        # Loguru formats the message again, so literal braces must be escaped.
        text = record.getMessage().replace("{", "{{").replace("}", "}}")

        target = logger.bind(**_redact(extra)) if extra else logger
        target.opt(depth=6, exception=record.exc_info).log(level, text)


def _trace_fields() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": format(span_context.trace_id, "032x"),
        "span_id": format(span_context.span_id, "016x"),
    }


def _serialize_log(message: "logger.Message", metadata: Dict[str, Any]) -> None:
    record = message.record
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
        **_trace_fields(),
    }
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    payload.update(_redact(record["extra"]))

    print(json.dumps(payload, default=str))


def approval_logger(*, claim_id: str, session_id: str | None = None):
    """Return a logger bound to one approval flow."""

    if session_id is None:
        return logger.bind(claim_id=claim_id)
    return logger.bind(claim_id=claim_id, approval_session_id=session_id)


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Send Loguru and stdlib logging to stdout as one JSON object per line."""

    logger.remove()
    metadata = {"service": service_name, "environment": environment, "version": version}
    logger.add(
        lambda message: _serialize_log(message, metadata),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "approval_logger", "configure_logging"]
