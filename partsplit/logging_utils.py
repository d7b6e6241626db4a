"""Logging helpers for per-document context and privacy-safe diagnostics.

Library code only asks for loggers. Handlers, levels and formats are left to
the host application, which calls ``configure_logging`` once at startup.
Per-module log files are written only when ``APP_ENV``/``ENV`` names a
development environment; an unset environment behaves like production.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional
from pathlib import Path
import logging
import logging.config
import json
from datetime import datetime, timezone
import os
import contextvars

import numpy as np

from partsplit.config import DEV_ENV_NAMES, Settings, app_env_name
from partsplit.resolve import PROJECT_ROOT

PACKAGE_LOGGER = "partsplit"
DEFAULT_LOG_DIR = "logs"

DEFAULT_LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d:%(funcName)s "
    "session_id=%(session_id)s document_id=%(document_id)s pass=%(pass_name)s %(message)s"
)

_STANDARD_LOG_RECORD_KEYS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
)


def summarize_payload(value: Any, *, max_list: int = 20, max_str: int = 200, depth: int = 3) -> Any:
    """Shrink a payload for a debug log line.

    Records exposing ``to_payload()`` are summarized through their payload, so
    a segment list can be logged directly. Arrays collapse to shape and dtype.
    """
    if depth <= 0:
        return f"<{type(value).__name__}>"
    to_payload = getattr(value, "to_payload", None)
    if callable(to_payload):
        return summarize_payload(to_payload(), max_list=max_list, max_str=max_str, depth=depth)

    def nested(item: Any) -> Any:
        return summarize_payload(item, max_list=max_list, max_str=max_str, depth=depth - 1)

    if isinstance(value, np.ndarray):
        return {"__ndarray__": list(value.shape), "dtype": str(value.dtype)}
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, dict):
        keys = list(value)
        summarized: Dict[str, Any] = {str(key): nested(value[key]) for key in keys[:max_list]}
        if len(keys) > max_list:
            summarized["__truncated__"] = True
            summarized["__len__"] = len(keys)
        return summarized
    if isinstance(value, (list, tuple)):
        if len(value) <= max_list:
            return [nested(item) for item in value]
        return {"__len__": len(value), "sample": [nested(item) for item in value[:5]]}
    if isinstance(value, str) and len(value) > max_str:
        return value[:max_str] + "...(truncated)"
    if isinstance(value, bytes):
        return {"__bytes__": len(value)}
    if isinstance(value, Path):
        return str(value)
    return value


def describe_header_text(text: Optional[str]) -> Dict[str, Any]:
    """Describe header text for diagnostics without exposing its content."""
    if not isinstance(text, str):
        return {"present": False, "length": 0}
    stripped = text.strip()
    return {"present": bool(stripped), "length": len(stripped)}


_session_id = contextvars.ContextVar("log_session_id", default="-")
_document_id = contextvars.ContextVar("log_document_id", default="-")
_pass_name = contextvars.ContextVar("log_pass_name", default="-")


def set_log_context(
    *,
    session_id: Optional[str] = None,
    document_id: Optional[str] = None,
    pass_name: Optional[str] = None,
) -> None:
    """Tag subsequent log records with the session, document and pass."""
    if session_id is not None:
        _session_id.set(session_id)
    if document_id is not None:
        _document_id.set(document_id)
    if pass_name is not None:
        _pass_name.set(pass_name)


def clear_log_context() -> None:
    _session_id.set("-")
    _document_id.set("-")
    _pass_name.set("-")


class LoggingContextFilter(logging.Filter):
    """Inject session/document/pass identifiers into each log record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()
        record.document_id = _document_id.get()
        record.pass_name = _pass_name.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record for structured log sinks."""
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "severity": record.levelname,
            "logger": record.name,
            "location": f"{record.filename}:{record.lineno}:{record.funcName}",
            "message": record.getMessage(),
            "session_id": getattr(record, "session_id", "-"),
            "document_id": getattr(record, "document_id", "-"),
            "pass_name": getattr(record, "pass_name", "-"),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_LOG_RECORD_KEYS and key not in payload
        }
        if extras:
            payload.update(summarize_payload(extras))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def json_logs_requested() -> bool:
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return True
    return os.getenv("LOG_JSON", "").lower() in {"1", "true", "yes"}


def is_dev_env() -> bool:
    return app_env_name() in DEV_ENV_NAMES


def build_formatter() -> logging.Formatter:
    return JsonFormatter() if json_logs_requested() else logging.Formatter(DEFAULT_LOG_FORMAT)


def attach_context_filter(handler: logging.Handler) -> None:
    if not any(isinstance(f, LoggingContextFilter) for f in handler.filters):
        handler.addFilter(LoggingContextFilter())


def ensure_context_handlers(logger_names: Iterable[str] = ("", PACKAGE_LOGGER)) -> None:
    """Give every handler on the named loggers the active format and context filter."""
    formatter = build_formatter()
    for name in logger_names:
        for handler in logging.getLogger(name).handlers:
            handler.setFormatter(formatter)
            attach_context_filter(handler)


def _logging_config_path(settings: Settings) -> Path:
    override = os.getenv("LOG_CONFIG")
    if override:
        candidate = Path(override)
        return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate
    config_name = "logging.dev.json" if settings.is_dev else "logging.prod.json"
    return PROJECT_ROOT / "config" / config_name


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install handlers for a host process; the library never calls this itself.

    Picks ``config/logging.<env>.json`` from ``settings.app_env`` (or
    ``LOG_CONFIG``), honours ``LOG_FORMAT=json`` and ``PARTSPLIT_LOG_LEVEL``,
    and lowers the package logger to DEBUG when ``settings.debug`` is set.
    """
    settings = settings or Settings.from_env()
    config_path = _logging_config_path(settings)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            config = json.load(handle)
        if json_logs_requested() and "json" in config.get("formatters", {}):
            for handler in config.get("handlers", {}).values():
                handler["formatter"] = "json"
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(level=logging.INFO)
    level_override = os.getenv("PARTSPLIT_LOG_LEVEL")
    if level_override:
        logging.getLogger().setLevel(level_override.upper())
    if settings.debug:
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)
    ensure_context_handlers()


def get_logger(module_name: str) -> logging.Logger:
    """Return a module logger, adding a per-module log file only in dev.

    The file lands in ``PARTSPLIT_LOG_DIR`` (default ``logs/`` under the
    working directory), which is created on first use.
    """
    logger = logging.getLogger(module_name)
    if getattr(logger, "_file_handler_attached", False) or not is_dev_env():
        return logger
    log_dir = Path(os.getenv("PARTSPLIT_LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / (module_name.replace(".", "_") + ".log"), encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(build_formatter())
    attach_context_filter(handler)
    logger.addHandler(handler)
    setattr(logger, "_file_handler_attached", True)
    return logger
