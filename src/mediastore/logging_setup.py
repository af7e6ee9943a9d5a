from __future__ import annotations

import contextvars
import json
import logging
import logging.config
import os
from collections.abc import Iterator
from contextlib import contextmanager

_CURRENT_PROVIDER_TYPE: contextvars.ContextVar[str] = contextvars.ContextVar(
    "mediastore_provider_type", default="-"
)
_CURRENT_OPERATION: contextvars.ContextVar[str] = contextvars.ContextVar(
    "mediastore_operation", default="-"
)
_STANDARD_LOGRECORD_ATTRS = {
    "name",
    "msg",
    "message",
    "asctime",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}
_CONTEXT_ATTRS = {"provider_type", "operation"}


class _StorageContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "provider_type", None) in (None, ""):
            record.provider_type = _CURRENT_PROVIDER_TYPE.get()
        if getattr(record, "operation", None) in (None, ""):
            record.operation = _CURRENT_OPERATION.get()
        return True


class _JsonExtraFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extract_extras(record)
        if not extras:
            return base
        extras_json = json.dumps(extras, indent=2, default=str, sort_keys=True)
        return f"{base}\n{extras_json}"


def _extract_extras(record: logging.LogRecord) -> dict[str, object]:
    extras: dict[str, object] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOGRECORD_ATTRS or key in _CONTEXT_ATTRS:
            continue
        extras[key] = value
    return extras


@contextmanager
def storage_log_context(provider_type: str | None, operation: str | None) -> Iterator[None]:
    """Tag log records emitted inside the block with provider type and operation."""
    provider_token = _CURRENT_PROVIDER_TYPE.set(str(provider_type) if provider_type else "-")
    operation_token = _CURRENT_OPERATION.set(str(operation) if operation else "-")
    try:
        yield
    finally:
        _CURRENT_OPERATION.reset(operation_token)
        _CURRENT_PROVIDER_TYPE.reset(provider_token)


def _install_context_filter() -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if any(isinstance(f, _StorageContextFilter) for f in handler.filters):
            continue
        handler.addFilter(_StorageContextFilter())


def configure_logging(*, log_level: str = "INFO") -> None:
    """Configure root logging with a consistent format.

    Format includes the active provider type and operation plus `module:lineno`.
    Structured `extra=` fields are appended to the line as JSON.
    """
    console_level_name = str(log_level).upper()
    default_console_fmt = (
        "%(asctime)s %(levelname)s [%(provider_type)s:%(operation)s] "
        "%(module)s:%(lineno)d %(message)s"
    )
    console_fmt = os.getenv("CONSOLE_LOG_FORMAT", default_console_fmt)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": "mediastore.logging_setup._JsonExtraFormatter",
                    "format": console_fmt,
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": console_level_name,
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"level": "DEBUG", "handlers": ["console"]},
        }
    )

    _install_context_filter()
    logging.captureWarnings(True)

    # Reduce noisy third-party request logs by default.
    for name in ("botocore", "aiobotocore", "aioboto3", "boto3", "urllib3", "aiohttp.access"):
        logging.getLogger(name).setLevel(logging.WARNING)
