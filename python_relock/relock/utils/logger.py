"""
Logging helpers for lock activity.

Lock code logs through a ``LockLogAdapter`` so every record carries the
namespace it belongs to; per-call extras add the lock key, the fencing index
and the release/renew result. Both formatters render those fields when set.
"""
import logging
import json
import sys
from typing import Any, Dict, MutableMapping, Optional, TextIO, Tuple
from datetime import datetime, timezone

# Record attributes rendered by the formatters, in output order
LOCK_FIELDS = ("namespace", "lock_key", "lock_index", "lock_result")


class LockLogAdapter(logging.LoggerAdapter):
    """Stamps records with the namespace; call-site extras win on conflict."""

    def __init__(self, logger: logging.Logger, namespace: str):
        super().__init__(logger, {"namespace": namespace})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def _lock_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in LOCK_FIELDS if getattr(record, name, None) is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per line with the lock fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_lock_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _lock_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def setup_logging(level: str = "INFO", format_type: str = "json", stream: Optional[TextIO] = None):
    """
    Route the root logger to ``stream`` (stdout by default) using the json or
    text formatter; the redis client and asyncio loggers are capped at WARNING.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter() if format_type.lower() == "json" else TextFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_logging_from_config(config, stream: Optional[TextIO] = None):
    setup_logging(level=config.logging.level, format_type=config.logging.format, stream=stream)
