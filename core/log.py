"""Logging setup for the gateway process."""

import json
import logging
import sys
from datetime import datetime, timezone

LOG_FORMATS = ('console', 'json')

CONSOLE_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Structured fields via logger.info("...", extra={"fields": {...}})
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Plain text formatter that appends structured fields as key=value."""

    def __init__(self):
        super().__init__(CONSOLE_FORMAT, datefmt='%H:%M:%S')

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict) and fields:
            message += ' ' + ' '.join(f"{k}={v}" for k, v in fields.items())
        return message


def setup_logging(level: str = 'info', fmt: str = 'console', stream=None) -> logging.Logger:
    """Configure the root logger.

    Args:
        level: Level name (debug, info, warning, error)
        fmt: 'console' or 'json'
        stream: Output stream (defaults to stderr)

    Returns:
        The configured root logger
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"log format must be one of {', '.join(LOG_FORMATS)}: {fmt!r}")

    numeric_level = logging.getLevelName(str(level).upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level!r}")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == 'json' else ConsoleFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # requests/urllib3 are chatty at debug level
    logging.getLogger('urllib3').setLevel(max(numeric_level, logging.INFO))
    logging.getLogger('websockets').setLevel(max(numeric_level, logging.INFO))
    return root
