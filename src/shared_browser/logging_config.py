"""Logging configuration for the shared browser server.

Two handlers on the root logger:

- stderr, human-readable, for whoever runs the server;
- a rotating JSON-lines file per process start, one object per record with
  ``timestamp``, ``level``, ``logger``, ``message`` and every ``extra=``
  field. Broadcast events are logged with their wire fields as extras, so
  the file doubles as a replayable event log.

Usage:
    configure_logging(logging.INFO, Path('logs'))
    logger.info('page:open', extra={'pageId': '1', 'url': 'about:blank'})
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# LogRecord attributes that are not ``extra`` fields
_STANDARD_FIELDS = frozenset(
    {
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
        'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
        'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'message',
        'taskName', 'asctime',
    }
)

_NOISY_LOGGERS = ('asyncio', 'httpx', 'httpcore', 'uvicorn.access')


class JSONFormatter(logging.Formatter):
    """Outputs log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith('_') or key in entry:
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def log_file_name(now: datetime | None = None) -> str:
    """``shared-browser-<UTC timestamp>.log``, filesystem safe."""
    now = now or datetime.now(timezone.utc)
    return f'shared-browser-{now.strftime("%Y-%m-%dT%H-%M-%S")}.log'


def configure_logging(level: int = logging.INFO, log_dir: Path | None = None) -> Path | None:
    """Configure the root logger.

    Args:
        level: Minimum level for both handlers.
        log_dir: Directory for the JSON log file; no file when None.

    Returns:
        The path of the JSON log file, if one was opened.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stderr_handler)

    log_path = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / log_file_name()
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding='utf-8',
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path
