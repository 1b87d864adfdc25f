"""Run logging: rich console output on stderr plus a JSON-lines run log.

Fields bound with ``LogContext`` live in a context variable and are copied onto
every record created while the block is active, so both outputs can tell which
declaration a message belongs to.
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_DIR = Path('.shipyard/logs')

QUIET_LOGGERS = ('boto3', 'botocore', 'urllib3')

_bound_fields: ContextVar[Dict[str, Any]] = ContextVar('shipyard_log_fields', default={})
_base_factory: Optional[Callable[..., logging.LogRecord]] = None


def _install_record_factory() -> None:
    """Wrap the log record factory, once, so new records carry the bound fields."""
    global _base_factory
    if _base_factory is not None:
        return

    base = _base_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = base(*args, **kwargs)
        fields = _bound_fields.get()
        for key, value in fields.items():
            setattr(record, key, value)
        record.bound_fields = tuple(fields)
        return record

    logging.setLogRecordFactory(record_factory)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including every field bound by LogContext."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry = {
            'timestamp': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in getattr(record, 'bound_fields', ()):
            entry[key] = getattr(record, key)
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Message text prefixed with its declaration; the rich handler adds time and level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        resource_id = getattr(record, 'resource_id', None)
        return f"[{resource_id}] {message}" if resource_id else message


def setup_logging(
    log_level: str = 'info',
    log_dir: Optional[Path] = None,
    console: Optional[Console] = None
) -> Path:
    """Configure the root logger for a CLI run.

    The console handler honours ``log_level``; the run log under ``log_dir``
    always receives debug records.

    Args:
        log_level: Console logging level (debug, info, warning, error)
        log_dir: Directory for the JSON-lines run log
        console: Rich console to log to; share the CLI's stderr console so
            log lines render above a live progress bar

    Returns:
        Path of the JSON-lines run log
    """
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"shipyard-{datetime.now(timezone.utc):%Y%m%d}.jsonl"

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        log_time_format='%H:%M:%S',
    )
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(ConsoleFormatter())

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _install_record_factory()
    return log_file


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Bind fields such as ``resource_id`` to every record logged inside the block.

    Blocks nest: inner fields override outer ones until the inner block exits.
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token = None

    def __enter__(self) -> 'LogContext':
        _install_record_factory()
        self._token = _bound_fields.set({**_bound_fields.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _bound_fields.reset(self._token)
