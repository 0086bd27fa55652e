"""
Logging configuration for structured JSON logging.

JSON output is used in production so exchanges, narration and visualization
events can be searched by session; development gets a readable format.
"""

import logging
import os
import sys
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from constants import LOG_FORMAT_JSON, LOG_LEVEL_DEVELOPMENT, LOG_LEVEL_PRODUCTION

READABLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
JSON_FORMAT = '%(timestamp)s %(level)s %(logger)s %(message)s'


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that always emits timestamp, level and logger name.

    Fields passed through ``extra`` (session id, mode, event type) end up as
    top-level keys of the JSON document.
    """

    def __init__(self, *args, rename_fields: Optional[dict] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rename_fields = rename_fields or {}

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = self.formatTime(record, self.datefmt)
        if not log_record.get('level'):
            log_record['level'] = record.levelname
        if not log_record.get('logger'):
            log_record['logger'] = record.name

        for old_name, new_name in self.rename_fields.items():
            if old_name in log_record:
                log_record[new_name] = log_record.pop(old_name)


def _wants_json() -> bool:
    return os.getenv("LOG_FORMAT_JSON", str(LOG_FORMAT_JSON)).lower() in ("true", "1", "yes")


def _default_level() -> str:
    env = os.getenv("ENV", "production").lower()
    return LOG_LEVEL_DEVELOPMENT if env in ("dev", "development") else LOG_LEVEL_PRODUCTION


def setup_logging(use_json: Optional[bool] = None, log_level: Optional[str] = None) -> None:
    """
    Configure root logging with JSON or readable output on stdout.

    Args:
        use_json: Force JSON (True) or readable (False) output. None reads
                  LOG_FORMAT_JSON from the environment.
        log_level: Level name such as "INFO". None picks DEBUG when ENV is
                   development and INFO otherwise.
    """
    if use_json is None:
        use_json = _wants_json()
    if log_level is None:
        log_level = _default_level()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter = ContextualJsonFormatter(
            JSON_FORMAT,
            rename_fields={
                'timestamp': '@timestamp',
                'level': 'severity',
            }
        )
    else:
        formatter = logging.Formatter(READABLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps every record with session context.

    Usage:
        logger = StructuredLoggerAdapter(logging.getLogger(__name__), {
            'session_id': session.session_id,
            'mode': session.mode.value,
        })
        logger.info_event("exchange_completed", "Reply appended", steps=3)
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> None:
        """Update the context attached to subsequent records."""
        self.extra = {**self.extra, **context}

    def log_event(self, level: int, event_type: str, message: str, **context: Any) -> None:
        """
        Log a structured event with type and context.

        Args:
            level: Logging level (e.g., logging.INFO)
            event_type: Machine-readable event name (e.g., "mode_switched")
            message: Human-readable message
            **context: Additional key-value pairs
        """
        context['event_type'] = event_type
        self.log(level, message, extra=context)

    def info_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.INFO, event_type, message, **context)

    def error_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.ERROR, event_type, message, **context)

    def warning_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.WARNING, event_type, message, **context)

    def debug_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.DEBUG, event_type, message, **context)


def session_logger(name: str, session_id: str, mode: str) -> StructuredLoggerAdapter:
    """Build an adapter for one chat session."""
    return StructuredLoggerAdapter(
        logging.getLogger(name),
        {'session_id': session_id, 'mode': mode},
    )
