import logging
import os
import sys
from datetime import datetime, timezone
import json
from logging.handlers import RotatingFileHandler
from pathlib import Path


SERVICE_NAME = 'toolkit-broker'


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging similar to pino."""

    def format(self, record):
        log_data = {
            'level': record.levelname.lower(),
            'time': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f') + 'Z',
            'service': SERVICE_NAME,
            'msg': record.getMessage()
        }

        if record.exc_info:
            log_data['err'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'stack': self.formatException(record.exc_info)
            }

        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        return json.dumps(log_data, default=str)


logs_dir = Path(os.getenv('LOG_DIR', Path(__file__).parent.parent / 'logs'))
logs_dir.mkdir(parents=True, exist_ok=True)
log_file_path = logs_dir / 'broker.log'

logger = logging.getLogger(SERVICE_NAME)
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

# stdout carries the protocol stream when serving over stdio
console_handler = logging.StreamHandler(sys.stderr)
console_handler.setFormatter(JSONFormatter())
logger.addHandler(console_handler)

# 10MB max, keep 5 backups
file_handler = RotatingFileHandler(
    log_file_path,
    maxBytes=10 * 1024 * 1024,
    backupCount=5
)
file_handler.setFormatter(JSONFormatter())
logger.addHandler(file_handler)

logger.propagate = False


def log_with_context(level, msg, **context):
    """Log with additional context fields."""
    extra = {'extra_data': context} if context else {}
    logger.log(level, msg, extra=extra)


def info(msg, **context):
    log_with_context(logging.INFO, msg, **context)


def error(msg, err=None, **context):
    if err:
        context['err'] = {'message': str(err), 'type': type(err).__name__}
    log_with_context(logging.ERROR, msg, **context)


def warn(msg, **context):
    log_with_context(logging.WARNING, msg, **context)


def debug(msg, **context):
    log_with_context(logging.DEBUG, msg, **context)
