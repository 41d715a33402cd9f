"""JSON logging shared by the API server and the Cloud Functions."""

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger.json import JsonFormatter

_level = logging.INFO


class CustomJsonFormatter(JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname


def configure_logging(level='INFO'):
    """Set the level used by every logger handed out by get_logger()."""
    global _level
    _level = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(_level, int):
        _level = logging.INFO
    for name in list(logging.root.manager.loggerDict):
        if name.startswith('readingmemory'):
            logging.getLogger(name).setLevel(_level)


def get_logger(name):
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
        handler.setFormatter(formatter)

        logger.addHandler(handler)
        logger.setLevel(_level)

        # Prevent double printing when the root logger is configured too
        logger.propagate = False

    return logger
