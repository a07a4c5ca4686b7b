import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

from archetype_quiz.config import app_settings

SERVICE_NAME = "archetype-quiz"


class QuizJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON log lines tagged with the service and deployment environment.

    Timestamps are ISO-8601 UTC. Records raised with exc_info also carry
    the exception class name so failures can be grouped without parsing
    the traceback.
    """

    def __init__(self, *args, environment: str = "development", **kwargs):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = SERVICE_NAME
        log_record['environment'] = self.environment
        log_record['lineno'] = record.lineno
        if record.exc_info and record.exc_info[0] is not None:
            log_record['error_type'] = record.exc_info[0].__name__


def setup_logging(log_level_str: str = "INFO", environment: Optional[str] = None) -> logging.Logger:
    """
    Sends root logging to stdout as JSON lines.

    Idempotent: the handler is attached once, later calls only change the level.
    """
    environment = environment or app_settings.environment
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not any(isinstance(h.formatter, QuizJsonFormatter) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(QuizJsonFormatter('%(message)s', environment=environment))
        root_logger.addHandler(handler)
        root_logger.info(f"JSON logging enabled at {logging.getLevelName(log_level)} for {environment}")

    return root_logger
