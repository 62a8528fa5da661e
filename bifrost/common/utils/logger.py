import logging
import datetime
import json
import sys
import collections
import os
from typing import List, Optional

HOSTNAME = os.getenv("HOSTNAME", "bifrost-gateway")
BUFFER_CAPACITY = int(os.getenv("BIFROST_LOG_BUFFER", 1000))

class JSONFormatter(logging.Formatter):
    """One JSON object per line. ``event`` and ``job_name`` come from ``extra=``."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "host": HOSTNAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event": getattr(record, "event", "log"),
            "job_name": getattr(record, "job_name", None)
        }
        if record.exc_info:
            log_obj["error"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)

class LogBuffer(logging.Handler):
    """In-memory ring of the most recent formatted records, served by the logs endpoint."""

    def __init__(self, capacity=BUFFER_CAPACITY):
        super().__init__()
        self.records = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            self.records.append(json.loads(self.format(record)))
        except Exception:
            self.handleError(record)

    def tail(self, limit: int = 200, job_name: Optional[str] = None, level: Optional[str] = None) -> List[dict]:
        records = list(self.records)
        if job_name is not None:
            records = [r for r in records if r.get("job_name") == job_name]
        if level is not None:
            threshold = logging.getLevelName(level.upper())
            if isinstance(threshold, int):
                records = [r for r in records if logging.getLevelName(r["level"]) >= threshold]
        return records[-limit:] if limit > 0 else []

def setup_logger(name, level=logging.INFO):
    """
    Configure ``name`` and the uvicorn loggers to write JSON to stdout and to a
    shared LogBuffer. The root logger is left alone so embedding applications
    and test runners keep their own handlers.
    """
    log_buffer = LogBuffer()
    log_buffer.setFormatter(JSONFormatter())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        u_logger = logging.getLogger(logger_name)
        u_logger.handlers = [console_handler, log_buffer]
        u_logger.propagate = False

    logger = logging.getLogger(name)
    logger.handlers = [console_handler, log_buffer]
    logger.setLevel(level)
    logger.propagate = False
    return logger, log_buffer
