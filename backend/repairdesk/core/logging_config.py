"""Process-wide logging setup."""

import json
import logging
from typing import Optional

from .config import Settings, settings as default_settings
from .request_context import attach_request_id_filter

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "request_id"}


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


def configure_logging(config: Optional[Settings] = None) -> None:
    """Install a single root handler using plain or JSON formatting."""
    cfg = config or default_settings

    handler = logging.StreamHandler()
    if cfg.structured_logs:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    logging.root.handlers = [handler]
    attach_request_id_filter(logging.root)
    logging.root.setLevel(cfg.log_level.upper())

    # Reduce noise from libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured", extra=cfg.as_log_context())
