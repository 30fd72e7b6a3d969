"""
leadengine/logging_config.py — Root logger setup for the API and CLI scripts.

LOG_LEVEL and LOG_FORMAT ("text" or "json") come from settings; either can be
overridden per call (recalculate_scores.py passes --log-level).
"""

import json
import logging
import sys
from datetime import datetime, timezone

from leadengine.config import settings

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# requests' connection pool and the SQL echo logger drown out lead events at INFO.
QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    level_value = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if (log_format or settings.log_format).lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    # force=True replaces handlers left by an earlier call (uvicorn reload, tests).
    logging.basicConfig(level=level_value, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
