"""
Logging setup for the RepoLens API.

What gets logged:
- analysis lifecycle per repository: start, each progress step, completion or failure
- cache traffic with the full Redis key (HIT/MISS at DEBUG, trims and clears at INFO)
- GitHub and LLM failures, including quota trips of the LLM breaker
- SSE streams closed by the client before the analysis finished
- report persistence errors

ENVIRONMENT=production writes each record as one JSON object on stdout;
any other value writes "time [LEVEL] logger: message" lines. HTTP client,
SQLAlchemy and LiteLLM chatter is held at WARNING.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Emit log records as JSON lines for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "redis", "LiteLLM")


def setup_logging() -> None:
    """Configure the root logger from ENVIRONMENT and LOG_LEVEL."""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Reloads would otherwise stack duplicate handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
