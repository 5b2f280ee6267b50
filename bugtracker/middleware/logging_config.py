"""
Log output for the bug tracker.

Debug and test runs print one readable line per record. Anything else
(a deployed service) writes one JSON object per line so request timing
and relationship changes can be filtered by field. LOG_LEVEL overrides
the level picked from the app mode.
"""

import json
import logging
import os
import sys

# Attributes passed through ``extra=`` that are kept as JSON fields
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
DOMAIN_FIELDS = ("bug_id", "relationship_id")

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic", "urllib3")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        entry.update(
            (key, getattr(record, key))
            for key in REQUEST_FIELDS + DOMAIN_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message`` with the level colored on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }

    def __init__(self, color=None):
        super().__init__(datefmt="%H:%M:%S")
        self.color = sys.stderr.isatty() if color is None else color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}\033[0m"
        line = f"{self.formatTime(record, self.datefmt)} {level} {record.name}: {record.getMessage()}"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f" rid={request_id}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(app) -> logging.Formatter:
    if app.debug or app.testing:
        return ReadableFormatter()
    return JSONFormatter()


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``.

    Existing root handlers are replaced, so building several apps in one
    process (the test suite does) leaves exactly one handler.
    """
    level_name = os.getenv("LOG_LEVEL") or ("DEBUG" if app.debug or app.testing else "INFO")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(app))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not app.testing:
        app.logger.info("Logging at %s (%s)", logging.getLevelName(level),
                        type(handler.formatter).__name__)
