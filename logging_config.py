# ==============================================================================
# logging_config.py - Logging configuration for the course portal
# ==============================================================================

"""
Console output is colored when attached to a terminal. ``LOG_FILE`` adds a rotating
file log, one JSON object per line when ``LOG_JSON`` is on.

Every record carries the id of the request being handled (``request_id_var``, set by
the request middleware in ``main.py``), so the lines of one request can be grepped
together. Values passed through ``extra=`` (error codes, details) are kept as
top-level JSON keys.
"""

import contextvars
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

request_id_var: contextvars.ContextVar = contextvars.ContextVar("request_id", default="-")

# attributes every LogRecord has; anything else came in through ``extra=``
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "request_id"}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # an explicit extra={"request_id": ...} wins over the context value
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Plain text, colored by level when stdout is a terminal"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"

    def __init__(self, use_colors: bool = True):
        super().__init__(self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{text}{self.RESET}" if color else text


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_json: bool = False,
    use_colors: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger. Safe to call more than once; previous handlers are replaced.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of a rotating log file; console only when omitted
        use_json: Write the file log as JSON lines
        use_colors: Color console output (ignored when stdout is not a terminal)
        max_bytes: Size at which the file log rotates
        backup_count: Rotated files to keep
    """
    level = (level or "INFO").upper()
    numeric_level = getattr(logging, level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handlers = []
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColoredFormatter(use_colors=use_colors))
    handlers.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter() if use_json else ColoredFormatter(use_colors=False))
        handlers.append(file_handler)

    request_ids = RequestIdFilter()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.addFilter(request_ids)
        root.addHandler(handler)

    if level != "DEBUG":
        for noisy in ("pymongo", "passlib", "uvicorn.access"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging initialized at {level}, file log: {log_file or 'off'}")
