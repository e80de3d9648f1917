"""
Structured logging configuration for the Crontal RFQ backend.
Import and call setup_logging() once at app startup.

Every record emitted while a request is being served is stamped with the
route, the HTTP method and, for /api/rfqs/<rid>/... routes, the RFQ id, so
normalizer/clarifier/store lines can be grouped per RFQ without each module
passing the id around.
"""
import logging
import logging.handlers
import os
import json
from datetime import datetime, timezone

from flask import has_request_context, request

from crontal.core.paths import LOG_DIR

# Attributes copied from `extra=` / the request filter into JSON lines
EXTRA_FIELDS = ("route", "method", "status", "rfq_id", "agent", "duration_ms")

# Third-party loggers that drown out the pipeline at INFO
# (pypdf warns on every malformed xref in an uploaded spec sheet)
NOISY_LOGGERS = ("urllib3", "werkzeug", "httpx", "httpcore", "anthropic",
                 "pypdf", "openpyxl")

LOG_FILE = "crontal.log"


class RequestContextFilter(logging.Filter):
    """Stamp route/method/rfq_id from the active Flask request, if any."""

    def filter(self, record):
        if not has_request_context():
            return True
        if not hasattr(record, "route"):
            record.route = request.path
        if not hasattr(record, "method"):
            record.method = request.method
        rid = (request.view_args or {}).get("rid")
        if rid and not hasattr(record, "rfq_id"):
            record.rfq_id = rid
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for the rotating file and log shippers."""
    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "func": record.funcName,
            "line": record.lineno,
        }
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Coloured console lines; the RFQ id is shown when the record has one."""
    COLORS = {
        "DEBUG": "\033[36m", "INFO": "\033[32m",
        "WARNING": "\033[33m", "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        tag = f" [{record.rfq_id}]" if getattr(record, "rfq_id", None) else ""
        line = (f"{color}{ts} [{record.levelname[0]}] {record.name}{tag}: "
                f"{record.getMessage()}{self.RESET}")
        if record.exc_info and record.exc_info[0]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level=None, json_logs=None, log_dir=None):
    """
    Configure logging for the full application.

    Args:
        level: Override log level (default: from LOG_LEVEL env or INFO)
        json_logs: JSON on the console too (default: on when CRONTAL_JSON_LOGS is set)
        log_dir: Rotating file location (default: CRONTAL_LOG_DIR / ./logs)
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if json_logs is None:
        json_logs = bool(os.environ.get("CRONTAL_JSON_LOGS"))
    log_dir = log_dir or LOG_DIR

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()
    context = RequestContextFilter()

    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter())
    console.addFilter(context)
    root.addHandler(console)

    # File is always JSON: 5MB x 5 backups
    file_error = None
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE), maxBytes=5_000_000, backupCount=5,
        )
        fh.setFormatter(JSONFormatter())
        fh.addFilter(context)
        root.addHandler(fh)
    except OSError as e:
        file_error = e

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    log = logging.getLogger("crontal")
    if file_error:
        log.warning("File logging disabled (%s): %s", log_dir, file_error)
    log.info("Logging initialized (level=%s, json=%s)", level, json_logs)
